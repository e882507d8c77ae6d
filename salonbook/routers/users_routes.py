# salonbook/routers/users_routes.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from salonbook.db import get_session
from salonbook.models import Client, User
from salonbook.schemas import UserCreate, UserPublic
from salonbook.auth import get_current_user, hash_password, normalize_email

router = APIRouter(
    tags=["users"],
)


def user_public(user: User, profile: Optional[Client] = None) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "salon_id": user.salon_id,
        "client_name": profile.name if profile else None,
        "client_phone": profile.phone if profile else None,
    }


@router.get("/me", response_model=UserPublic)
def me(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    user = session.get(User, current_user["id"])
    # clients get a booking profile the first time they book
    profile = session.exec(select(Client).where(Client.user_id == user.id)).first()
    return user_public(user, profile)


@router.post("/users", status_code=201, response_model=UserPublic)
def register_user(
    payload: UserCreate,
    session: Session = Depends(get_session),
):
    email = normalize_email(payload.email)
    if not email or "@" not in email:
        raise HTTPException(status_code=422, detail="A valid email is required")

    taken = session.exec(select(User.id).where(User.email == email)).first()
    if taken is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(email=email, password_hash=hash_password(payload.password), role=payload.role.value)
    try:
        session.add(user)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")

    session.refresh(user)
    return user_public(user)
