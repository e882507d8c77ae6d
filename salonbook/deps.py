# salonbook/deps.py

from fastapi import HTTPException


def require_role(user: dict, role: str):
    if user["role"] != role:
        raise HTTPException(status_code=403, detail="Forbidden")


def require_salon_staff(user: dict, salon_id: int):
    require_role(user, "admin")
    if user["salon_id"] != salon_id:
        raise HTTPException(status_code=403, detail="Forbidden")
