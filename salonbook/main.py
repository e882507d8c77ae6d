# salonbook/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .config import LOG_LEVEL
from .db import init_db
from .errors import TransportError
from .routers import appointments_routes, auth_routes, finance_routes, salons_routes, users_routes

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Salon Booking API", lifespan=lifespan)

app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(salons_routes.router)
app.include_router(appointments_routes.router)
app.include_router(finance_routes.router)


@app.exception_handler(OperationalError)
async def store_unreachable_handler(request: Request, exc: OperationalError):
    logger.error(f"Data store unavailable on {request.url.path}: {exc}")
    error = TransportError("The booking service is temporarily unavailable. Please try again.")
    return JSONResponse(status_code=503, content={"detail": str(error), "retryable": True})


@app.get("/health")
def health_check():
    return {"status": "ok"}
