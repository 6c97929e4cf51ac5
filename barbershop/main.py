# barbershop/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .config import BOOTSTRAP_ADMIN_EMAIL, BOOTSTRAP_ADMIN_PASSWORD, LOG_LEVEL
from .db import create_db_and_tables, engine
from .errors import BookingRejected
from .routers import appointments_routes, auth_routes, barbers_routes, services_routes, users_routes
from .schemas import UserCreate, UserRole

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("passlib").setLevel(logging.ERROR)


def bootstrap_admin(session: Session) -> None:
    if not (BOOTSTRAP_ADMIN_EMAIL and BOOTSTRAP_ADMIN_PASSWORD):
        return
    try:
        users_routes.create_user_record(
            session,
            UserCreate(
                email=BOOTSTRAP_ADMIN_EMAIL,
                name="Admin",
                password=BOOTSTRAP_ADMIN_PASSWORD,
                role=UserRole.admin,
            ),
        )
        logger.info(f"Bootstrap admin {BOOTSTRAP_ADMIN_EMAIL} created")
    except HTTPException:
        logger.info("Bootstrap admin already exists")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    create_db_and_tables()
    with Session(engine) as session:
        bootstrap_admin(session)
    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Barbershop Booking API", version="1.0.0", lifespan=lifespan)
app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(services_routes.router)
app.include_router(barbers_routes.router)
app.include_router(appointments_routes.router)


@app.exception_handler(BookingRejected)
async def booking_rejected_handler(request: Request, exc: BookingRejected):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}/{exc.reason.value}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health_check():
    return {"status": "ok"}
