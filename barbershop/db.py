# barbershop/db.py

import logging

from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def make_engine(url: str, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        # required for SQLite + FastAPI
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=SQL_ECHO, connect_args=connect_args, **kwargs)


# Engine = connection to the database
engine = make_engine(DATABASE_URL)


def create_db_and_tables(bind=None):
    from . import models  # noqa: F401  registers the tables

    SQLModel.metadata.create_all(bind if bind is not None else engine)
    logger.info("Database tables created")


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session
