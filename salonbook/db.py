# salonbook/db.py

import logging

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)


def serialize_sqlite_writes(engine):
    """
    Make every SQLite transaction take the database write lock when it begins.

    SQLite ignores SELECT ... FOR UPDATE and pysqlite defers BEGIN until the first
    write, so a booking's availability re-check and its insert would not be
    atomic. With BEGIN IMMEDIATE a second booking waits for the first to commit
    and then re-checks against it.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# check_same_thread is required for SQLite + FastAPI
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=SQL_ECHO,
    pool_pre_ping=True,
    connect_args=connect_args,
)
if engine.dialect.name == "sqlite":
    serialize_sqlite_writes(engine)


def init_db(bind=None) -> None:
    # models must be imported so their tables are registered before create_all
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables ready")


# Dependency: one session per request
def get_session():
    with Session(engine, expire_on_commit=False) as session:
        yield session
