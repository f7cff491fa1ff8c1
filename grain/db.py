"""
Engine and session factory for the grain record store.

The URL comes from DATABASE_URL (SQLALCHEMY_DATABASE_URL also accepted);
GRAIN_SQL_ECHO=1 logs every statement through sqlalchemy.engine.
"""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from grain import config


def database_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")
    if not url:
        raise RuntimeError(
            "Set DATABASE_URL (or SQLALCHEMY_DATABASE_URL) before importing grain.db."
        )
    return url


def build_engine(url: str, *, echo: bool = False) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI runs sync routes in a threadpool.
        connect_args["check_same_thread"] = False
    return create_engine(url, future=True, echo=echo, connect_args=connect_args)


engine = build_engine(database_url(), echo=config.sql_echo())

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    # Importing models registers every table on Base.metadata.
    from grain import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
