"""Engine and session helpers for the AA store."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlmodel import SQLModel, create_engine

# registers every table on SQLModel.metadata
from aa_domain import account_models, audit_models, derived_models  # noqa: F401

from .config import DB_URL

__all__ = ["make_engine", "engine", "init_db"]


def make_engine(url: str = DB_URL) -> Engine:
    # sqlite needs check_same_thread, Postgres can use pool_pre_ping
    engine_kwargs = {"echo": False, "pool_pre_ping": True}
    connect_args = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False}
        engine_kwargs.pop("pool_pre_ping", None)
    return create_engine(url, connect_args=connect_args, **engine_kwargs)


engine = make_engine()


def init_db(bind: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(bind or engine)
