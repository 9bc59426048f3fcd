"""Column factories shared by the AA tables.

SQLAlchemy ``Column`` objects cannot be shared between tables, so each call
returns a fresh field definition. Every timestamp column is timezone aware
and is written with aware UTC values.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import Column, DateTime, Numeric, func
from sqlalchemy.types import JSON
from sqlmodel import Field


def created_ts() -> Any:
    return Field(  # type: ignore[assignment]
        default=None,
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), nullable=False),
    )


def updated_ts() -> Any:
    return Field(  # type: ignore[assignment]
        default=None,
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        ),
    )


def utc_ts(nullable: bool = True) -> Any:
    return Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=nullable))


def money(nullable: bool = True) -> Any:
    return Field(default=None, sa_column=Column(Numeric(20, 4), nullable=nullable))


def quantity() -> Any:
    return Field(default=None, sa_column=Column(Numeric(24, 6)))


def json_column() -> Any:
    return Field(default=None, sa_column=Column(JSON))
