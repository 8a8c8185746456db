"""Declarative base and shared column helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Type

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime for persistence."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_values(enum_cls: Type[Enum]) -> list[str]:
    """Persist enum values (lowercase strings) instead of member names."""

    return [member.value for member in enum_cls]


__all__ = ["Base", "utcnow", "enum_values"]
