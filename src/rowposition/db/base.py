"""Declarative base for the bundled models."""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by the bundled reference models.

    Host applications position their own mapped classes and do not need it.
    """
