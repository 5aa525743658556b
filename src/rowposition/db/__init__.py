# src/rowposition/db/__init__.py
"""Declarative base of the bundled models."""

from .base import Base

__all__ = ["Base"]
