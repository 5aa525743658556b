# src/rowposition/models/__init__.py
"""Positioned row interface and the bundled reference models."""

from .positioned import Positioned, SQLAlchemyRow

__all__ = ["Positioned", "SQLAlchemyRow"]
