# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rowposition.db.base import Base
from rowposition.models.catalog import Book, Category

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def make_category(db_session: Session) -> Callable[..., Category]:
    """Return a factory persisting categories."""

    def _make(name: str = "Fiction", **kwargs: Any) -> Category:
        category = Category(name=name, **kwargs)
        db_session.add(category)
        db_session.flush()
        return category

    return _make


@pytest.fixture()
def make_book(db_session: Session) -> Callable[..., Book]:
    """Return a factory persisting books one flush at a time."""

    def _make(category: Category | None = None, title: str = "Book", **kwargs: Any) -> Book:
        book = Book(
            title=title,
            category_id=category.id if category is not None else None,
            **kwargs,
        )
        db_session.add(book)
        db_session.flush()
        return book

    return _make


@pytest.fixture()
def category(make_category: Callable[..., Category]) -> Category:
    """Create a default test category."""
    return make_category("Default")


@pytest.fixture()
def shelf(category: Category, make_book: Callable[..., Book]) -> list[Book]:
    """Three books at positions 0, 1 and 2 of the default category."""
    return [make_book(category, title) for title in ("first", "second", "third")]
