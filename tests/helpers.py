"""Read helpers shared by the positioning tests."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rowposition.models.catalog import Book, Category, Chapter


def book_titles(session: Session, category: Category | None) -> list[tuple[str, int]]:
    """Return ``(title, position)`` of a category's books straight from the table."""
    category_id = category.id if category is not None else None
    stmt = (
        select(Book.title, Book.position)
        .where(Book.category_id == category_id)
        .order_by(Book.position)
    )
    return [(title, position) for title, position in session.execute(stmt)]


def chapter_numbers(session: Session, book_id: int, volume: int) -> list[tuple[str, int]]:
    """Return ``(title, number)`` of a volume's chapters straight from the table."""
    stmt = (
        select(Chapter.title, Chapter.number)
        .where(Chapter.book_id == book_id, Chapter.volume == volume)
        .order_by(Chapter.number)
    )
    return [(title, number) for title, number in session.execute(stmt)]
