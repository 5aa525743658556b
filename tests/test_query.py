"""Tests for the group-scoped position queries."""

from __future__ import annotations

import pytest
from sqlalchemy import insert
from sqlalchemy.orm import Session

from rowposition.models.catalog import Book, Category
from rowposition.services.coordinator import get_coordinator
from rowposition.services.query import PositionQuery
from tests.helpers import book_titles


@pytest.fixture()
def seeded(db_session: Session, make_category) -> tuple[Category, Category]:
    """Two categories filled through Core statements, bypassing positioning."""
    first, second = make_category("first"), make_category("second")
    db_session.execute(
        insert(Book.__table__),
        [
            {"title": "a", "category_id": first.id, "position": 0},
            {"title": "b", "category_id": first.id, "position": 1},
            {"title": "c", "category_id": first.id, "position": 2},
            {"title": "x", "category_id": second.id, "position": 0},
            {"title": "loose", "category_id": None, "position": 0},
        ],
    )
    return first, second


def _query(session: Session, category: Category | None) -> PositionQuery:
    sequence = get_coordinator(Book).sequence
    key = (category.id if category is not None else None,)
    return PositionQuery.for_group(session.connection(), sequence, key)


def test_count_and_max_are_scoped_to_group(db_session: Session, seeded) -> None:
    first, second = seeded
    assert _query(db_session, first).count() == 3
    assert _query(db_session, first).max_position() == 2
    assert _query(db_session, second).count() == 1
    assert _query(db_session, None).count() == 1


def test_max_position_of_empty_group_is_none(db_session: Session, make_category) -> None:
    empty = make_category("empty")
    assert _query(db_session, empty).max_position() is None
    assert _query(db_session, empty).count() == 0


def test_shift_up_open_range(db_session: Session, seeded) -> None:
    first, second = seeded
    assert _query(db_session, first).shift_up(1) == 2
    assert book_titles(db_session, first) == [("a", 0), ("b", 2), ("c", 3)]
    assert book_titles(db_session, second) == [("x", 0)]
    assert book_titles(db_session, None) == [("loose", 0)]


def test_shift_down_bounded_range(db_session: Session, seeded) -> None:
    first, _ = seeded
    assert _query(db_session, first).shift_down(1, 2) == 1
    assert book_titles(db_session, first) == [("a", 0), ("b", 0), ("c", 2)]


def test_empty_range_issues_no_update(db_session: Session, seeded) -> None:
    first, _ = seeded
    assert _query(db_session, first).shift_up(2, 2) == 0
    assert book_titles(db_session, first) == [("a", 0), ("b", 1), ("c", 2)]


def test_excluding_skips_the_row(db_session: Session, seeded) -> None:
    first, _ = seeded
    book_id = db_session.query(Book.id).filter(Book.title == "a").scalar()
    query = _query(db_session, first).excluding((book_id,))

    assert query.count() == 2
    assert query.shift_up(0) == 2
    assert book_titles(db_session, first) == [("a", 0), ("b", 2), ("c", 3)]


def test_load_persisted_reads_stored_placement(db_session: Session, seeded) -> None:
    first, _ = seeded
    book_id = db_session.query(Book.id).filter(Book.title == "c").scalar()
    sequence = get_coordinator(Book).sequence

    assert sequence.load_persisted(db_session.connection(), (book_id,)) == (2, (first.id,))
    assert sequence.load_persisted(db_session.connection(), (-1,)) is None
