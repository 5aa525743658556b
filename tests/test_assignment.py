"""Tests for the position given to rows saved without an explicit one."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy.orm import Session

from rowposition.core.config import PositionConfig
from rowposition.models.catalog import Book, Category, Chapter
from rowposition.services.coordinator import get_coordinator
from tests.helpers import book_titles, chapter_numbers


@pytest.fixture()
def book_config() -> Iterator[PositionConfig]:
    config = get_coordinator(Book).config
    try:
        yield config
    finally:
        config.unlock_positions()


def test_first_row_of_group_gets_start_position(
    db_session: Session, category: Category, make_book
) -> None:
    assert make_book(category).position == 0


def test_max_position_is_computed_per_group(
    db_session: Session, make_category, make_book
) -> None:
    first, second = make_category("first"), make_category("second")
    make_book(first)
    make_book(first)
    make_book(second)

    assert make_book(second).position == 1


def test_locked_position_puts_new_rows_first(
    db_session: Session, category: Category, shelf: list[Book], make_book, book_config
) -> None:
    book_config.lock_positions(0)
    make_book(category, "pinned")

    assert book_titles(db_session, category) == [
        ("pinned", 0),
        ("first", 1),
        ("second", 2),
        ("third", 3),
    ]


def test_lock_without_value_uses_start_position(
    db_session: Session, category: Category, shelf: list[Book], make_book, book_config
) -> None:
    book_config.lock_positions()

    assert make_book(category, "pinned").position == 0


def test_callable_locker_receives_the_row(
    db_session: Session, category: Category, shelf: list[Book], make_book, book_config
) -> None:
    seen: list[Book] = []

    def locker(book: Book) -> int:
        seen.append(book)
        return -2 if book.title.startswith("late") else 0

    book_config.lock_positions(locker)
    late = make_book(category, "late arrival")

    assert seen == [late]
    assert book_titles(db_session, category) == [
        ("first", 0),
        ("second", 1),
        ("late arrival", 2),
        ("third", 3),
    ]


def test_locker_does_not_override_explicit_position(
    db_session: Session, category: Category, shelf: list[Book], make_book, book_config
) -> None:
    book_config.lock_positions(0)

    assert make_book(category, "explicit", position=2).position == 2


def test_locked_positions_context_restores_previous_locker(book_config) -> None:
    book_config.lock_positions(3)
    previous = book_config.locker

    with book_config.locked_positions(0):
        assert book_config.locker is not previous
        assert book_config.locker(None) == 0

    assert book_config.locker is previous


def test_unlock_restores_end_assignment(
    db_session: Session, category: Category, shelf: list[Book], make_book, book_config
) -> None:
    book_config.lock_positions(0)
    book_config.unlock_positions()

    assert make_book(category, "appended").position == 3


def test_clearing_position_moves_row_to_end(
    db_session: Session, category: Category, shelf: list[Book]
) -> None:
    shelf[0].position = None
    db_session.flush()

    assert book_titles(db_session, category) == [("second", 0), ("third", 1), ("first", 2)]


def test_chapters_start_at_one_within_book_and_volume(
    db_session: Session, category: Category, make_book
) -> None:
    book = make_book(category, "Saga")
    chapters = []
    for volume, title in [(1, "one"), (1, "two"), (2, "alpha"), (1, "three")]:
        chapter = Chapter(book_id=book.id, volume=volume, title=title)
        db_session.add(chapter)
        db_session.flush()
        chapters.append(chapter)

    assert [chapter.number for chapter in chapters] == [1, 2, 1, 3]

    db_session.delete(chapters[0])
    db_session.add(Chapter(book_id=book.id, volume=1, title="last", number=-1))
    db_session.flush()

    assert chapter_numbers(db_session, book.id, 1) == [("two", 1), ("three", 2), ("last", 3)]
    assert chapter_numbers(db_session, book.id, 2) == [("alpha", 1)]


def test_chapter_moves_between_volumes(
    db_session: Session, category: Category, make_book
) -> None:
    book = make_book(category, "Saga")
    chapters = []
    for volume, title in [(1, "a"), (1, "b"), (1, "c"), (2, "x")]:
        chapter = Chapter(book_id=book.id, volume=volume, title=title)
        db_session.add(chapter)
        db_session.flush()
        chapters.append(chapter)

    chapters[2].volume = 2
    chapters[2].number = 1
    db_session.flush()

    assert chapter_numbers(db_session, book.id, 1) == [("a", 1), ("b", 2)]
    assert chapter_numbers(db_session, book.id, 2) == [("c", 1), ("x", 2)]

    chapters[0].volume = 2
    db_session.flush()

    assert chapters[0].number == 3
    assert chapter_numbers(db_session, book.id, 1) == [("b", 1)]
    assert chapter_numbers(db_session, book.id, 2) == [("c", 1), ("x", 2), ("a", 3)]
