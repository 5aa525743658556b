# src/rowposition/models/catalog.py
"""Reference catalog models positioned by the library.

Categories form one global sequence, books are ordered within their category
and chapters within a (book, volume) pair, numbered from 1.
"""

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from rowposition.core.config import PositionConfig
from rowposition.db.base import Base
from rowposition.services.coordinator import register_positioning


class Category(Base):
    """Top-level grouping of books, displayed in a fixed order."""

    __tablename__ = "category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int | None] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"Category(id={self.id!r}, name={self.name!r}, position={self.position!r})"


class Book(Base):
    """A book, ordered within its category.

    Books without a category form their own sequence.
    """

    __tablename__ = "book"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("category.id"),
        nullable=True,
    )
    position: Mapped[int | None] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, title={self.title!r}, position={self.position!r})"


class Chapter(Base):
    """A chapter, numbered from 1 within a volume of a book."""

    __tablename__ = "chapter"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(Integer, ForeignKey("book.id"), nullable=False)
    volume: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    # Numbered from 1, so the attribute is not called "position".
    number: Mapped[int | None] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"Chapter(id={self.id!r}, volume={self.volume!r}, number={self.number!r})"


register_positioning(Category, always_order_by_position=True)
register_positioning(Book, group_by=("category_id",))
register_positioning(
    Chapter,
    PositionConfig(position_column="number", start_position=1, group_by=("book_id", "volume")),
)
