"""Book, Place and Publisher models.

``book_book`` is the heart of the library: one row per physical volume,
identified publicly by a zero-padded five digit ``bookid`` (e.g. "00666")
and internally by the integer ``id`` every other table references.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Boolean, Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rsywx.models.base import Base

# Shelf locations marking a volume as not physically present
INVALID_LOCATIONS = ("na", "--")


class Place(Base):
    """Where a book was bought."""

    __tablename__ = "book_place"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Publisher(Base):
    """Publishing house."""

    __tablename__ = "book_publisher"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Book(Base):
    """A volume in the library.

    Attributes:
        bookid: Public five digit identifier, also names the cover image
        translated: Whether this is a translation; ``copyrighter`` then
            holds the translator / rights holder
        purchdate: Purchase date, drives "latest" and "today in history"
        location: Shelf location; "na" and "--" mean not on the shelf
        kword: Length in thousands of characters
        category: Library classification code, e.g. "I247.5"
    """

    __tablename__ = "book_book"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    place_id: Mapped[int | None] = mapped_column(
        "place", ForeignKey("book_place.id"), nullable=True
    )
    publisher_id: Mapped[int | None] = mapped_column(
        "publisher", ForeignKey("book_publisher.id"), nullable=True
    )
    bookid: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    author: Mapped[str] = mapped_column(String(200), nullable=False)
    region: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    copyrighter: Mapped[str | None] = mapped_column(String(100), nullable=True)
    translated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    purchdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    pubdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    printdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    ver: Mapped[str | None] = mapped_column(String(5), nullable=True)
    deco: Mapped[str | None] = mapped_column(String(6), nullable=True)
    kword: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    isbn: Mapped[str | None] = mapped_column(String(17), nullable=True)
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ol: Mapped[str | None] = mapped_column(String(2), nullable=True)
    intro: Mapped[str | None] = mapped_column(Text, nullable=True)
    instock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    location: Mapped[str | None] = mapped_column(String(3), nullable=True)

    place: Mapped[Place | None] = relationship("Place")
    publisher: Mapped[Publisher | None] = relationship("Publisher")

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, bookid='{self.bookid}', title='{self.title}')>"
