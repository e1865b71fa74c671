"""Tag, review and visit models.

These tables hang off ``book_book.id``:
- ``book_taglist``: free-form tags, one row per (book, tag)
- ``book_headline``: one reading headline per book; ``display`` gates
  whether its reviews are public
- ``book_review``: individual review articles under a headline
- ``book_visit``: one row per page view of a book
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import BigInteger, Boolean, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rsywx.models.base import Base

# book_taglist.tag is VARCHAR(20)
TAG_MAX_LENGTH = 20


class Tag(Base):
    """A tag attached to a book."""

    __tablename__ = "book_taglist"

    tid: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True
    )
    bid: Mapped[int] = mapped_column(
        ForeignKey("book_book.id"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(TAG_MAX_LENGTH), nullable=False)


class Headline(Base):
    """Reading headline grouping the reviews of one book."""

    __tablename__ = "book_headline"

    hid: Mapped[int] = mapped_column(Integer, primary_key=True)
    bid: Mapped[int] = mapped_column(
        ForeignKey("book_book.id"), unique=True, nullable=False
    )
    reviewtitle: Mapped[str] = mapped_column(String(100), nullable=False)
    create_at: Mapped[date] = mapped_column(Date, nullable=False)
    display: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Review(Base):
    """A published review article."""

    __tablename__ = "book_review"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hid: Mapped[int] = mapped_column(
        ForeignKey("book_headline.hid"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    datein: Mapped[date] = mapped_column(Date, nullable=False)
    uri: Mapped[str] = mapped_column(String(255), nullable=False)
    feature: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Visit(Base):
    """A single page view of a book."""

    __tablename__ = "book_visit"

    vid: Mapped[int] = mapped_column(Integer, primary_key=True)
    bookid: Mapped[int] = mapped_column(
        ForeignKey("book_book.id"), nullable=False, index=True
    )
    visitwhen: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(
        "ipaddress", String(45), nullable=True
    )
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
