"""Quote-of-the-day and word-of-the-day tables."""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rsywx.models.base import Base


class Quote(Base):
    __tablename__ = "qotd"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quote: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(200), nullable=False)


class Word(Base):
    __tablename__ = "wotd"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    word: Mapped[str | None] = mapped_column(String(45), nullable=True)
    meaning: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sentence: Mapped[str | None] = mapped_column(String(300), nullable=True)
    type: Mapped[str | None] = mapped_column(String(45), nullable=True)
