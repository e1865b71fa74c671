"""SQLAlchemy declarative base for the library schema.

The tables predate this service and use integer surrogate keys plus a few
legacy column names (``purchdate``, ``visitwhen``, ``bid``), so models map
onto them as they are instead of adding UUID or timestamp mixins.

Usage:
    from rsywx.models.base import Base

    class Place(Base):
        __tablename__ = "book_place"
        id: Mapped[int] = mapped_column(primary_key=True)
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all library models.

    ``Base.metadata`` is what tests use to create a scratch schema.
    """

    pass
