"""SQLAlchemy ORM models for the site index."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class IndexItemTable(Base):
    """One A-Z index entry: a titled link filed under a letter and campus."""

    __tablename__ = "index_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    letter: Mapped[str] = mapped_column(String(1), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    campus: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_index_items_letter_title", "letter", "title"),
        Index("ix_index_items_created_at", "created_at"),
    )
