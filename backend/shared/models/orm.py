"""
SQLAlchemy 2.0 ORM models for SafeScore.
Created by run_migration_001.py via DatabaseManager.create_tables().
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import Date, DateTime, Index, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class HistoryORM(Base):
    """One row per calendar date holding that day's prediction list."""

    __tablename__ = "history"
    __table_args__ = (
        UniqueConstraint("date", name="uq_history_date"),
        Index("ix_history_predictions_gin", "predictions", postgresql_using="gin"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(128))
    predictions: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
