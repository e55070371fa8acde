"""SQLAlchemy models for the identity store."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class KnownFaceRecord(Base):
    """Persisted known identity."""

    __tablename__ = "known_faces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        comment="Registry order; ties in matching go to the lowest position"
    )
    embedding: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        comment="Little-endian float32 values"
    )
    dimension: Mapped[int] = mapped_column(Integer, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    trust_tier: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="userProfile, contact or peer"
    )
    trust_score: Mapped[float] = mapped_column(Float, nullable=False)
    external_ref: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Address-book identifier"
    )
    family_relation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
