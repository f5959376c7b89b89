"""Meeting persistence model.

Coordinates are stored as plain float columns with a composite index so
that radius and viewport queries can prefilter by bounding box. Instants
are stored as timezone-aware UTC timestamps; followers live in a JSONB
array so participant lookups can use the containment operator.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, String, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.geomeet.core.database import Base


class MeetingModel(Base):
    """An in-person meeting at a point, optionally pinned to an instant."""

    __tablename__ = "meetings"
    __table_args__ = (
        CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_meetings_longitude"),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_meetings_latitude"),
        Index("idx_meetings_location", "latitude", "longitude"),
        Index("idx_meetings_scheduled_at", "scheduled_at"),
        Index("idx_meetings_owner", "owner_id"),
        Index("idx_meetings_followers", "followers_data", postgresql_using="gin"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    followers_data: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )
