"""
ErrorGroupRecord model - represents the 'error_groups' table.

An error group ("issue") is every event in a project that shares one
fingerprint hash. The unique constraint on (project_id, fingerprint_hash)
is what makes concurrent first-seen inserts converge on a single row.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from faultline.core.db import Base, JSONDocument, UTCDateTime, utcnow

GROUP_UNIQUE_CONSTRAINT = "uq_error_groups_project_fingerprint_hash"


class ErrorGroupRecord(Base):
    """
    Attributes:
        id: UUID primary key
        project_id, fingerprint_hash: unique together
        fingerprint: original tokens (display/audit)
        title, type, message, platform: taken from the first event
        status: unresolved | resolved | ignored (changed by users, never by the pipeline)
        event_count, user_count: refreshed from the Event Store
        ai_summary: one-line summary from the latest AI analysis
        metadata_: open document (analysis results, stats snapshot, ...)
    """

    __tablename__ = "error_groups"

    __table_args__ = (
        UniqueConstraint("project_id", "fingerprint_hash", name=GROUP_UNIQUE_CONSTRAINT),
        Index("ix_error_groups_project_status", "project_id", "status"),
        Index("ix_error_groups_project_last_seen", "project_id", "last_seen"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    fingerprint: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="unresolved")

    event_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # METADATA
    # --------
    # "metadata" is reserved on declarative classes, hence the attribute name.
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONDocument,
        nullable=False,
        default=dict,
    )

    first_seen: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ErrorGroupRecord id={self.id} title='{self.title[:30]}' events={self.event_count}>"
