"""
AICacheRecord model - represents the 'ai_analysis_cache' table.

Cached AI results keyed by (fingerprint_hash, analysis_type). Rows are
appended; a lookup picks the best match by confidence, then usage.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from faultline.core.db import Base, JSONDocument, UTCDateTime, utcnow


class AICacheRecord(Base):
    __tablename__ = "ai_analysis_cache"

    __table_args__ = (
        Index("ix_ai_cache_fingerprint_type", "fingerprint_hash", "analysis_type"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # PRIMARY IDENTIFICATION
    fingerprint_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    analysis_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # PROVIDER
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)

    # CONTENT
    analysis_result: Mapped[str] = mapped_column(Text, nullable=False)
    prompt_hash: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # QUALITY AND SHARING
    # -------------------
    # is_public: may be served to any project, not only the ones in projects_used
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_patterns: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)

    # USAGE
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    projects_used: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)

    # FEEDBACK
    avg_feedback_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    feedback_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # COST
    tokens_saved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_saved_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Token counts of the original call: {"initialTokens": {"prompt": n, "completion": n}}
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONDocument,
        nullable=False,
        default=dict,
    )
