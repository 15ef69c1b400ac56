"""
ErrorEventRecord model - represents the 'error_events' table.

This is the Event Store: append-only rows written by the ingestion
service. After insert only two columns ever change, both written by the
processing worker: group_id and has_been_processed.

Events flow: SDK → Ingestion Service → error_events → Processing Worker → error_groups
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from faultline.core.db import Base, JSONDocument, UTCDateTime


class ErrorEventRecord(Base):
    """
    One raw error occurrence.

    JSON side-channels (tags, extra, breadcrumbs, contexts, request,
    exception, stack_trace) are stored as documents and are opaque to the
    pipeline.
    """

    __tablename__ = "error_events"

    # ==========================================================================
    # TABLE ARGUMENTS (indexes)
    # ==========================================================================

    __table_args__ = (
        # "Events of a project, newest first" (list view, range queries)
        Index("ix_error_events_project_timestamp", "project_id", "timestamp"),
        # Group statistics and spike detection
        Index("ix_error_events_group_timestamp", "group_id", "timestamp"),
    )

    # CORE IDENTIFIERS
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # CLASSIFICATION
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    handled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ENVIRONMENT
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    sdk: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    sdk_version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    release: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    environment: Mapped[str] = mapped_column(String(100), nullable=False, default="production")
    server_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # REQUEST CONTEXT
    transaction: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    status_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ANONYMOUS USER CONTEXT
    user_hash: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)

    # EXCEPTION DETAIL
    exception: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    exception_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    exception_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    exception_module: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stack_trace: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    frames_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ADDITIONAL CONTEXT
    request: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    tags: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    extra: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)
    breadcrumbs: Mapped[Optional[list[Any]]] = mapped_column(JSONDocument, nullable=True)
    contexts: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)

    # FINGERPRINT
    # -----------
    # Ordered tokens used for grouping. Fixed at ingestion time.
    fingerprint: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False)

    # SAMPLING
    is_sample: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sample_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # PROCESSING STATE (the only mutable columns)
    group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    has_been_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<ErrorEventRecord id={self.id} type='{self.type}' level='{self.level}'>"
