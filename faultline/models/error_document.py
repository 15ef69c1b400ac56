"""
ErrorDocument model - represents the 'error_documents' table.

Rows of the similarity index: one embedded text per indexed event. The
embedding is a pgvector column; its width must match the embedding model.
"""

from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from faultline.core.config import settings
from faultline.core.db import Base, JSONDocument, UTCDateTime, utcnow


class ErrorDocument(Base):
    __tablename__ = "error_documents"

    __table_args__ = (
        Index("ix_error_documents_project_environment", "project_id", "environment"),
    )

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    environment: Mapped[str] = mapped_column(String(100), nullable=False)
    error_type: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(Vector(settings.ai_embedding_dimensions), nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONDocument, nullable=False, default=dict)
    indexed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
