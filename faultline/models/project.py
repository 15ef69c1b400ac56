"""
Project model - represents the 'projects' table in the database.

A project is one monitored application. SDKs address it in the DSN by
its UUID or by its public key; the read API authenticates with the
project's secret key.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from faultline.core.db import Base, UTCDateTime, utcnow


def _new_key() -> str:
    return uuid.uuid4().hex


class Project(Base):
    """
    Project model - container for error events and groups.

    Attributes:
        id: UUID primary key
        name: Display name
        slug: URL-friendly identifier
        platform: Main SDK platform (javascript, python, ...)
        public_key: Key embedded in the DSN, accepted in place of the id
        secret_key_hash: SHA-256 of the secret key used by the read API
        status: "active" projects accept events, anything else is rejected
        organization_id: Owning company in the main app (AI usage billing)
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    platform: Mapped[str] = mapped_column(String(50), nullable=False)

    # PUBLIC KEY
    # ----------
    # Part of the DSN: https://<public_key>@host/<project_id>
    # It is not a secret, it only routes events to the project.

    public_key: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        default=_new_key,
    )

    # SECRET KEY HASH
    # ---------------
    # Like API keys, only the hash is stored.

    secret_key_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    organization_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Project id={self.id} slug='{self.slug}' status='{self.status}'>"
