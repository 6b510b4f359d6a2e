"""Link SQLAlchemy model."""

import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from linktrack.core.database import Base, UTCDateTime

DEFAULT_TITLE = "Untitled Link"


class Link(Base):
    """Link model for shortened, trackable URLs."""

    __tablename__ = "links"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    short_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Short code used in the redirect path (e.g., 'aZ3kP9')",
    )
    destination_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The URL to redirect to",
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default=DEFAULT_TITLE,
    )
    source: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Optional campaign/source tag",
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )
    click_count: Mapped[int] = mapped_column(
        default=0,
        nullable=False,
        comment="Total click count (denormalized for quick listing)",
    )

    def __repr__(self) -> str:
        return f"<Link {self.short_code} -> {self.destination_url[:50]}>"
