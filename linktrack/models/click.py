"""Click SQLAlchemy model for storing raw click events."""

import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from linktrack.core.database import Base, UTCDateTime

UNKNOWN_IP = "unknown"


class Click(Base):
    """Click model for storing raw click/redirect events.

    Each row represents a single visit through a link's redirect.
    Rows are never updated; they go away only when their link is deleted.
    """

    __tablename__ = "clicks"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    link_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("links.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ip_address: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default=UNKNOWN_IP,
        comment="Client IP address ('unknown' if undeterminable)",
    )
    user_agent: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="HTTP User-Agent header",
    )
    referrer: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="HTTP Referer header",
    )
    country: Mapped[str | None] = mapped_column(
        String(2),
        nullable=True,
        comment="ISO 3166-1 alpha-2 country code (from GeoIP)",
    )
    city: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="City name (from GeoIP)",
    )
    clicked_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        comment="Timestamp when the click occurred",
    )

    # Composite index for per-link history queries
    __table_args__ = (Index("ix_clicks_link_id_clicked_at", "link_id", "clicked_at"),)

    def __repr__(self) -> str:
        return f"<Click {self.id} link={self.link_id} at={self.clicked_at}>"
