"""Create links table.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the links table."""
    op.create_table(
        "links",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "short_code",
            sa.String(20),
            nullable=False,
            comment="Short code used in the redirect path (e.g., 'aZ3kP9')",
        ),
        sa.Column(
            "destination_url",
            sa.Text(),
            nullable=False,
            comment="The URL to redirect to",
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "source",
            sa.String(255),
            nullable=True,
            comment="Optional campaign/source tag",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "click_count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total click count (denormalized for quick listing)",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_links")),
    )
    op.create_index(
        op.f("ix_links_short_code"),
        "links",
        ["short_code"],
        unique=True,
    )
    op.create_index(op.f("ix_links_created_at"), "links", ["created_at"])


def downgrade() -> None:
    """Drop the links table."""
    op.drop_index(op.f("ix_links_created_at"), table_name="links")
    op.drop_index(op.f("ix_links_short_code"), table_name="links")
    op.drop_table("links")
