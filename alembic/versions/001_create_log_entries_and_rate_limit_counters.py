"""Create log_entries and rate_limit_counters tables

Revision ID: 001
Revises: None
Create Date: 2024-05-01 00:00:00.000000+00:00

What:  Initial schema: the travel log records and the shared per-address
       write counters used by the rate limiter.

Rollback: downgrade() drops both tables (all entries are lost; uploaded
files under UPLOAD_DIR are left in place).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "log_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "rating",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column(
            "image",
            sa.String(2048),
            nullable=True,
            comment="Absolute http(s) URL or /uploads/<generated name>",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_log_entries_latitude"),
        sa.CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_log_entries_longitude"),
    )

    # GET /api/logs orders by creation time
    op.create_index("idx_log_entries_created_at", "log_entries", ["created_at"])

    op.create_table(
        "rate_limit_counters",
        sa.Column("key", sa.String(255), nullable=False, comment="Client address"),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column(
            "window_start",
            sa.Float(),
            nullable=False,
            comment="Epoch seconds when the current window opened",
        ),
        sa.Column("expires_at", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    # Periodic purge scans by expiry
    op.create_index(
        "idx_rate_limit_counters_expires_at",
        "rate_limit_counters",
        ["expires_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_rate_limit_counters_expires_at", table_name="rate_limit_counters")
    op.drop_table("rate_limit_counters")
    op.drop_index("idx_log_entries_created_at", table_name="log_entries")
    op.drop_table("log_entries")
