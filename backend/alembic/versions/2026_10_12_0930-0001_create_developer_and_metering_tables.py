"""create developer, api key and metering tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-12

  - developers / api_keys: key authentication (hash only, scopes, status)
  - rate_windows: one fixed-window counter row per key
  - usage_records: one billing record per inbound request
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. developers ───────────────────────────────────────
    op.create_table(
        "developers",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── 2. api_keys ─────────────────────────────────────────
    op.create_table(
        "api_keys",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("developer_id", sa.UUID(), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("prefix", sa.String(12), nullable=False),
        sa.Column("scopes", sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("rate_limit_per_minute", sa.Integer(), server_default="60", nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["developer_id"], ["developers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("key_hash"),
    )
    op.create_index("ix_api_keys_developer_id", "api_keys", ["developer_id"])

    # ── 3. rate_windows ─────────────────────────────────────
    op.create_table(
        "rate_windows",
        sa.Column("api_key_id", sa.UUID(), nullable=False),
        sa.Column("window_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("request_count", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("api_key_id"),
        sa.ForeignKeyConstraint(["api_key_id"], ["api_keys.id"], ondelete="CASCADE"),
    )

    # ── 4. usage_records ────────────────────────────────────
    op.create_table(
        "usage_records",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("timestamp", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("api_key_id", sa.UUID(), nullable=True),
        sa.Column("developer_id", sa.UUID(), nullable=True),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("latency_ms", sa.Integer(), nullable=False),
        sa.Column("billed_units", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("latency_ms >= 0", name="ck_usage_latency_ms_non_neg"),
        sa.CheckConstraint("billed_units >= 0", name="ck_usage_billed_units_non_neg"),
    )
    op.create_index("ix_usage_records_timestamp", "usage_records", ["timestamp"])
    op.create_index("ix_usage_records_developer_id", "usage_records", ["developer_id"])
    op.create_index("ix_usage_records_api_key_id", "usage_records", ["api_key_id"])


def downgrade() -> None:
    op.drop_index("ix_usage_records_api_key_id", table_name="usage_records")
    op.drop_index("ix_usage_records_developer_id", table_name="usage_records")
    op.drop_index("ix_usage_records_timestamp", table_name="usage_records")
    op.drop_table("usage_records")
    op.drop_table("rate_windows")
    op.drop_index("ix_api_keys_developer_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("developers")
