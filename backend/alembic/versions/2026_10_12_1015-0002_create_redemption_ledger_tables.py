"""create code registry, scan ledger and point balances

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-12

  - codes: issuable codes; CHECK keeps scan_count within scan_limit
  - scan_events: append-only ledger of accepted redemptions
  - point_balances: (caller_id, issuer_id) composite PK for the upsert
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. codes ────────────────────────────────────────────
    op.create_table(
        "codes",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("issuer_id", sa.String(255), nullable=False),
        sa.Column("code_type", sa.String(20), nullable=False),
        sa.Column("points_value", sa.Integer(), server_default="0", nullable=False),
        sa.Column("discount_pct", sa.Numeric(5, 2), server_default="0", nullable=False),
        sa.Column("scan_limit", sa.Integer(), nullable=True),
        sa.Column("scan_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "code_type IN ('loyalty', 'discount', 'checkin')",
            name="ck_codes_type_valid",
        ),
        sa.CheckConstraint("points_value >= 0", name="ck_codes_points_non_neg"),
        sa.CheckConstraint(
            "discount_pct >= 0 AND discount_pct <= 100",
            name="ck_codes_discount_range",
        ),
        sa.CheckConstraint("scan_count >= 0", name="ck_codes_scan_count_non_neg"),
        sa.CheckConstraint(
            "scan_limit IS NULL OR (scan_limit >= 0 AND scan_count <= scan_limit)",
            name="ck_codes_scan_count_within_limit",
        ),
    )
    op.create_index("ix_codes_issuer_id", "codes", ["issuer_id"])

    # ── 2. scan_events ──────────────────────────────────────
    op.create_table(
        "scan_events",
        sa.Column("id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("code_id", sa.UUID(), nullable=False),
        sa.Column("caller_id", sa.String(255), nullable=False),
        sa.Column("issuer_id", sa.String(255), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        sa.Column("discount_applied", sa.Numeric(5, 2), nullable=False),
        sa.Column("occurred_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["code_id"], ["codes.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_scan_events_code_id", "scan_events", ["code_id"])
    op.create_index("ix_scan_events_caller_issuer", "scan_events", ["caller_id", "issuer_id"])

    # ── 3. point_balances ───────────────────────────────────
    op.create_table(
        "point_balances",
        sa.Column("caller_id", sa.String(255), nullable=False),
        sa.Column("issuer_id", sa.String(255), nullable=False),
        sa.Column("points", sa.Integer(), server_default="0", nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("caller_id", "issuer_id"),
        sa.CheckConstraint("points >= 0", name="ck_point_balances_non_neg"),
    )


def downgrade() -> None:
    op.drop_table("point_balances")
    op.drop_index("ix_scan_events_caller_issuer", table_name="scan_events")
    op.drop_index("ix_scan_events_code_id", table_name="scan_events")
    op.drop_table("scan_events")
    op.drop_index("ix_codes_issuer_id", table_name="codes")
    op.drop_table("codes")
