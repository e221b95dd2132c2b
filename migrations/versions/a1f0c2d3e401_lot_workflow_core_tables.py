"""Lot workflow core tables: users, lots, audit trail, access tokens, parts, replacement requests

Revision ID: a1f0c2d3e401
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1f0c2d3e401"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "user_history_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(32), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("target_type", sa.String(30), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=False),
        sa.Column("details", sa.Text(), server_default=""),
        sa.Column("metadata_json", sa.Text(), server_default="{}"),
    )
    op.create_index("idx_user_history_target", "user_history_entries", ["target_type", "target_id"])

    op.create_table(
        "lots",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("part_name", sa.String(200), nullable=False),
        sa.Column("factory_name", sa.String(200), nullable=False),
        sa.Column("lot_number", sa.String(100), nullable=False, unique=True),
        sa.Column("supply_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("manufacturing_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("warranty_period", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("vendor_id", sa.String(32), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("audit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "lot_audit_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lot_id", sa.String(40), sa.ForeignKey("lots.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.String(32), nullable=False),
        sa.Column("actor_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("details", sa.Text(), server_default=""),
        sa.Column("metadata_json", sa.Text(), server_default="{}"),
        sa.UniqueConstraint("lot_id", "seq", name="uq_lot_audit_seq"),
    )
    op.create_index("idx_lot_audit_action", "lot_audit_entries", ["lot_id", "action"])
    op.create_index("idx_lot_audit_actor", "lot_audit_entries", ["actor_id"])

    op.create_table(
        "lot_access_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lot_id", sa.String(40), sa.ForeignKey("lots.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("generated_by", sa.String(32), nullable=False),
        sa.UniqueConstraint("lot_id", "token", name="uq_lot_access_token"),
    )
    op.create_index("idx_lot_access_token_expiry", "lot_access_tokens", ["expires_at"])

    op.create_table(
        "parts",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("lot_id", sa.String(40), sa.ForeignKey("lots.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("part_name", sa.String(200), nullable=False),
        sa.Column("factory_name", sa.String(200), nullable=False),
        sa.Column("lot_number", sa.String(100), nullable=False),
        sa.Column("manufacturing_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("supply_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("warranty_period", sa.String(50), nullable=False),
        sa.Column("is_installed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "replacement_requests",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("lot_id", sa.String(40), sa.ForeignKey("lots.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("part_id", sa.String(40), sa.ForeignKey("parts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("requested_by", sa.String(32), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("requested_by_role", sa.String(20), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("photos", sa.JSON()),
        sa.Column("priority", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(32), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_replacement_status", "replacement_requests", ["status"])
    op.create_index("idx_replacement_created", "replacement_requests", ["created_at"])


def downgrade():
    op.drop_index("idx_replacement_created", table_name="replacement_requests")
    op.drop_index("idx_replacement_status", table_name="replacement_requests")
    op.drop_table("replacement_requests")
    op.drop_table("parts")
    op.drop_index("idx_lot_access_token_expiry", table_name="lot_access_tokens")
    op.drop_table("lot_access_tokens")
    op.drop_index("idx_lot_audit_actor", table_name="lot_audit_entries")
    op.drop_index("idx_lot_audit_action", table_name="lot_audit_entries")
    op.drop_table("lot_audit_entries")
    op.drop_table("lots")
    op.drop_index("idx_user_history_target", table_name="user_history_entries")
    op.drop_table("user_history_entries")
    op.drop_table("users")
