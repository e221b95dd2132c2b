"""Part installation: placement columns and optimistic version counter on parts

Revision ID: b2e7d4c9f512
Revises: a1f0c2d3e401
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "b2e7d4c9f512"
down_revision = "a1f0c2d3e401"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("parts", schema=None) as batch_op:
        batch_op.add_column(sa.Column("installed_location", sa.String(length=200), nullable=True))
        batch_op.add_column(sa.Column("installed_section", sa.String(length=200), nullable=True))
        batch_op.add_column(sa.Column("installed_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("installed_by", sa.String(length=32), nullable=True,
            comment="Actor id of the track worker who installed the part"))
        batch_op.add_column(sa.Column("version", sa.Integer(), nullable=False, server_default="1"))


def downgrade():
    with op.batch_alter_table("parts", schema=None) as batch_op:
        batch_op.drop_column("version")
        batch_op.drop_column("installed_by")
        batch_op.drop_column("installed_at")
        batch_op.drop_column("installed_section")
        batch_op.drop_column("installed_location")
