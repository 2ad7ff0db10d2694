"""create shedlock table

Revision ID: 0001_shedlock
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_shedlock"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "shedlock",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("lock_until", sa.DateTime(), nullable=False),
        sa.Column("locked_at", sa.DateTime(), nullable=False),
        sa.Column("locked_by", sa.String(length=255), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("shedlock")
