"""Add poll_started_at column to practice_calls table.

Revision ID: 00002
Revises: 00001
Create Date: 2026-10-24

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00002'
down_revision = '00001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add poll_started_at column to practice_calls table."""
    op.add_column(
        'practice_calls',
        sa.Column('poll_started_at', sa.DateTime(), nullable=True)
    )


def downgrade() -> None:
    """Remove poll_started_at column from practice_calls table."""
    op.drop_column('practice_calls', 'poll_started_at')
