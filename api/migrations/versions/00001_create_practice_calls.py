"""Create practice_calls table.

Revision ID: 00001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'practice_calls',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('external_call_id', sa.String(128), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('scenario', sa.String(255), nullable=True),
        sa.Column('participant_name', sa.String(255), nullable=True),
        # Lifecycle
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('outcome', sa.String(20), nullable=True),  # PASSED, IMPROVE, N/A
        sa.Column('notes', sa.Text(), nullable=True),
        # Provider data
        sa.Column('call_duration', sa.Integer(), nullable=True),
        sa.Column('call_cost', sa.Float(), nullable=True),
        sa.Column('call_status', sa.String(50), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('audio_recording_url', sa.String(1024), nullable=True),
        # Polling
        sa.Column('poll_state', sa.String(20), nullable=True),
        sa.Column('poll_attempts', sa.Integer(), nullable=True),
        # Evaluation
        sa.Column('overall_score', sa.Integer(), nullable=True),
        sa.Column('tone_of_voice_score', sa.Integer(), nullable=True),
        sa.Column('building_rapport_score', sa.Integer(), nullable=True),
        sa.Column('showing_empathy_score', sa.Integer(), nullable=True),
        sa.Column('handling_skills_score', sa.Integer(), nullable=True),
        sa.Column('knowledge_score', sa.Integer(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('evaluation_source', sa.String(20), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("outcome IN ('PASSED', 'IMPROVE', 'N/A')", name='ck_practice_calls_outcome'),
    )
    op.create_index('ix_practice_calls_external_call_id', 'practice_calls', ['external_call_id'])
    op.create_index('ix_practice_calls_user_id', 'practice_calls', ['user_id'])
    # Pending-evaluation and recovery scans
    op.create_index('ix_practice_calls_evaluated_at', 'practice_calls', ['evaluated_at'])


def downgrade() -> None:
    op.drop_index('ix_practice_calls_evaluated_at', table_name='practice_calls')
    op.drop_index('ix_practice_calls_user_id', table_name='practice_calls')
    op.drop_index('ix_practice_calls_external_call_id', table_name='practice_calls')
    op.drop_table('practice_calls')
