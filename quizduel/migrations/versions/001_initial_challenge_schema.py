"""initial challenge schema

Revision ID: 001_initial_challenge_schema
Revises:
Create Date: 2025-03-02 10:14:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from quizduel.migrations.util import get_uuid_type


# revision identifiers, used by Alembic.
revision: str = '001_initial_challenge_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    uuid = get_uuid_type()

    op.create_table(
        'players',
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('payout_address', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('player_id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'challenges',
        sa.Column('challenge_id', uuid, nullable=False),
        sa.Column('player_one_id', uuid, nullable=False),
        sa.Column('player_two_id', uuid, nullable=False),
        sa.Column('quiz_id', sa.String(length=64), nullable=True),
        sa.Column('course_id', sa.String(length=64), nullable=True),
        sa.Column('module_id', sa.String(length=64), nullable=True),
        sa.Column('questions', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=False, server_default='300'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'expired', 'error')",
            name='valid_challenge_status',
        ),
        sa.CheckConstraint('player_one_id <> player_two_id', name='distinct_challenge_players'),
        sa.ForeignKeyConstraint(['player_one_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['player_two_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('challenge_id'),
    )
    op.create_index('ix_challenges_course_id', 'challenges', ['course_id'])
    op.create_index('ix_challenges_player_one', 'challenges', ['player_one_id'])
    op.create_index('ix_challenges_player_two', 'challenges', ['player_two_id'])
    op.create_index('ix_challenges_status_expires', 'challenges', ['status', 'expires_at'])

    op.create_table(
        'challenge_submissions',
        sa.Column('submission_id', uuid, nullable=False),
        sa.Column('challenge_id', uuid, nullable=False),
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('total_time_ms', sa.Integer(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.CheckConstraint('total_time_ms >= 0', name='non_negative_total_time'),
        sa.ForeignKeyConstraint(['challenge_id'], ['challenges.challenge_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['player_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('submission_id'),
        sa.UniqueConstraint('challenge_id', 'player_id', name='uq_submission_challenge_player'),
    )
    op.create_index(
        'ix_submissions_challenge_submitted', 'challenge_submissions', ['challenge_id', 'submitted_at']
    )
    op.create_index(
        'ix_submissions_player_submitted', 'challenge_submissions', ['player_id', 'submitted_at']
    )

    op.create_table(
        'challenge_results',
        sa.Column('result_id', uuid, nullable=False),
        sa.Column('challenge_id', uuid, nullable=False),
        sa.Column('player_one_id', uuid, nullable=False),
        sa.Column('player_two_id', uuid, nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('player_one_score', sa.Integer(), nullable=False),
        sa.Column('player_two_score', sa.Integer(), nullable=False),
        sa.Column('player_one_percentage', sa.Integer(), nullable=False),
        sa.Column('player_two_percentage', sa.Integer(), nullable=False),
        sa.Column('player_one_time_ms', sa.Integer(), nullable=False),
        sa.Column('player_two_time_ms', sa.Integer(), nullable=False),
        sa.Column('winner_id', uuid, nullable=True),
        sa.Column('is_draw', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('winner_reason', sa.String(length=100), nullable=False),
        sa.Column('detailed_results', sa.JSON(), nullable=False),
        sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('evaluation_method', sa.String(length=30), nullable=False, server_default='automatic'),
        sa.Column('integrity_hash', sa.String(length=64), nullable=False),
        sa.Column('rewards_distributed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('rewards_distributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notifications_sent', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('notifications_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['challenge_id'], ['challenges.challenge_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('result_id'),
        sa.UniqueConstraint('challenge_id'),
    )
    op.create_index('ix_challenge_results_player_one_id', 'challenge_results', ['player_one_id'])
    op.create_index('ix_challenge_results_player_two_id', 'challenge_results', ['player_two_id'])

    op.create_table(
        'player_points',
        sa.Column('points_id', uuid, nullable=False),
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['player_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('points_id'),
        sa.UniqueConstraint('player_id'),
    )
    op.create_index('ix_player_points_total', 'player_points', ['total_points'])

    op.create_table(
        'points_events',
        sa.Column('event_id', uuid, nullable=False),
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('activity', sa.String(length=50), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('course_id', sa.String(length=64), nullable=True),
        sa.Column('reference_id', uuid, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['player_id'], ['players.player_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('event_id'),
        sa.UniqueConstraint('player_id', 'reference_id', name='uq_points_event_player_reference'),
    )
    op.create_index('ix_points_events_player_id', 'points_events', ['player_id'])
    op.create_index('ix_points_events_course_id', 'points_events', ['course_id'])
    op.create_index('ix_points_events_reference_id', 'points_events', ['reference_id'])
    op.create_index('ix_points_events_player_created', 'points_events', ['player_id', 'created_at'])

    op.create_table(
        'reward_allocations',
        sa.Column('allocation_id', uuid, nullable=False),
        sa.Column('result_id', uuid, nullable=False),
        sa.Column('challenge_id', uuid, nullable=False),
        sa.Column('player_id', uuid, nullable=False),
        sa.Column('reward_type', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=False),
        sa.Column('payout_address', sa.String(length=64), nullable=True),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('transaction_ref', sa.String(length=128), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('allocation_id'),
        sa.UniqueConstraint(
            'result_id', 'player_id', 'reward_type', 'attempt', name='uq_reward_allocation_attempt'
        ),
    )
    op.create_index('ix_reward_allocations_result_id', 'reward_allocations', ['result_id'])
    op.create_index('ix_reward_allocations_challenge_id', 'reward_allocations', ['challenge_id'])
    op.create_index('ix_reward_allocations_player_id', 'reward_allocations', ['player_id'])


def downgrade() -> None:
    op.drop_index('ix_reward_allocations_player_id', table_name='reward_allocations')
    op.drop_index('ix_reward_allocations_challenge_id', table_name='reward_allocations')
    op.drop_index('ix_reward_allocations_result_id', table_name='reward_allocations')
    op.drop_table('reward_allocations')

    op.drop_index('ix_points_events_player_created', table_name='points_events')
    op.drop_index('ix_points_events_reference_id', table_name='points_events')
    op.drop_index('ix_points_events_course_id', table_name='points_events')
    op.drop_index('ix_points_events_player_id', table_name='points_events')
    op.drop_table('points_events')

    op.drop_index('ix_player_points_total', table_name='player_points')
    op.drop_table('player_points')

    op.drop_index('ix_challenge_results_player_two_id', table_name='challenge_results')
    op.drop_index('ix_challenge_results_player_one_id', table_name='challenge_results')
    op.drop_table('challenge_results')

    op.drop_index('ix_submissions_player_submitted', table_name='challenge_submissions')
    op.drop_index('ix_submissions_challenge_submitted', table_name='challenge_submissions')
    op.drop_table('challenge_submissions')

    op.drop_index('ix_challenges_status_expires', table_name='challenges')
    op.drop_index('ix_challenges_player_two', table_name='challenges')
    op.drop_index('ix_challenges_player_one', table_name='challenges')
    op.drop_index('ix_challenges_course_id', table_name='challenges')
    op.drop_table('challenges')

    op.drop_table('players')
