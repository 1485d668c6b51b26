"""initial play schema

Revision ID: a1c2e3f4a5b6
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c2e3f4a5b6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'quizzes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('activity_ids', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('use_custom_survey_questions', sa.Boolean(), nullable=False),
        sa.Column('exclude_default_survey_questions', sa.Boolean(), nullable=False),
        sa.Column('survey_questions', sa.JSON(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'courses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('trial_quiz_id', sa.Uuid(), sa.ForeignKey('quizzes.id'), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'course_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_id', sa.Uuid(), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('start_date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date_time', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_course_sessions_course_id', 'course_sessions', ['course_id'])

    op.create_table(
        'course_registrations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_id', sa.Uuid(), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('course_id', 'user_id', name='uq_course_registrations_course_user'),
    )
    op.create_index('ix_course_registrations_user_id', 'course_registrations', ['user_id'])

    op.create_table(
        'scheduled_quizzes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_id', sa.Uuid(), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('course_sessions.id'), nullable=False),
        sa.Column('quiz_id', sa.Uuid(), sa.ForeignKey('quizzes.id'), nullable=False),
        sa.Column('start_date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('play_duration', sa.BigInteger(), nullable=False),
        sa.Column('assessment_type', sa.String(50), nullable=False),
        sa.Column('fixed_difficulty', sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('start_date_time < end_date_time', name='ck_scheduled_quizzes_window'),
    )
    op.create_index('ix_scheduled_quizzes_session_id', 'scheduled_quizzes', ['session_id'])
    op.create_index('idx_scheduled_quizzes_course_end', 'scheduled_quizzes', ['course_id', 'end_date_time'])

    op.create_table(
        'scheduled_quiz_user_starts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('scheduled_quiz_id', sa.Uuid(), sa.ForeignKey('scheduled_quizzes.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('server_timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('scheduled_quiz_id', 'user_id', name='uq_scheduled_quiz_user_starts_quiz_user'),
    )
    op.create_index('ix_scheduled_quiz_user_starts_user_id', 'scheduled_quiz_user_starts', ['user_id'])

    op.create_table(
        'activity_user_answers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('activity_id', sa.String(64), nullable=False),
        sa.Column('activity_version', sa.Integer(), nullable=False),
        sa.Column('scheduled_quiz_id', sa.Uuid(), nullable=True),
        sa.Column('play_context_id', sa.String(64), nullable=True),
        sa.Column('course_context_id', sa.Uuid(), nullable=True),
        sa.Column('activity_answer_type', sa.String(50), nullable=False),
        sa.Column('activity_play_time', sa.Integer(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('difficulty', sa.Float(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('server_timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'activity_id', 'timestamp', name='uq_activity_user_answers_user_activity_ts'),
    )
    op.create_index('ix_activity_user_answers_user_id', 'activity_user_answers', ['user_id'])
    op.create_index(
        'uq_activity_user_answers_sq_activity_user',
        'activity_user_answers',
        ['scheduled_quiz_id', 'activity_id', 'user_id'],
        unique=True,
        postgresql_where=sa.text('scheduled_quiz_id IS NOT NULL'),
    )
    op.create_index('idx_activity_user_answers_sq_user', 'activity_user_answers', ['scheduled_quiz_id', 'user_id'])
    op.create_index('idx_activity_user_answers_context_user', 'activity_user_answers', ['play_context_id', 'user_id'])

    op.create_table(
        'survey_answers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('scheduled_quiz_id', sa.Uuid(), sa.ForeignKey('scheduled_quizzes.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('server_timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('scheduled_quiz_id', 'user_id', name='uq_survey_answers_quiz_user'),
    )
    op.create_index('ix_survey_answers_user_id', 'survey_answers', ['user_id'])

    op.create_table(
        'play_contexts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('context_id', sa.String(64), nullable=False, unique=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('play_type', sa.String(32), nullable=False),
        sa.Column('descriptor', sa.String(255), nullable=True),
        sa.Column('activity_ids', sa.JSON(), nullable=False),
        sa.Column('additional_activity_ids', sa.JSON(), nullable=False),
        sa.Column('course_id', sa.Uuid(), sa.ForeignKey('courses.id'), nullable=True),
        sa.Column('scheduled_quiz_id', sa.Uuid(), nullable=True),
        sa.Column('log_answers', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_play_contexts_user_id', 'play_contexts', ['user_id'])
    op.create_index('idx_play_contexts_user_course_type', 'play_contexts', ['user_id', 'course_id', 'play_type'])


def downgrade() -> None:
    op.drop_table('play_contexts')
    op.drop_table('survey_answers')
    op.drop_table('activity_user_answers')
    op.drop_table('scheduled_quiz_user_starts')
    op.drop_table('scheduled_quizzes')
    op.drop_table('course_registrations')
    op.drop_table('course_sessions')
    op.drop_table('courses')
    op.drop_table('quizzes')
