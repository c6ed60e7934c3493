"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


survey_status = sa.Enum('DRAFT', 'ACTIVE', 'PAUSED', 'CLOSED', name='surveystatus')
question_type = sa.Enum(
    'SHORT_TEXT', 'LONG_TEXT', 'MULTIPLE_CHOICE', 'CHECKBOXES', 'DROPDOWN', 'YES_NO',
    'NUMBER', 'RATING_SCALE', 'NPS', 'SLIDER', 'DATE', 'EMAIL', 'RANKING',
    name='questiontype',
)
logic_type = sa.Enum('SKIP_LOGIC', 'BRANCHING', 'DISPLAY_LOGIC', name='logictype')
quota_action = sa.Enum('END_SURVEY', 'REDIRECT', 'CONTINUE', name='quotaaction')
quota_status = sa.Enum('NORMAL', 'OVER_QUOTA', 'SCREENED', name='quotastatus')
terminal_reason = sa.Enum('LOGIC_END', 'QUOTA_END_SURVEY', 'QUOTA_REDIRECT', name='terminalreason')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Surveys table
    op.create_table(
        'surveys',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('status', survey_status, default='DRAFT'),
        sa.Column('close_date', sa.DateTime(timezone=True)),
        sa.Column('response_limit', sa.Integer()),
        sa.Column('quotas_enabled', sa.Boolean(), default=True),
        *_timestamps(),
    )

    # Questions table
    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('survey_id', sa.String(36), sa.ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('type', question_type, default='SHORT_TEXT'),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('order', sa.Integer(), default=0),
        sa.Column('is_required', sa.Boolean(), default=False),
        *_timestamps(),
    )

    # Question options table
    op.create_table(
        'question_options',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('question_id', sa.String(36), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('text', sa.String(500), nullable=False),
        sa.Column('value', sa.String(255)),
        sa.Column('order', sa.Integer(), default=0),
    )

    # Logic rules table
    op.create_table(
        'survey_logic',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('survey_id', sa.String(36), sa.ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('source_question_id', sa.String(36), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('target_question_id', sa.String(36), sa.ForeignKey('questions.id', ondelete='SET NULL')),
        sa.Column('type', logic_type, default='SKIP_LOGIC'),
        sa.Column('priority', sa.Integer(), default=0),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conditions', sa.JSON(), nullable=False),
        sa.Column('actions', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_survey_logic_order', 'survey_logic', ['survey_id', 'priority', 'position'])

    # Quotas table
    op.create_table(
        'quotas',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('survey_id', sa.String(36), sa.ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('limit', sa.Integer(), nullable=False),
        sa.Column('current_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('action', quota_action, default='END_SURVEY'),
        sa.Column('action_message', sa.Text()),
        sa.Column('action_url', sa.String(2048)),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conditions', sa.JSON(), nullable=False),
        sa.Column('alert_at_50', sa.Boolean(), default=False),
        sa.Column('alert_at_80', sa.Boolean(), default=False),
        sa.Column('alert_at_100', sa.Boolean(), default=True),
        sa.Column('alert_emails', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('"limit" >= 1', name='ck_quotas_limit_positive'),
        sa.CheckConstraint('current_count >= 0', name='ck_quotas_count_non_negative'),
    )

    # Responses table
    op.create_table(
        'responses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('survey_id', sa.String(36), sa.ForeignKey('surveys.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('is_complete', sa.Boolean(), default=False, index=True),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('quota_status', quota_status, default='NORMAL'),
        sa.Column('terminal_reason', terminal_reason),
        sa.Column('terminal_quota_id', sa.String(36)),
        sa.Column('terminal_message', sa.Text()),
        sa.Column('redirect_url', sa.String(2048)),
        sa.Column('matched_quota_ids', sa.JSON(), nullable=False),
        sa.Column('response_metadata', sa.JSON()),
        *_timestamps(),
    )

    # Answers table
    op.create_table(
        'answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('response_id', sa.String(36), sa.ForeignKey('responses.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('question_id', sa.String(36), sa.ForeignKey('questions.id'), nullable=False, index=True),
        sa.Column('option_id', sa.String(36), sa.ForeignKey('question_options.id', ondelete='SET NULL')),
        sa.Column('value', sa.JSON()),
        *_timestamps(),
    )

    # Quota responses table (one row per counted response per quota)
    op.create_table(
        'quota_responses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quota_id', sa.String(36), sa.ForeignKey('quotas.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('response_id', sa.String(36), sa.ForeignKey('responses.id', ondelete='CASCADE'), nullable=False, index=True),
        *_timestamps(),
        sa.UniqueConstraint('quota_id', 'response_id', name='uq_quota_responses_quota_response'),
    )


def downgrade() -> None:
    op.drop_table('quota_responses')
    op.drop_table('answers')
    op.drop_table('responses')
    op.drop_table('quotas')
    op.drop_index('ix_survey_logic_order', table_name='survey_logic')
    op.drop_table('survey_logic')
    op.drop_table('question_options')
    op.drop_table('questions')
    op.drop_table('surveys')

    for enum in (terminal_reason, quota_status, quota_action, logic_type, question_type, survey_status):
        enum.drop(op.get_bind(), checkfirst=True)
