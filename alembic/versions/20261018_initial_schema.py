"""initial schema

Revision ID: 5f0c1a7e9b21
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5f0c1a7e9b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        'projects',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('platform', sa.String(length=50), nullable=False),
        sa.Column('public_key', sa.String(length=64), nullable=False),
        sa.Column('secret_key_hash', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('organization_id', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )
    op.create_index('ix_projects_public_key', 'projects', ['public_key'], unique=True)
    op.create_index('ix_projects_secret_key_hash', 'projects', ['secret_key_hash'], unique=False)

    # Event Store
    op.create_table(
        'error_events',
        sa.Column('id', sa.String(length=64), nullable=False),
        _ts('timestamp'),
        _ts('received_at'),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=255), nullable=False),
        sa.Column('handled', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('platform', sa.String(length=50), nullable=False),
        sa.Column('sdk', postgresql.JSONB(), nullable=False),
        sa.Column('sdk_version', sa.String(length=50), nullable=True),
        sa.Column('release', sa.String(length=255), nullable=True),
        sa.Column('environment', sa.String(length=100), server_default='production', nullable=False),
        sa.Column('server_name', sa.String(length=255), nullable=True),
        sa.Column('transaction', sa.String(length=255), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('method', sa.String(length=16), nullable=True),
        sa.Column('status_code', sa.Integer(), nullable=True),
        sa.Column('user_hash', sa.String(length=16), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('client_info', postgresql.JSONB(), nullable=True),
        sa.Column('exception', postgresql.JSONB(), nullable=True),
        sa.Column('exception_type', sa.String(length=255), nullable=True),
        sa.Column('exception_value', sa.Text(), nullable=True),
        sa.Column('exception_module', sa.String(length=255), nullable=True),
        sa.Column('stack_trace', postgresql.JSONB(), nullable=True),
        sa.Column('frames_count', sa.Integer(), nullable=True),
        sa.Column('request', postgresql.JSONB(), nullable=True),
        sa.Column('tags', postgresql.JSONB(), nullable=True),
        sa.Column('extra', postgresql.JSONB(), nullable=True),
        sa.Column('breadcrumbs', postgresql.JSONB(), nullable=True),
        sa.Column('contexts', postgresql.JSONB(), nullable=True),
        sa.Column('fingerprint', postgresql.JSONB(), nullable=False),
        sa.Column('is_sample', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('sample_rate', sa.Float(), server_default=sa.text('1.0'), nullable=False),
        sa.Column('group_id', sa.String(length=36), nullable=True),
        sa.Column('has_been_processed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_error_events_project_timestamp', 'error_events', ['project_id', 'timestamp'])
    op.create_index('ix_error_events_group_timestamp', 'error_events', ['group_id', 'timestamp'])

    op.create_table(
        'error_groups',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('fingerprint_hash', sa.String(length=64), nullable=False),
        sa.Column('fingerprint', postgresql.JSONB(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('type', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('platform', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='unresolved', nullable=False),
        sa.Column('event_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('user_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('ai_summary', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        _ts('first_seen'),
        _ts('last_seen'),
        _ts('resolved_at', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        # Concurrent first-seen inserts converge on one row
        sa.UniqueConstraint('project_id', 'fingerprint_hash', name='uq_error_groups_project_fingerprint_hash'),
    )
    op.create_index('ix_error_groups_project_status', 'error_groups', ['project_id', 'status'])
    op.create_index('ix_error_groups_project_last_seen', 'error_groups', ['project_id', 'last_seen'])

    op.create_table(
        'ai_analysis_cache',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('fingerprint_hash', sa.String(length=64), nullable=False),
        sa.Column('analysis_type', sa.String(length=32), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('model', sa.String(length=100), nullable=False),
        sa.Column('analysis_result', sa.Text(), nullable=False),
        sa.Column('prompt_hash', sa.String(length=16), nullable=False),
        sa.Column('confidence_score', sa.Float(), server_default=sa.text('0.8'), nullable=False),
        sa.Column('is_public', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('error_patterns', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('usage_count', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('projects_used', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('avg_feedback_score', sa.Float(), nullable=True),
        sa.Column('feedback_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('tokens_saved', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('cost_saved_cents', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ai_cache_fingerprint_type', 'ai_analysis_cache', ['fingerprint_hash', 'analysis_type'])
    op.create_index('ix_ai_analysis_cache_prompt_hash', 'ai_analysis_cache', ['prompt_hash'])

    # Similarity index
    op.create_table(
        'error_documents',
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('environment', sa.String(length=100), nullable=False),
        sa.Column('error_type', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', postgresql.JSONB(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('indexed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('event_id'),
    )
    op.create_index(
        'ix_error_documents_project_environment', 'error_documents', ['project_id', 'environment']
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_error_documents_project_environment', table_name='error_documents')
    op.drop_table('error_documents')
    op.drop_index('ix_ai_analysis_cache_prompt_hash', table_name='ai_analysis_cache')
    op.drop_index('ix_ai_cache_fingerprint_type', table_name='ai_analysis_cache')
    op.drop_table('ai_analysis_cache')
    op.drop_index('ix_error_groups_project_last_seen', table_name='error_groups')
    op.drop_index('ix_error_groups_project_status', table_name='error_groups')
    op.drop_table('error_groups')
    op.drop_index('ix_error_events_group_timestamp', table_name='error_events')
    op.drop_index('ix_error_events_project_timestamp', table_name='error_events')
    op.drop_table('error_events')
    op.drop_index('ix_projects_secret_key_hash', table_name='projects')
    op.drop_index('ix_projects_public_key', table_name='projects')
    op.drop_table('projects')
