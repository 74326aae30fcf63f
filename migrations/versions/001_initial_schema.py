"""Initial schema: analyses, findings and custom rules

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Create analyses table
    op.create_table(
        'analyses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('uuid_generate_v4()')),
        sa.Column('owner', sa.String(length=255), nullable=False),
        sa.Column('repo', sa.String(length=255), nullable=False),
        sa.Column('pr_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_files', sa.Integer(), server_default='0'),
        sa.Column('total_findings', sa.Integer(), server_default='0'),
        sa.Column('critical_count', sa.Integer(), server_default='0'),
        sa.Column('high_count', sa.Integer(), server_default='0'),
        sa.Column('medium_count', sa.Integer(), server_default='0'),
        sa.Column('low_count', sa.Integer(), server_default='0'),
        sa.Column('info_count', sa.Integer(), server_default='0'),
        sa.Column('stage_errors', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb")),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_ms', sa.Integer(), server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_check_constraint('ck_analyses_status', 'analyses', "status IN ('pending', 'running', 'completed', 'failed')")
    op.create_index('idx_analyses_repo', 'analyses', ['owner', 'repo'])
    op.create_index('idx_analyses_started', 'analyses', [sa.text('started_at DESC')])

    # Create findings table
    op.create_table(
        'findings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('uuid_generate_v4()')),
        sa.Column('analysis_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('analyses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('rule_id', sa.String(length=100), nullable=False),
        sa.Column('rule_name', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('file', sa.String(length=1000), nullable=False),
        sa.Column('line', sa.Integer(), nullable=True),
        sa.Column('column', sa.Integer(), nullable=True),
        sa.Column('code', sa.Text(), nullable=True),
        sa.Column('fix_suggestion', sa.Text(), nullable=True),
    )
    op.create_check_constraint('ck_findings_severity', 'findings', "severity IN ('critical', 'high', 'medium', 'low', 'info')")
    op.create_check_constraint('ck_findings_type', 'findings', "type IN ('security', 'license', 'quality', 'custom')")
    op.create_index('idx_findings_analysis', 'findings', ['analysis_id', 'position'])
    op.create_index('idx_findings_severity', 'findings', ['severity'])

    # Create custom_rules table
    op.create_table(
        'custom_rules',
        sa.Column('id', sa.String(length=100), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('kind', sa.String(length=30), nullable=False, server_default='pattern'),
        sa.Column('pattern', sa.Text(), nullable=True),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False, server_default='custom'),
        sa.Column('enabled', sa.Boolean(), server_default='true'),
        sa.Column('fix_template', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_check_constraint('ck_custom_rules_kind', 'custom_rules', "kind IN ('pattern', 'dependency-check', 'license-check')")


def downgrade() -> None:
    op.drop_table('custom_rules')
    op.drop_index('idx_findings_severity', table_name='findings')
    op.drop_index('idx_findings_analysis', table_name='findings')
    op.drop_table('findings')
    op.drop_index('idx_analyses_started', table_name='analyses')
    op.drop_index('idx_analyses_repo', table_name='analyses')
    op.drop_table('analyses')
