"""initial_scan_engine_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


scan_job_status = sa.Enum(
    'pending', 'running', 'paused', 'completed', 'failed', 'cancelled', name='scanjobstatus'
)
scan_type = sa.Enum('lighthouse', 'axe', 'both', name='scantype')
page_scan_status = sa.Enum('success', 'failed', name='pagescanstatus')
activity_severity = sa.Enum('info', 'warning', 'error', name='activityseverity')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # Create sites table
    op.create_table(
        'sites',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('sitemap_url', sa.String(2048), nullable=True),
        sa.Column('axe_score', sa.Integer(), nullable=True),
        sa.Column('axe_last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lighthouse_score', sa.Integer(), nullable=True),
        sa.Column('lighthouse_last_updated', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sites_id'), 'sites', ['id'], unique=False)

    # Create scan_jobs table
    op.create_table(
        'scan_jobs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('site_id', sa.String(), nullable=False),
        sa.Column('scan_type', scan_type, nullable=False),
        sa.Column('status', scan_job_status, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('page_urls', sa.JSON(), nullable=False),
        sa.Column('pages_total', sa.Integer(), nullable=False, server_default='0'),
        # checkpoint
        sa.Column('last_scanned_page_index', sa.Integer(), nullable=False, server_default='-1'),
        sa.Column('pages_scanned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pages_succeeded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pages_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_sum', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_violations_sum', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('worst_page_url', sa.String(2048), nullable=True),
        sa.Column('worst_page_score', sa.Integer(), nullable=True),
        sa.Column('worst_page_violation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('worst_page_violations', sa.JSON(), nullable=True),
        sa.Column('severity_breakdown', sa.JSON(), nullable=True),
        sa.Column('engine_score_sums', sa.JSON(), nullable=True),
        # final aggregates
        sa.Column('average_score', sa.Integer(), nullable=True),
        sa.Column('axe_score', sa.Integer(), nullable=True),
        sa.Column('lighthouse_score', sa.Integer(), nullable=True),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('celery_task_id', sa.String(128), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('pages_scanned >= 0 AND pages_scanned <= pages_total', name='check_pages_scanned_range'),
        sa.CheckConstraint('last_scanned_page_index < pages_total', name='check_last_index_range'),
    )
    op.create_index(op.f('ix_scan_jobs_id'), 'scan_jobs', ['id'], unique=False)
    op.create_index(op.f('ix_scan_jobs_site_id'), 'scan_jobs', ['site_id'], unique=False)
    op.create_index(op.f('ix_scan_jobs_status'), 'scan_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_scan_jobs_celery_task_id'), 'scan_jobs', ['celery_task_id'], unique=False)
    op.create_index('idx_scan_jobs_site_status', 'scan_jobs', ['site_id', 'status'], unique=False)

    # Create page_scan_results table
    op.create_table(
        'page_scan_results',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('scan_job_id', sa.String(), nullable=False),
        sa.Column('page_url', sa.String(2048), nullable=False),
        sa.Column('page_index', sa.Integer(), nullable=False),
        sa.Column('status', page_scan_status, nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('violation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('violations', sa.JSON(), nullable=True),
        sa.Column('engine_scores', sa.JSON(), nullable=True),
        sa.Column('category_scores', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['scan_job_id'], ['scan_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scan_job_id', 'page_index', name='uq_page_scan_results_job_index'),
    )
    op.create_index(op.f('ix_page_scan_results_id'), 'page_scan_results', ['id'], unique=False)
    op.create_index(op.f('ix_page_scan_results_scan_job_id'), 'page_scan_results', ['scan_job_id'], unique=False)
    op.create_index(op.f('ix_page_scan_results_status'), 'page_scan_results', ['status'], unique=False)

    # Create activity_log table
    op.create_table(
        'activity_log',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('event_description', sa.Text(), nullable=False),
        sa.Column('entity_type', sa.String(32), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=True),
        sa.Column('site_id', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('severity', activity_severity, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_activity_log_id'), 'activity_log', ['id'], unique=False)
    op.create_index(op.f('ix_activity_log_event_type'), 'activity_log', ['event_type'], unique=False)
    op.create_index(op.f('ix_activity_log_entity_id'), 'activity_log', ['entity_id'], unique=False)
    op.create_index(op.f('ix_activity_log_site_id'), 'activity_log', ['site_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('activity_log')
    op.drop_table('page_scan_results')
    op.drop_table('scan_jobs')
    op.drop_table('sites')

    bind = op.get_bind()
    for enum_type in (activity_severity, page_scan_status, scan_job_status, scan_type):
        enum_type.drop(bind, checkfirst=True)
