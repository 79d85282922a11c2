"""baseline_reporting_schema

Revision ID: 000000000000
Revises:
Create Date: 2025-01-20 00:00:00.000000

Baseline for the reporting pipeline: quotes, catalog_entries,
period_reports and event_logs. Column types are portable (String ids, JSON)
so the same migration runs on Postgres and SQLite.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'quotes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('themes', sa.JSON(), nullable=False),
        sa.Column('iso_year', sa.Integer(), nullable=False),
        sa.Column('iso_week', sa.Integer(), nullable=False),
        sa.Column('year_number', sa.Integer(), nullable=False),
        sa.Column('month_number', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_quotes_user_id', 'quotes', ['user_id'])
    op.create_index('idx_quotes_user_week', 'quotes', ['user_id', 'iso_year', 'iso_week'])
    op.create_index('idx_quotes_user_month', 'quotes', ['user_id', 'year_number', 'month_number'])

    op.create_table(
        'catalog_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.String(), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_catalog_entries_slug', 'catalog_entries', ['slug'], unique=True)
    op.create_index('ix_catalog_entries_is_active', 'catalog_entries', ['is_active'])

    op.create_table(
        'period_reports',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('period_type', sa.String(), nullable=False),
        sa.Column('period_year', sa.Integer(), nullable=False),
        sa.Column('period_number', sa.Integer(), nullable=False),
        sa.Column('quote_ids', sa.JSON(), nullable=False),
        # NULL marks a legacy report; readers recompute and persist it
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('dominant_themes', sa.JSON(), nullable=False),
        sa.Column('recommendations', sa.JSON(), nullable=False),
        sa.Column('feedback', sa.JSON(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('generation_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'period_type', 'period_year', 'period_number',
            name='uq_period_reports_user_period',
        )
    )
    op.create_index('ix_period_reports_user_id', 'period_reports', ['user_id'])
    op.create_index('idx_period_reports_user_sent', 'period_reports', ['user_id', 'sent_at'])

    op.create_table(
        'event_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('event_name', sa.String(), nullable=False),
        sa.Column('properties', sa.JSON(), nullable=True),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_event_logs_created_at', 'event_logs', ['created_at'])
    op.create_index('ix_event_logs_event_name', 'event_logs', ['event_name'])
    op.create_index('ix_event_logs_user_id', 'event_logs', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_event_logs_user_id', table_name='event_logs')
    op.drop_index('ix_event_logs_event_name', table_name='event_logs')
    op.drop_index('ix_event_logs_created_at', table_name='event_logs')
    op.drop_table('event_logs')

    op.drop_index('idx_period_reports_user_sent', table_name='period_reports')
    op.drop_index('ix_period_reports_user_id', table_name='period_reports')
    op.drop_table('period_reports')

    op.drop_index('ix_catalog_entries_is_active', table_name='catalog_entries')
    op.drop_index('ix_catalog_entries_slug', table_name='catalog_entries')
    op.drop_table('catalog_entries')

    op.drop_index('idx_quotes_user_month', table_name='quotes')
    op.drop_index('idx_quotes_user_week', table_name='quotes')
    op.drop_index('ix_quotes_user_id', table_name='quotes')
    op.drop_table('quotes')
