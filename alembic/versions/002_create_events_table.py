"""Create events table

Revision ID: 002_events
Revises: 001_applications
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_events'
down_revision = '001_applications'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'events',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('app_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('event', sa.String(100), nullable=False),
        sa.Column('user_id', sa.String(200), nullable=True),
        sa.Column('session_id', sa.String(200), nullable=True),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('referrer', sa.Text, nullable=True),
        sa.Column('device', sa.String(20), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=False),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['app_id'], ['applications.id'], ),
    )

    # Single-column indexes
    op.create_index('ix_events_app_id', 'events', ['app_id'])
    op.create_index('ix_events_event', 'events', ['event'])
    op.create_index('ix_events_user_id', 'events', ['user_id'])
    op.create_index('ix_events_session_id', 'events', ['session_id'])
    op.create_index('ix_events_timestamp', 'events', ['timestamp'])

    # Every aggregation filters by app_id first
    op.create_index('idx_events_app_event_time', 'events', ['app_id', 'event', 'timestamp'])
    op.create_index('idx_events_app_user_time', 'events', ['app_id', 'user_id', 'timestamp'])
    op.create_index('idx_events_app_session_time', 'events', ['app_id', 'session_id', 'timestamp'])
    op.create_index('idx_events_app_time', 'events', ['app_id', 'timestamp'])


def downgrade():
    op.drop_index('idx_events_app_time', table_name='events')
    op.drop_index('idx_events_app_session_time', table_name='events')
    op.drop_index('idx_events_app_user_time', table_name='events')
    op.drop_index('idx_events_app_event_time', table_name='events')
    op.drop_index('ix_events_timestamp', table_name='events')
    op.drop_index('ix_events_session_id', table_name='events')
    op.drop_index('ix_events_user_id', table_name='events')
    op.drop_index('ix_events_event', table_name='events')
    op.drop_index('ix_events_app_id', table_name='events')

    op.drop_table('events')
