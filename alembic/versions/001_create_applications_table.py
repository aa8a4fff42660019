"""Create applications table

Revision ID: 001_applications
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_applications'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'applications',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('domain', sa.String(500), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('api_key_hash', sa.String(128), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(200), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Owner listing and the authentication candidate scan
    op.create_index('idx_applications_owner_active', 'applications', ['created_by', 'is_active'])
    op.create_index('idx_applications_active_expiry', 'applications', ['is_active', 'expires_at'])


def downgrade():
    op.drop_index('idx_applications_active_expiry', table_name='applications')
    op.drop_index('idx_applications_owner_active', table_name='applications')
    op.drop_table('applications')
