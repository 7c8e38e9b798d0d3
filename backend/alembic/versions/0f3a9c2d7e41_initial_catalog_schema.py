"""initial_catalog_schema

Revision ID: 0f3a9c2d7e41
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0f3a9c2d7e41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create library folder, media item, scan run and user data tables."""
    op.create_table(
        'library_folders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('path', sa.String(1024), nullable=False),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('provider_folder_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'path', name='uq_library_folders_user_path'),
    )

    op.create_table(
        'media_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'folder_id',
            sa.String(36),
            sa.ForeignKey('library_folders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('title', sa.String(1024), nullable=False),
        sa.Column('filename', sa.String(1024), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('mime_type', sa.String(255), nullable=True),
        sa.Column('provider_item_id', sa.String(255), nullable=False),
        sa.Column('download_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            'user_id', 'provider_item_id', name='uq_media_items_user_provider_item'
        ),
    )
    op.create_index(
        'ix_media_items_user_created',
        'media_items',
        ['user_id', 'created_at']
    )
    op.create_index('ix_media_items_folder_id', 'media_items', ['folder_id'])

    op.create_table(
        'scan_runs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column(
            'folder_id',
            sa.String(36),
            sa.ForeignKey('library_folders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('root_provider_folder_id', sa.String(255), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'QUEUED', 'TRAVERSING', 'COMPLETED', 'ABORTED',
                name='scanrunstatus',
            ),
            nullable=False,
        ),
        sa.Column('folders_scanned', sa.Integer(), nullable=True),
        sa.Column('folders_failed', sa.Integer(), nullable=True),
        sa.Column('files_seen', sa.Integer(), nullable=True),
        sa.Column('items_found', sa.Integer(), nullable=True),
        sa.Column('items_added', sa.Integer(), nullable=True),
        sa.Column('items_failed', sa.Integer(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_scan_runs_user_created', 'scan_runs', ['user_id', 'created_at'])
    op.create_index('ix_scan_runs_status', 'scan_runs', ['status'])
    op.create_index('ix_scan_runs_folder_id', 'scan_runs', ['folder_id'])

    op.create_table(
        'user_data',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop all catalog tables."""
    op.drop_table('user_data')
    op.drop_index('ix_scan_runs_folder_id', 'scan_runs')
    op.drop_index('ix_scan_runs_status', 'scan_runs')
    op.drop_index('ix_scan_runs_user_created', 'scan_runs')
    op.drop_table('scan_runs')
    op.drop_index('ix_media_items_folder_id', 'media_items')
    op.drop_index('ix_media_items_user_created', 'media_items')
    op.drop_table('media_items')
    op.drop_table('library_folders')
