"""create_project_site_tracker_schema

Creates the location reference tables, project sites, users,
notifications and CSV import jobs.

Revision ID: 3c7d2a91e4f0
Revises:
Create Date: 2026-03-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c7d2a91e4f0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(50), nullable=False, unique=True),
        sa.Column('email', sa.String(100), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='Viewer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Reference data
    op.create_table(
        'provinces',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('region_code', sa.String(10), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_provinces_name', 'provinces', ['name'])

    op.create_table(
        'districts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('province_id', sa.Integer(), sa.ForeignKey('provinces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('district_code', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_districts_province_id', 'districts', ['province_id'])

    op.create_table(
        'municipalities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('province_id', sa.Integer(), sa.ForeignKey('provinces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('district_id', sa.Integer(), sa.ForeignKey('districts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('municipality_code', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_municipalities_province_id', 'municipalities', ['province_id'])
    op.create_index('ix_municipalities_name', 'municipalities', ['name'])

    op.create_table(
        'barangays',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('municipality_id', sa.Integer(), sa.ForeignKey('municipalities.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('barangay_code', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_barangays_municipality_id', 'barangays', ['municipality_id'])

    op.create_table(
        'project_types',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('code_prefix', sa.String(20), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color_code', sa.String(7), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # Project sites
    op.create_table(
        'project_sites',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('site_code', sa.String(30), nullable=False, unique=True),
        sa.Column('project_type_id', sa.Integer(), sa.ForeignKey('project_types.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('site_name', sa.String(150), nullable=False),
        sa.Column('barangay_id', sa.Integer(), sa.ForeignKey('barangays.id', ondelete='SET NULL'), nullable=True),
        sa.Column('municipality_id', sa.Integer(), sa.ForeignKey('municipalities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('province_id', sa.Integer(), sa.ForeignKey('provinces.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('district_id', sa.Integer(), sa.ForeignKey('districts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('latitude', sa.Numeric(10, 8), nullable=False),
        sa.Column('longitude', sa.Numeric(11, 8), nullable=False),
        sa.Column('activation_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'project_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_site_id', sa.Integer(), sa.ForeignKey('project_sites.id', ondelete='CASCADE'), nullable=False),
        sa.Column('old_status', sa.String(20), nullable=True),
        sa.Column('new_status', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_project_status_history_project_site_id', 'project_status_history', ['project_site_id'])

    # Import jobs and notifications
    op.create_table(
        'csv_imports',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('original_filename', sa.String(255), nullable=True),
        sa.Column('total_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('success_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conflict_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors_json', sa.Text(), nullable=True),
        sa.Column('imported_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_csv_imports_status', 'csv_imports', ['status'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data_json', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('csv_imports')
    op.drop_table('project_status_history')
    op.drop_table('project_sites')
    op.drop_table('project_types')
    op.drop_table('barangays')
    op.drop_table('municipalities')
    op.drop_table('districts')
    op.drop_table('provinces')
    op.drop_table('users')
