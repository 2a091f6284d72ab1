"""Initial catalog sync schema

Revision ID: 5c2e81d4a7b0
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c2e81d4a7b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS catalog_sync")

    # Create sync_history table
    op.create_table('sync_history',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('sync_id', sa.String(length=50), nullable=False),
    sa.Column('profile_id', sa.Integer(), nullable=True),
    sa.Column('sync_type', sa.String(length=20), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('products_processed', sa.Integer(), nullable=False),
    sa.Column('products_created', sa.Integer(), nullable=False),
    sa.Column('products_updated', sa.Integer(), nullable=False),
    sa.Column('products_failed', sa.Integer(), nullable=False),
    sa.Column('error_count', sa.Integer(), nullable=False),
    sa.Column('started_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('duration_seconds', sa.Integer(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('sync_id'),
    schema='catalog_sync'
    )
    op.create_index(op.f('ix_catalog_sync_sync_history_profile_id'), 'sync_history', ['profile_id'], unique=False, schema='catalog_sync')
    op.create_index(op.f('ix_catalog_sync_sync_history_status'), 'sync_history', ['status'], unique=False, schema='catalog_sync')
    op.create_index(op.f('ix_catalog_sync_sync_history_started_at'), 'sync_history', ['started_at'], unique=False, schema='catalog_sync')

    # Create sync_profiles table
    op.create_table('sync_profiles',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('slug', sa.String(length=100), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('filters', sa.JSON(), nullable=True),
    sa.Column('settings', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('slug'),
    schema='catalog_sync'
    )
    op.create_index(op.f('ix_catalog_sync_sync_profiles_is_active'), 'sync_profiles', ['is_active'], unique=False, schema='catalog_sync')

    # Create products table
    op.create_table('products',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('sku', sa.String(length=255), nullable=False),
    sa.Column('reference', sa.String(length=255), nullable=True),
    sa.Column('reference_base', sa.String(length=255), nullable=True),
    sa.Column('parent_id', sa.Integer(), nullable=True),
    sa.Column('product_type', sa.String(length=20), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('name', sa.String(length=500), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('regular_price', sa.Float(), nullable=True),
    sa.Column('stock_quantity', sa.Integer(), nullable=True),
    sa.Column('stock_status', sa.String(length=20), nullable=True),
    sa.Column('categories', sa.JSON(), nullable=True),
    sa.Column('images', sa.JSON(), nullable=True),
    sa.Column('attributes', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('sku'),
    schema='catalog_sync'
    )
    op.create_index(op.f('ix_catalog_sync_products_reference'), 'products', ['reference'], unique=False, schema='catalog_sync')
    op.create_index(op.f('ix_catalog_sync_products_reference_base'), 'products', ['reference_base'], unique=False, schema='catalog_sync')
    op.create_index('ix_products_status', 'products', ['status'], unique=False, schema='catalog_sync')

    # Create categories table
    op.create_table('categories',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('reference', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('parent_reference', sa.String(length=255), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('reference'),
    schema='catalog_sync'
    )


def downgrade() -> None:
    op.drop_table('categories', schema='catalog_sync')
    op.drop_index('ix_products_status', table_name='products', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_products_reference_base'), table_name='products', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_products_reference'), table_name='products', schema='catalog_sync')
    op.drop_table('products', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_sync_profiles_is_active'), table_name='sync_profiles', schema='catalog_sync')
    op.drop_table('sync_profiles', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_sync_history_started_at'), table_name='sync_history', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_sync_history_status'), table_name='sync_history', schema='catalog_sync')
    op.drop_index(op.f('ix_catalog_sync_sync_history_profile_id'), table_name='sync_history', schema='catalog_sync')
    op.drop_table('sync_history', schema='catalog_sync')
