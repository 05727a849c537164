"""Initial schema: providers, categories, catalog entries, price history, raw messages

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIM = 768


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone_number'),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('markup_retail', sa.Numeric(10, 4), nullable=False, server_default='0.15'),
        sa.Column('markup_reseller', sa.Numeric(10, 4), nullable=False, server_default='0.05'),
        sa.Column('is_retail_percentage', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_reseller_percentage', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'catalog_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name_normalized', sa.Text(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('embedding', Vector(EMBEDDING_DIM), nullable=True),
        sa.Column('last_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('best_provider_id', sa.Integer(), nullable=True),
        sa.Column('suggested_price_retail', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('suggested_price_reseller', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['best_provider_id'], ['providers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_catalog_entries_embedding',
        'catalog_entries',
        ['embedding'],
        postgresql_using='hnsw',
        postgresql_with={'m': 16, 'ef_construction': 64},
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )

    # No foreign keys: history outlives admin deletion of its parents
    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('catalog_entry_id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('raw_name', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_price_history_catalog_entry_id', 'price_history', ['catalog_entry_id'])
    op.create_index('ix_price_history_provider_id', 'price_history', ['provider_id'])

    op.create_table(
        'raw_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=128), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('provider_id', sa.Integer(), nullable=True),
        sa.Column('products_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['providers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id'),
    )
    op.create_index('ix_raw_messages_phone_number', 'raw_messages', ['phone_number'])
    op.create_index('ix_raw_messages_status', 'raw_messages', ['status'])


def downgrade() -> None:
    op.drop_index('ix_raw_messages_status', table_name='raw_messages')
    op.drop_index('ix_raw_messages_phone_number', table_name='raw_messages')
    op.drop_table('raw_messages')
    op.drop_index('ix_price_history_provider_id', table_name='price_history')
    op.drop_index('ix_price_history_catalog_entry_id', table_name='price_history')
    op.drop_table('price_history')
    op.drop_index('idx_catalog_entries_embedding', table_name='catalog_entries')
    op.drop_table('catalog_entries')
    op.drop_table('categories')
    op.drop_table('providers')
