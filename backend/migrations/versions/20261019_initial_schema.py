"""Initial back office schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Catalog: products, product_presentations
2. Stock ledger: stock_batches, stock_movements
3. Sales: sales, sale_items
4. Cash boxes: cash_boxes (single open box via unique open_slot), cash_movements
5. Fiscal: fiscal_documents (one per sale), annulments (one per document)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_name', ['name'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_is_active'), ['is_active'], unique=False)

    op.create_table('product_presentations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('factor', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('factor >= 1', name='ck_presentations_factor_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_presentations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_presentations_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 2. STOCK LEDGER
    # ==========================================================================
    op.create_table('stock_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=False),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('quantity_initial', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity_available >= 0', name='ck_stock_batches_available_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'batch_number', name='uq_stock_batches_product_batch'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_batches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_batches_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_stock_batches_product_expiration', ['product_id', 'expiration_date'], unique=False)

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('stock_batch_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('direction', sa.SmallInteger(), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('reverses_movement_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['stock_batch_id'], ['stock_batches.id'], ),
        sa.ForeignKeyConstraint(['reverses_movement_id'], ['stock_movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reverses_movement_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_movements_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_stock_batch_id'), ['stock_batch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_reference', ['reference_type', 'reference_id'], unique=False)
        batch_op.create_index('ix_stock_movements_batch_created', ['stock_batch_id', 'created_at'], unique=False)

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('customer_nit', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('annulled_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_status'), ['status'], unique=False)
        batch_op.create_index('ix_sales_status_created', ['status', 'created_at'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('presentation_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_sale_items_quantity_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['presentation_id'], ['product_presentations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_items_sale_id'), ['sale_id'], unique=False)

    # ==========================================================================
    # 4. CASH BOXES
    # ==========================================================================
    op.create_table('cash_boxes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('opened_by', sa.Integer(), nullable=False),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('opening_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('closing_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('open_slot', sa.SmallInteger(), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('opening_amount >= 0', name='ck_cash_boxes_opening_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('open_slot', name='uq_cash_boxes_single_open'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_boxes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_boxes_opened_by'), ['opened_by'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_boxes_opened_at'), ['opened_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_boxes_closed_at'), ['closed_at'], unique=False)

    op.create_table('cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cash_box_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_cash_movements_amount_positive'),
        sa.ForeignKeyConstraint(['cash_box_id'], ['cash_boxes.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_movements_cash_box_id'), ['cash_box_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_movements_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_movements_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_movements_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_cash_movements_box_type', ['cash_box_id', 'type'], unique=False)

    # ==========================================================================
    # 5. FISCAL DOCUMENTS AND ANNULMENTS
    # ==========================================================================
    op.create_table('fiscal_documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=64), nullable=False),
        sa.Column('serie', sa.String(length=32), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('signed_document', sa.Text(), nullable=True),
        sa.Column('pdf_ref', sa.String(length=255), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('fiscal_documents', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_fiscal_documents_uuid'), ['uuid'], unique=False)
        batch_op.create_index(batch_op.f('ix_fiscal_documents_status'), ['status'], unique=False)
        batch_op.create_index('ix_fiscal_documents_status_created', ['status', 'created_at'], unique=False)

    op.create_table('annulments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fiscal_document_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['fiscal_document_id'], ['fiscal_documents.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fiscal_document_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('annulments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_annulments_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_annulments_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_annulments_created_at'), ['created_at'], unique=False)


def downgrade():
    for table in (
        'annulments',
        'fiscal_documents',
        'cash_movements',
        'cash_boxes',
        'sale_items',
        'sales',
        'stock_movements',
        'stock_batches',
        'product_presentations',
        'products',
    ):
        op.drop_table(table)
