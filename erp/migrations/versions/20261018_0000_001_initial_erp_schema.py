"""Initial ERP schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the procurement and inventory schema:
- Master data (suppliers, products, locations)
- Document number sequences
- Purchase orders, items and landed cost headers
- Goods received notes and items
- Inventory batches, stock levels and stock movements
- Allocation strategies, executions and batch details
- Audit logs
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)
UNIT_COST = sa.Numeric(14, 4)
QUANTITY = sa.Numeric(14, 3)
PERCENT = sa.Numeric(7, 2)


def upgrade() -> None:
    # Master data
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("gstin", sa.String(20), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_suppliers_company_name", "suppliers", ["company_name"])
    op.create_index("ix_suppliers_is_active", "suppliers", ["is_active"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("part_code", sa.String(100), nullable=False, unique=True),
        sa.Column("make", sa.String(100), nullable=True),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("unit", sa.String(20), nullable=False, server_default="nos"),
        sa.Column("weight_kg", sa.Numeric(12, 3), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_products_name", "products", ["name"])

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("financial_year", sa.String(4), nullable=False),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("document_type", "financial_year", name="uq_document_sequence"),
    )

    # Purchasing
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("po_number", sa.String(50), nullable=False, unique=True),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("billing_address", sa.Text(), nullable=True),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("delivery_terms", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tax_type", sa.String(20), nullable=False, server_default="CGST+SGST"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total_tax", MONEY, nullable=False, server_default="0"),
        sa.Column("grand_total", MONEY, nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_purchase_orders_po_number", "purchase_orders", ["po_number"])
    op.create_index("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"])
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("unit", sa.String(20), nullable=False, server_default="nos"),
        sa.Column("unit_price", UNIT_COST, nullable=False),
        sa.Column("tax_percentage", PERCENT, nullable=False, server_default="0"),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_item_product"),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])

    op.create_table(
        "purchase_order_costs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("freight_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("insurance_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("customs_duty", MONEY, nullable=False, server_default="0"),
        sa.Column("handling_charges", MONEY, nullable=False, server_default="0"),
        sa.Column("other_charges", MONEY, nullable=False, server_default="0"),
        sa.Column("allocation_method", sa.String(20), nullable=False, server_default="by_value"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("exchange_rate", UNIT_COST, nullable=False, server_default="1"),
        sa.Column("exchange_rate_date", sa.Date(), nullable=True),
        sa.Column("allocated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="CASCADE"),
        sa.CheckConstraint("exchange_rate > 0", name="ck_purchase_order_costs_exchange_rate"),
    )

    # Receiving
    op.create_table(
        "goods_received_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("grn_number", sa.String(50), nullable=False, unique=True),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("grn_date", sa.Date(), nullable=False),
        sa.Column("lr_number", sa.String(100), nullable=True),
        sa.Column("supplier_invoice_number", sa.String(100), nullable=True),
        sa.Column("supplier_invoice_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("validation_warnings", sa.JSON(), nullable=True),
        sa.Column("received_by", sa.Integer(), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_goods_received_notes_grn_number", "goods_received_notes", ["grn_number"])
    op.create_index("ix_goods_received_notes_purchase_order_id", "goods_received_notes", ["purchase_order_id"])
    op.create_index("ix_goods_received_notes_supplier_id", "goods_received_notes", ["supplier_id"])
    op.create_index("ix_goods_received_notes_status", "goods_received_notes", ["status"])
    op.create_index("ix_goods_received_notes_created_at", "goods_received_notes", ["created_at"])

    op.create_table(
        "grn_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("grn_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("ordered_quantity", QUANTITY, nullable=False, server_default="0"),
        sa.Column("received_quantity", QUANTITY, nullable=False),
        sa.Column("accepted_quantity", QUANTITY, nullable=False),
        sa.Column("rejected_quantity", QUANTITY, nullable=False, server_default="0"),
        sa.Column("unit_price", UNIT_COST, nullable=False),
        sa.Column("serial_numbers", sa.Text(), nullable=True),
        sa.Column("warranty_start_date", sa.Date(), nullable=True),
        sa.Column("warranty_end_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["grn_id"], ["goods_received_notes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_grn_items_grn_id", "grn_items", ["grn_id"])
    op.create_index("ix_grn_items_product_id", "grn_items", ["product_id"])

    # Inventory
    op.create_table(
        "inventory_batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_number", sa.String(80), nullable=False, unique=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("grn_item_id", sa.Integer(), nullable=True),
        sa.Column("source_batch_id", sa.Integer(), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("warranty_end_date", sa.Date(), nullable=True),
        sa.Column("received_quantity", QUANTITY, nullable=False),
        sa.Column("available_quantity", QUANTITY, nullable=False),
        sa.Column("purchase_price", UNIT_COST, nullable=False),
        sa.Column("freight_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("insurance_cost", MONEY, nullable=False, server_default="0"),
        sa.Column("customs_duty", MONEY, nullable=False, server_default="0"),
        sa.Column("handling_charges", MONEY, nullable=False, server_default="0"),
        sa.Column("other_charges", MONEY, nullable=False, server_default="0"),
        sa.Column("landed_cost_per_unit", UNIT_COST, nullable=False),
        sa.Column("cost_allocation_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("cost_allocated_at", sa.DateTime(), nullable=True),
        sa.Column("performance_score", PERCENT, nullable=False, server_default="50"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["grn_item_id"], ["grn_items.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["source_batch_id"], ["inventory_batches.id"], ondelete="SET NULL"),
        sa.CheckConstraint("available_quantity >= 0", name="ck_inventory_batches_available"),
    )
    op.create_index("ix_inventory_batches_product_id", "inventory_batches", ["product_id"])
    op.create_index("ix_inventory_batches_location_id", "inventory_batches", ["location_id"])
    op.create_index("ix_inventory_batches_supplier_id", "inventory_batches", ["supplier_id"])
    op.create_index("ix_inventory_batches_purchase_order_id", "inventory_batches", ["purchase_order_id"])
    op.create_index("ix_inventory_batches_status", "inventory_batches", ["status"])

    op.create_table(
        "stock_levels",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("quantity", QUANTITY, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_levels_quantity"),
    )
    op.create_index("ix_stock_levels_product_id", "stock_levels", ["product_id"])
    op.create_index("ix_stock_levels_location_id", "stock_levels", ["location_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("from_location_id", sa.Integer(), nullable=True),
        sa.Column("to_location_id", sa.Integer(), nullable=True),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("movement_type", sa.String(20), nullable=False),
        sa.Column("reference_type", sa.String(30), nullable=True),
        sa.Column("reference_id", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["to_location_id"], ["locations.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_movement_type", "stock_movements", ["movement_type"])
    op.create_index("ix_stock_movements_reference_id", "stock_movements", ["reference_id"])
    op.create_index("ix_stock_movements_created_at", "stock_movements", ["created_at"])

    # Smart allocation
    op.create_table(
        "allocation_strategies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("strategy_name", sa.String(100), nullable=False),
        sa.Column("strategy_code", sa.String(50), nullable=False, unique=True),
        sa.Column("strategy_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("primary_method", sa.String(20), nullable=False, server_default="weighted"),
        sa.Column("consider_warranty_expiry", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("consider_cost_optimization", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("consider_margin_protection", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("cost_weight", PERCENT, nullable=False, server_default="0"),
        sa.Column("age_weight", PERCENT, nullable=False, server_default="0"),
        sa.Column("warranty_weight", PERCENT, nullable=False, server_default="0"),
        sa.Column("performance_weight", PERCENT, nullable=False, server_default="0"),
        sa.Column("expiry_weight", PERCENT, nullable=False, server_default="0"),
        sa.Column("prevent_negative_margin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("minimum_margin_percentage", PERCENT, nullable=False, server_default="0"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_allocation_strategies_strategy_code", "allocation_strategies", ["strategy_code"])
    op.create_index("ix_allocation_strategies_strategy_type", "allocation_strategies", ["strategy_type"])
    op.create_index("ix_allocation_strategies_is_active", "allocation_strategies", ["is_active"])

    op.create_table(
        "allocation_executions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("allocation_reference", sa.String(100), nullable=False, unique=True),
        sa.Column("allocation_type", sa.String(20), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("requested_quantity", QUANTITY, nullable=False),
        sa.Column("allocated_quantity", QUANTITY, nullable=False),
        sa.Column("average_allocated_cost", UNIT_COST, nullable=False, server_default="0"),
        sa.Column("total_allocated_value", MONEY, nullable=False, server_default="0"),
        sa.Column("order_value", MONEY, nullable=True),
        sa.Column("margin_achieved_percentage", PERCENT, nullable=True),
        sa.Column("allocation_efficiency_score", PERCENT, nullable=False, server_default="0"),
        sa.Column("strategy_name", sa.String(100), nullable=True),
        sa.Column("customer_tier", sa.String(20), nullable=False, server_default="standard"),
        sa.Column("project_priority", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("allocated_by", sa.Integer(), nullable=True),
        sa.Column("allocated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_allocation_executions_allocation_type", "allocation_executions", ["allocation_type"])
    op.create_index("ix_allocation_executions_product_id", "allocation_executions", ["product_id"])
    op.create_index("ix_allocation_executions_location_id", "allocation_executions", ["location_id"])
    op.create_index("ix_allocation_executions_allocated_at", "allocation_executions", ["allocated_at"])

    op.create_table(
        "allocation_batch_details",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("allocation_execution_id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("allocated_quantity", QUANTITY, nullable=False),
        sa.Column("batch_cost_per_unit", UNIT_COST, nullable=False),
        sa.Column("allocation_score", UNIT_COST, nullable=False, server_default="0"),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["allocation_execution_id"], ["allocation_executions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["batch_id"], ["inventory_batches.id"], ondelete="RESTRICT"),
    )
    op.create_index(
        "ix_allocation_batch_details_allocation_execution_id",
        "allocation_batch_details",
        ["allocation_execution_id"],
    )

    # Audit
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("record_id", sa.String(100), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("changed_fields", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_table_name", "audit_logs", ["table_name"])
    op.create_index("ix_audit_logs_record_id", "audit_logs", ["record_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("allocation_batch_details")
    op.drop_table("allocation_executions")
    op.drop_table("allocation_strategies")
    op.drop_table("stock_movements")
    op.drop_table("stock_levels")
    op.drop_table("inventory_batches")
    op.drop_table("grn_items")
    op.drop_table("goods_received_notes")
    op.drop_table("purchase_order_costs")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("document_sequences")
    op.drop_table("locations")
    op.drop_table("products")
    op.drop_table("suppliers")
