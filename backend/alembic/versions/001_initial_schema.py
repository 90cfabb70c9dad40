"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


order_status = sa.Enum("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="order_status")
order_type = sa.Enum("DINE_IN", "TAKEAWAY", "DELIVERY", name="order_type")
order_source = sa.Enum("POS", "DELIVERY_APP", "QR_SCAN", "PHONE", name="order_source")
discount_type = sa.Enum("FIXED", "PERCENTAGE", name="discount_type")
modifier_type = sa.Enum("EXTRA", "REMOVAL", name="modifier_type")
cancellation_source = sa.Enum("ORDER_CANCELLED", "ORDER_EDITED", name="cancellation_source")
waste_decision = sa.Enum("PENDING", "WASTE", "RETURNED", name="waste_decision")


def upgrade() -> None:
    # Locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("is_default", sa.Boolean(), default=False, nullable=False),
        sa.Column("active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("business_id", "name", name="uq_location_business_name"),
    )

    # Stock items (ingredients)
    op.create_table(
        "stock_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False, index=True),
        sa.Column("name_ar", sa.String(200), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True, index=True),
        sa.Column("unit", sa.String(20), nullable=False, server_default="grams"),
        sa.Column("storage_unit", sa.String(20), nullable=False, server_default="grams"),
        sa.Column("cost_per_unit", sa.Numeric(12, 4), nullable=True),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Stock on hand table
    op.create_table(
        "stock_on_hand",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("qty", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("item_id", "location_id", name="uq_stock_item_location"),
        sa.CheckConstraint("qty >= 0", name="ck_stock_on_hand_qty_non_negative"),
    )

    # Stock movements journal
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("qty_delta", sa.Numeric(14, 4), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("ref_type", sa.String(50), nullable=True),
        sa.Column("ref_id", sa.Integer(), nullable=True),
        sa.Column("operation_ref", sa.String(100), nullable=True, index=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
    )

    # Catalog
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("name_ar", sa.String(255), nullable=True),
        sa.Column("sku", sa.String(50), nullable=True, index=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("price", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("has_variants", sa.Boolean(), default=False, nullable=False),
        sa.Column("active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_ar", sa.String(255), nullable=True),
        sa.Column("price_adjustment", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), default=True, nullable=False),
    )

    op.create_table(
        "product_modifiers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_ar", sa.String(255), nullable=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("item_quantity", sa.Numeric(12, 4), nullable=False, server_default="0"),
        sa.Column("extra_price", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("addable", sa.Boolean(), default=True, nullable=False),
        sa.Column("removable", sa.Boolean(), default=False, nullable=False),
    )

    # Recipes
    op.create_table(
        "recipe_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("qty", sa.Numeric(12, 4), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("order_number", sa.String(30), nullable=False),
        sa.Column("status", order_status, nullable=False, index=True),
        sa.Column("order_type", order_type, nullable=False),
        sa.Column("order_source", order_source, nullable=False),
        sa.Column("table_number", sa.String(20), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("pos_session_id", sa.Integer(), nullable=True, index=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("discount_type", discount_type, nullable=True),
        sa.Column("discount_value", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Numeric(6, 3), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("delivery_fee", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("service_charge", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("grand_total", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("is_edited", sa.Boolean(), default=False, nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("business_id", "order_number", name="uq_order_business_number"),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_name_ar", sa.String(255), nullable=True),
        sa.Column("variant_name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("original_quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 3), nullable=False),
        sa.Column("modifiers_total", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("line_total", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("special_instructions", sa.String(500), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default="0", index=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "order_item_modifiers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("modifier_id", sa.Integer(), sa.ForeignKey("product_modifiers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("modifier_name", sa.String(255), nullable=False),
        sa.Column("modifier_name_ar", sa.String(255), nullable=True),
        sa.Column("modifier_type", modifier_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("item_quantity", sa.Numeric(12, 4), nullable=False, server_default="0"),
    )

    op.create_table(
        "order_timeline_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Kitchen waste/return queue
    op.create_table(
        "cancelled_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("variant_name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("cancellation_source", cancellation_source, nullable=False, index=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("decision", waste_decision, nullable=False, index=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.Integer(), nullable=True),
        sa.Column("auto_expired", sa.Boolean(), default=False, nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    op.create_table(
        "cancelled_item_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cancelled_item_id", sa.Integer(), sa.ForeignKey("cancelled_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("cancelled_item_lines")
    op.drop_table("cancelled_items")
    op.drop_table("order_timeline_events")
    op.drop_table("order_item_modifiers")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("recipe_lines")
    op.drop_table("product_modifiers")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("stock_movements")
    op.drop_table("stock_on_hand")
    op.drop_table("stock_items")
    op.drop_table("locations")

    bind = op.get_bind()
    for enum in (waste_decision, cancellation_source, modifier_type, discount_type,
                 order_source, order_type, order_status):
        enum.drop(bind, checkfirst=True)
