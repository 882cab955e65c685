from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = JSONB().with_variant(sa.JSON(), "sqlite")


def _timestamp(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("whatsapp", sa.String(30), nullable=True),
        sa.Column("pix_key", sa.String(120), nullable=True),
        sa.Column("payment_link", sa.String(), nullable=True),
        sa.Column("instagram", sa.String(120), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("delivery_time", sa.String(50), nullable=True),
        sa.Column("card_machine_fee", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("theme_color", sa.String(20), nullable=True),
        sa.Column("opening_hours", sa.String(120), nullable=True),
        _timestamp(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("unit", sa.String(10), nullable=False, server_default="un"),
        sa.Column("category", sa.String(20), nullable=False, server_default="outros"),
        sa.Column("cost_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("current_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("min_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp(),
        _timestamp("updated_at"),
    )
    op.create_index("ix_inventory_items_tenant_id", "inventory_items", ["tenant_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("category", sa.String(60), nullable=False, server_default="Lanches"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("prep_time", sa.String(30), nullable=True),
        sa.Column("image", sa.String(), nullable=True),
        sa.Column("is_vegan", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_combo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_highlighted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("availability", sa.String(20), nullable=False, server_default="available"),
        sa.Column("stock", sa.Integer(), nullable=True),
        sa.Column("inventory_id", sa.Integer(), sa.ForeignKey("inventory_items.id"), nullable=True),
        sa.Column("sides", JSON_TYPE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp(),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"])
    op.create_index("ix_products_tenant_category", "products", ["tenant_id", "category"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=False),
        sa.Column("customer_name", sa.String(120), nullable=False),
        sa.Column("customer_whatsapp", sa.String(30), nullable=False, server_default=""),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("order_type", sa.String(20), nullable=False, server_default="delivery"),
        sa.Column("table_number", sa.String(20), nullable=True),
        sa.Column("items", JSON_TYPE, nullable=False),
        sa.Column("address", sa.Text(), nullable=False, server_default=""),
        sa.Column("observation", sa.Text(), nullable=False, server_default=""),
        sa.Column("payment_method", sa.String(30), nullable=False, server_default=""),
        sa.Column("coupon_code", sa.String(64), nullable=True),
        sa.Column("discount_applied", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        _timestamp(),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
    )
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])
    op.create_index("ix_orders_customer_whatsapp", "orders", ["customer_whatsapp"])
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("customer_phone", sa.String(30), nullable=True),
        _timestamp(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_coupons_tenant_code"),
    )
    op.create_index("ix_coupons_tenant_id", "coupons", ["tenant_id"])

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("whatsapp", sa.String(30), nullable=False),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_spent", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("last_order_date", sa.DateTime(timezone=True), nullable=True),
        _timestamp(),
        sa.UniqueConstraint("tenant_id", "whatsapp", name="uq_customers_tenant_whatsapp"),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])
    op.create_index("ix_customers_whatsapp", "customers", ["whatsapp"])

    op.create_table(
        "manual_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("category", sa.String(60), nullable=False, server_default="Geral"),
        _timestamp("occurred_at"),
        _timestamp(),
    )
    op.create_index("ix_manual_transactions_tenant_id", "manual_transactions", ["tenant_id"])
    op.create_index("ix_manual_transactions_occurred_at", "manual_transactions", ["occurred_at"])

    op.create_table(
        "fixed_costs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(120), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        _timestamp(),
    )
    op.create_index("ix_fixed_costs_tenant_id", "fixed_costs", ["tenant_id"])

    op.create_table(
        "financial_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("revenue", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("cmv", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("fixed_costs", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("net_profit", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("margin", sa.Numeric(7, 2), nullable=False, server_default="0"),
        _timestamp(),
        sa.UniqueConstraint("tenant_id", "year", "month", name="uq_financial_snapshots_period"),
    )
    op.create_index("ix_financial_snapshots_tenant_id", "financial_snapshots", ["tenant_id"])

    op.create_table(
        "admin_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="admin"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_admin_users_tenant_email"),
    )
    op.create_index("ix_admin_users_id", "admin_users", ["id"])
    op.create_index("ix_admin_users_tenant_id", "admin_users", ["tenant_id"])

    op.create_table(
        "admin_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("entity_type", sa.String(40), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        _timestamp(),
    )
    op.create_index("ix_admin_audit_log_id", "admin_audit_log", ["id"])
    op.create_index("ix_admin_audit_log_tenant_id", "admin_audit_log", ["tenant_id"])
    op.create_index("ix_admin_audit_log_user_id", "admin_audit_log", ["user_id"])
    op.create_index("ix_admin_audit_log_action", "admin_audit_log", ["action"])


def downgrade() -> None:
    for table in (
        "admin_audit_log",
        "admin_users",
        "financial_snapshots",
        "fixed_costs",
        "manual_transactions",
        "customers",
        "coupons",
        "orders",
        "products",
        "inventory_items",
        "tenants",
    ):
        op.drop_table(table)
