"""Reconciliation schema - levels, products, mappings, audit log, thresholds, webhook receipts, accounts

Revision ID: 001_reconciliation_schema
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_reconciliation_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "inventory_levels",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("product_ref", sa.String(length=100), nullable=False),
        sa.Column("variant_ref", sa.String(length=100), nullable=True),
        sa.Column("location_ref", sa.String(length=100), nullable=True),
        sa.Column("available", sa.Integer(), nullable=False),
        sa.Column("reserved", sa.Integer(), nullable=False),
        sa.Column("incoming", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_by", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "merchant_id", "platform", "product_ref", "variant_ref", "location_ref", name="uq_inventory_level_key"
        ),
    )
    op.create_index("ix_inventory_levels_merchant_id", "inventory_levels", ["merchant_id"])
    op.create_index("ix_inventory_levels_product", "inventory_levels", ["platform", "product_ref"])

    op.create_table(
        "platform_products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("product_ref", sa.String(length=100), nullable=False),
        sa.Column("variant_ref", sa.String(length=100), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("stock_deactivated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("platform_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "platform", "product_ref", "variant_ref", name="uq_platform_product_key"),
    )
    op.create_index("ix_platform_products_merchant_id", "platform_products", ["merchant_id"])
    op.create_index("ix_platform_products_sku", "platform_products", ["merchant_id", "platform", "sku"])
    op.create_index("ix_platform_products_title", "platform_products", ["merchant_id", "platform", "title"])

    op.create_table(
        "product_mappings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform_a", sa.String(length=20), nullable=False),
        sa.Column("ref_a", sa.String(length=100), nullable=False),
        sa.Column("variant_a", sa.String(length=100), nullable=True),
        sa.Column("platform_b", sa.String(length=20), nullable=False),
        sa.Column("ref_b", sa.String(length=100), nullable=False),
        sa.Column("variant_b", sa.String(length=100), nullable=True),
        sa.Column("match_method", sa.String(length=20), nullable=False),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "platform_a", "ref_a", "platform_b", name="unique_product_mapping"),
    )
    op.create_index("ix_product_mappings_merchant_id", "product_mappings", ["merchant_id"])
    op.create_index("ix_product_mappings_b", "product_mappings", ["merchant_id", "platform_b", "ref_b"])

    op.create_table(
        "inventory_audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("product_ref", sa.String(length=100), nullable=False),
        sa.Column("variant_ref", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("event_id", sa.String(length=255), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("merchant_id", "platform", "product_ref", "action", "actor", "timestamp"):
        op.create_index(f"ix_inventory_audit_logs_{column}", "inventory_audit_logs", [column])
    op.create_index(
        "ix_inventory_audit_logs_product_merchant", "inventory_audit_logs", ["product_ref", "merchant_id"]
    )

    op.create_table(
        "inventory_thresholds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("product_ref", sa.String(length=100), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("merchant_id", "platform", "product_ref", name="uq_inventory_threshold"),
    )
    op.create_index("ix_inventory_thresholds_merchant_id", "inventory_thresholds", ["merchant_id"])

    op.create_table(
        "webhook_receipts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=True),
        sa.Column("merchant_id", sa.String(length=100), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "event_id", name="uq_webhook_receipt"),
    )

    op.create_table(
        "platform_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("account_id", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "account_id", name="uq_platform_account"),
    )
    op.create_index("ix_platform_accounts_merchant_id", "platform_accounts", ["merchant_id"])


def downgrade() -> None:
    op.drop_table("platform_accounts")
    op.drop_table("webhook_receipts")
    op.drop_table("inventory_thresholds")
    op.drop_table("inventory_audit_logs")
    op.drop_table("product_mappings")
    op.drop_table("platform_products")
    op.drop_table("inventory_levels")
