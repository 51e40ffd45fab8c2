"""Initial schema — organizations, six relations, resource configs, confirmations.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=nullable,
        server_default=None if nullable else sa.func.now(),
    )


def _organization_fk() -> sa.Column:
    return sa.Column(
        "organization_id", sa.Uuid, sa.ForeignKey("organizations.id"), nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("organization_name", sa.String(255), nullable=False),
        sa.Column("organization_code", sa.String(100), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("settings", sa.JSON, nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "core_entities",
        sa.Column("id", sa.Uuid, primary_key=True),
        _organization_fk(),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("entity_code", sa.String(100), nullable=True),
        sa.Column("smart_code", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("metadata", sa.JSON, nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_core_entities_org_type", "core_entities", ["organization_id", "entity_type"],
    )

    op.create_table(
        "core_dynamic_data",
        sa.Column("id", sa.Uuid, primary_key=True),
        _organization_fk(),
        sa.Column(
            "entity_id", sa.Uuid,
            sa.ForeignKey("core_entities.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("field_type", sa.String(20), nullable=False),
        sa.Column("field_value_text", sa.Text, nullable=True),
        sa.Column("field_value_number", sa.Float, nullable=True),
        sa.Column("field_value_boolean", sa.Boolean, nullable=True),
        sa.Column("field_value_json", sa.JSON, nullable=True),
        sa.Column("smart_code", sa.String(255), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("entity_id", "field_name", name="uq_dynamic_entity_field"),
    )

    # Endpoints carry no FK: deleting an entity leaves edges dangling
    op.create_table(
        "core_relationships",
        sa.Column("id", sa.Uuid, primary_key=True),
        _organization_fk(),
        sa.Column("from_entity_id", sa.Uuid, nullable=False, index=True),
        sa.Column("to_entity_id", sa.Uuid, nullable=False, index=True),
        sa.Column("relationship_type", sa.String(100), nullable=False),
        sa.Column("smart_code", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON, nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "universal_transactions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "organization_id", sa.Uuid, sa.ForeignKey("organizations.id"),
            nullable=False, index=True,
        ),
        sa.Column("transaction_type", sa.String(100), nullable=False),
        sa.Column("transaction_code", sa.String(100), nullable=True),
        _timestamp("transaction_date"),
        sa.Column("source_entity_id", sa.Uuid, nullable=True),
        sa.Column("target_entity_id", sa.Uuid, nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("smart_code", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("metadata", sa.JSON, nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "universal_transaction_lines",
        sa.Column("id", sa.Uuid, primary_key=True),
        _organization_fk(),
        sa.Column(
            "transaction_id", sa.Uuid,
            sa.ForeignKey("universal_transactions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("line_number", sa.Integer, nullable=False),
        sa.Column("entity_id", sa.Uuid, nullable=True),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("line_amount", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("smart_code", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON, nullable=False),
    )

    op.create_table(
        "resource_configs",
        sa.Column("id", sa.Uuid, primary_key=True),
        _organization_fk(),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("config", sa.JSON, nullable=False),
        sa.Column("smart_code", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("organization_id", "resource_id", name="uq_resource_org_id"),
    )

    op.create_table(
        "action_confirmations",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column("organization_id", sa.Uuid, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("action_id", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("consumed_at", nullable=True),
        _timestamp("created_at"),
    )


def downgrade() -> None:
    op.drop_table("action_confirmations")
    op.drop_table("resource_configs")
    op.drop_table("universal_transaction_lines")
    op.drop_table("universal_transactions")
    op.drop_table("core_relationships")
    op.drop_table("core_dynamic_data")
    op.drop_index("ix_core_entities_org_type", table_name="core_entities")
    op.drop_table("core_entities")
    op.drop_table("organizations")
