"""Initial shared schema: commerce reference tables, tenants, domains, audit log.

Revision ID: 001_initial_tenancy
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_tenancy"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS shared")

    # ── Commerce reference tables ──────────────────────────────────────
    op.create_table(
        "sellers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="shared",
    )
    op.create_table(
        "channels",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(120), unique=True, nullable=False),
        sa.Column("token", sa.String(120), unique=True, nullable=False),
        sa.Column("is_default", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "seller_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.sellers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("default_language_code", sa.String(16), nullable=False),
        sa.Column("default_currency_code", sa.String(8), nullable=False),
        sa.Column("prices_include_tax", sa.Boolean(), nullable=False),
        sa.Column("default_tax_zone_id", sa.String(64), nullable=True),
        sa.Column("default_shipping_zone_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="shared",
    )
    op.create_index("ix_shared_channels_token", "channels", ["token"], schema="shared")
    # At most one default channel
    op.create_index(
        "uq_shared_channels_default",
        "channels",
        ["is_default"],
        unique=True,
        schema="shared",
        postgresql_where=sa.text("is_default"),
    )

    op.create_table(
        "roles",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(120), unique=True, nullable=False),
        sa.Column("description", sa.String(255), nullable=False, server_default=""),
        sa.Column("permissions", JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="shared",
    )
    op.create_table(
        "administrators",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="shared",
    )
    op.create_index("ix_shared_administrators_email", "administrators", ["email"], schema="shared")

    op.create_table(
        "role_channels",
        sa.Column(
            "role_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "channel_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.channels.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        schema="shared",
    )
    op.create_table(
        "administrator_roles",
        sa.Column(
            "administrator_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.administrators.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "role_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        schema="shared",
    )

    # ── Tenant directory ───────────────────────────────────────────────
    op.create_table(
        "tenants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), unique=True, nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="REQUESTED"),
        # Opaque reference into the commerce engine; unique so no two tenants share a scope
        sa.Column("channel_id", UUID(as_uuid=True), unique=True, nullable=False),
        sa.Column("plan", sa.String(50), nullable=False, server_default="trial"),
        sa.Column("config", JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("suspended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="shared",
    )
    op.create_index("ix_shared_tenants_slug", "tenants", ["slug"], schema="shared")
    op.create_index("ix_shared_tenants_status_deleted_at", "tenants", ["status", "deleted_at"], schema="shared")

    op.create_table(
        "tenant_domains",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("domain", sa.String(255), unique=True, nullable=False),
        sa.Column(
            "tenant_id",
            UUID(as_uuid=True),
            sa.ForeignKey("shared.tenants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("ssl_status", sa.String(32), server_default="pending", nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema="shared",
    )
    op.create_index("ix_shared_tenant_domains_domain", "tenant_domains", ["domain"], schema="shared")
    op.create_index("ix_shared_tenant_domains_tenant_id", "tenant_domains", ["tenant_id"], schema="shared")

    # ── Audit log ──────────────────────────────────────────────────────
    op.create_table(
        "audit_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("action", sa.String(80), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False, server_default="INFO"),
        sa.Column("actor_user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("channel_id", UUID(as_uuid=True), nullable=True),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=True),
        sa.Column("metadata", JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema="shared",
    )
    op.create_index("ix_shared_audit_logs_action", "audit_logs", ["action"], schema="shared")
    op.create_index("ix_shared_audit_logs_severity", "audit_logs", ["severity"], schema="shared")
    op.create_index("ix_shared_audit_logs_tenant_id", "audit_logs", ["tenant_id"], schema="shared")
    op.create_index("ix_shared_audit_logs_created_at", "audit_logs", ["created_at"], schema="shared")

    # Entries are append-only for the application role
    op.execute(
        """
        CREATE OR REPLACE FUNCTION shared.reject_audit_log_change() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_logs is append-only';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER audit_logs_append_only
        BEFORE UPDATE ON shared.audit_logs
        FOR EACH ROW EXECUTE FUNCTION shared.reject_audit_log_change()
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS audit_logs_append_only ON shared.audit_logs")
    op.execute("DROP FUNCTION IF EXISTS shared.reject_audit_log_change()")
    op.drop_table("audit_logs", schema="shared")
    op.drop_table("tenant_domains", schema="shared")
    op.drop_table("tenants", schema="shared")
    op.drop_table("administrator_roles", schema="shared")
    op.drop_table("role_channels", schema="shared")
    op.drop_table("administrators", schema="shared")
    op.drop_table("roles", schema="shared")
    op.drop_table("channels", schema="shared")
    op.drop_table("sellers", schema="shared")
