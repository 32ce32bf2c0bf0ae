"""Initial PrincipalSync schema."""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create directory store and auth tables."""
    op.create_table(
        "authorizables",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("path", sa.String(length=1024), nullable=False),
        sa.Column("is_group", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("properties", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("path", name="uq_authorizables_path"),
    )
    op.create_index("idx_authorizables_is_group", "authorizables", ["is_group"])

    op.create_table(
        "memberships",
        sa.Column("membership_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "group_id",
            sa.String(length=255),
            sa.ForeignKey("authorizables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "member_id",
            sa.String(length=255),
            sa.ForeignKey("authorizables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("group_id", "member_id", name="uq_membership_edge"),
    )
    op.create_index("idx_memberships_member", "memberships", ["member_id"])

    op.create_table(
        "auth_service_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_auth_service_accounts_account_id",
        "auth_service_accounts",
        ["account_id"],
        unique=True,
    )

    op.create_table(
        "auth_api_keys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "service_account_id",
            sa.Uuid(),
            sa.ForeignKey("auth_service_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key_prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("key_hash", name="uq_auth_api_keys_key_hash"),
    )
    op.create_index(
        "ix_auth_api_keys_service_account_id", "auth_api_keys", ["service_account_id"]
    )
    op.create_index("ix_auth_api_keys_key_prefix", "auth_api_keys", ["key_prefix"])


def downgrade() -> None:
    """Drop all PrincipalSync tables."""
    op.drop_index("ix_auth_api_keys_key_prefix", table_name="auth_api_keys")
    op.drop_index("ix_auth_api_keys_service_account_id", table_name="auth_api_keys")
    op.drop_table("auth_api_keys")
    op.drop_index("ix_auth_service_accounts_account_id", table_name="auth_service_accounts")
    op.drop_table("auth_service_accounts")
    op.drop_index("idx_memberships_member", table_name="memberships")
    op.drop_table("memberships")
    op.drop_index("idx_authorizables_is_group", table_name="authorizables")
    op.drop_table("authorizables")
