"""baseline: consents and users"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

def upgrade() -> None:
    op.create_table(
        "consents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("permissions", _JSON, nullable=False),
        sa.Column("user_identification", sa.Text(), nullable=False),
        sa.Column("user_rel", sa.String(8), nullable=False),
        sa.Column("business_identification", sa.Text(), nullable=True),
        sa.Column("business_rel", sa.String(8), nullable=True),
        sa.Column("rejection", _JSON, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_consents_client_id", "consents", ["client_id"])
    op.create_index("ix_consents_status", "consents", ["status"])
    op.create_index("ix_consents_expires_at", "consents", ["expires_at"])
    op.create_index("idx_consents_tenant", "consents", ["tenant_id"])
    op.create_index("idx_consents_owner", "consents", ["tenant_id", "owner_id"])
    op.create_index("idx_consents_created_at", "consents", ["created_at"])

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Text(), nullable=False),
        sa.Column("cross_tenant", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("cpf", sa.Text(), nullable=False),
        sa.Column("cnpj", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_users_cpf", "users", ["cpf"])
    op.create_index("idx_users_cnpj", "users", ["cnpj"])

def downgrade() -> None:
    op.drop_index("idx_users_cnpj", table_name="users")
    op.drop_index("idx_users_cpf", table_name="users")
    op.drop_table("users")
    op.drop_index("idx_consents_created_at", table_name="consents")
    op.drop_index("idx_consents_owner", table_name="consents")
    op.drop_index("idx_consents_tenant", table_name="consents")
    op.drop_index("ix_consents_expires_at", table_name="consents")
    op.drop_index("ix_consents_status", table_name="consents")
    op.drop_index("ix_consents_client_id", table_name="consents")
    op.drop_table("consents")
