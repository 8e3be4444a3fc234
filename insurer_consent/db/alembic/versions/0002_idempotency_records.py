"""idempotency records keyed by (namespace, id)"""
from alembic import op
import sqlalchemy as sa

# revision identifiers.
revision = "0002_idempotency_records"
down_revision = "0001_baseline"
branch_labels = None
depends_on = None

def upgrade() -> None:
    # The composite primary key is what makes the claim atomic
    op.create_table(
        "idempotency_records",
        sa.Column("namespace", sa.Text(), primary_key=True),
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("state", sa.String(16), nullable=False),
        sa.Column("request_fingerprint", sa.String(64), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.LargeBinary(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

def downgrade() -> None:
    op.drop_table("idempotency_records")
