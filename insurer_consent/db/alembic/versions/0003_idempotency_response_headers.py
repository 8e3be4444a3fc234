"""store replayable response headers with idempotency records"""
from alembic import op
import sqlalchemy as sa

# revision identifiers.
revision = "0003_idempotency_headers"
down_revision = "0002_idempotency_records"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.add_column("idempotency_records", sa.Column("response_headers", sa.JSON(), nullable=True))

def downgrade() -> None:
    op.drop_column("idempotency_records", "response_headers")
