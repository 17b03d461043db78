"""Create secrets table

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "secrets",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("viewing_id", sa.String(48), nullable=False),
        sa.Column("management_id", sa.String(48), nullable=False),
        sa.Column("cipher_text", sa.Text, nullable=True),
        sa.Column("ttl", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.Column("deletion_reason", sa.String(20), nullable=True),
        # Each identifier is unique on its own; the unique indexes double as lookups
        sa.UniqueConstraint("viewing_id", name="uq_secrets_viewing_id"),
        sa.UniqueConstraint("management_id", name="uq_secrets_management_id"),
    )

    op.create_index("ix_secrets_expires_at", "secrets", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_secrets_expires_at", table_name="secrets")
    op.drop_table("secrets")
