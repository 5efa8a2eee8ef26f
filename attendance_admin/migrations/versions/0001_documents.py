"""Document store table

Revision ID: 0001_documents
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_documents"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("collection_path", sa.String(length=512), nullable=False),
        sa.Column("document_id", sa.String(length=255), nullable=False),
        sa.Column("data", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("collection_path", "document_id", name="uq_documents_collection_document"),
    )
    op.create_index("ix_documents_collection_path", "documents", ["collection_path"], unique=False)
    op.create_index("ix_documents_data", "documents", ["data"], unique=False, postgresql_using="gin")


def downgrade() -> None:
    op.drop_index("ix_documents_data", table_name="documents")
    op.drop_index("ix_documents_collection_path", table_name="documents")
    op.drop_table("documents")
