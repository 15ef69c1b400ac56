"""store error_documents embeddings as pgvector

Revision ID: 8c3d2e4f6a10
Revises: 5f0c1a7e9b21
Create Date: 2026-10-25 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '8c3d2e4f6a10'
down_revision: Union[str, None] = '5f0c1a7e9b21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Must match settings.ai_embedding_dimensions (text-embedding-3-small)
EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # JSON arrays print as "[1.0, 2.0]", which is also pgvector's text format
    op.alter_column(
        'error_documents',
        'embedding',
        existing_type=postgresql.JSONB(),
        type_=Vector(EMBEDDING_DIMENSIONS),
        existing_nullable=False,
        postgresql_using=f'embedding::text::vector({EMBEDDING_DIMENSIONS})',
    )
    op.create_index(
        'ix_error_documents_embedding_hnsw',
        'error_documents',
        ['embedding'],
        postgresql_using='hnsw',
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('ix_error_documents_embedding_hnsw', table_name='error_documents')
    op.alter_column(
        'error_documents',
        'embedding',
        existing_type=Vector(EMBEDDING_DIMENSIONS),
        type_=postgresql.JSONB(),
        existing_nullable=False,
        postgresql_using='embedding::text::jsonb',
    )
