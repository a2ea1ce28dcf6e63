"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2025-01-16

"""
from alembic import op

from assistant_hub.infra.schema import metadata

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Tables are declared once in assistant_hub.infra.schema
    metadata.create_all(op.get_bind())


def downgrade() -> None:
    metadata.drop_all(op.get_bind())
