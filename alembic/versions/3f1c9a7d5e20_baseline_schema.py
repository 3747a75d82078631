"""baseline schema

Revision ID: 3f1c9a7d5e20
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from pixinity.database import Base
from pixinity import models  # noqa: F401

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d5e20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, sessions, photos, collections, collaborators, engagement and notification tables."""
    bind: Connection = op.get_bind()
    Base.metadata.create_all(bind)


def downgrade() -> None:
    bind: Connection = op.get_bind()
    Base.metadata.drop_all(bind)
