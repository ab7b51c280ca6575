"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

Creates every table: users, teams, team_members, defenders, games,
offensive_players, points, matchups, defender_stats, selected_defenders,
available_defenders, current_point_defenders, defensive_lines,
defensive_line_defenders and activities, with their enum types and indexes.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    from dline.database.db import Base
    from dline.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from dline.database.db import Base
    from dline.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
