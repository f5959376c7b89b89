"""Create the meetings table.

Revision ID: 001_meetings
Revises:
Create Date: 2024-05-20

Coordinates are plain float columns indexed together for bounding-box
prefilters; followers are a JSONB array with a GIN index for participant
lookups.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001_meetings"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "meetings",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("owner_id", sa.String(100), nullable=False),
        sa.Column(
            "followers_data",
            JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_meetings_longitude"),
        sa.CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_meetings_latitude"),
    )

    op.create_index("idx_meetings_location", "meetings", ["latitude", "longitude"])
    op.create_index("idx_meetings_scheduled_at", "meetings", ["scheduled_at"])
    op.create_index("idx_meetings_owner", "meetings", ["owner_id"])
    op.create_index(
        "idx_meetings_followers",
        "meetings",
        ["followers_data"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index("idx_meetings_followers", table_name="meetings")
    op.drop_index("idx_meetings_owner", table_name="meetings")
    op.drop_index("idx_meetings_scheduled_at", table_name="meetings")
    op.drop_index("idx_meetings_location", table_name="meetings")
    op.drop_table("meetings")
