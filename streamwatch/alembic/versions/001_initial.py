"""Watch progress, watch history, favorites and settings tables

Revision ID: 001
Revises:
Create Date: 2026-09-01 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _unit_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("media_id", sa.String(64), nullable=False),
        sa.Column("media_type", sa.String(16), nullable=False),
        sa.Column("season_number", sa.Integer(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "watch_progress",
        *_unit_columns(),
        sa.Column("progress_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "watch_history",
        *_unit_columns(),
        sa.Column("watched_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Movies store NULL season/episode; NULLS NOT DISTINCT (PostgreSQL 15+)
    # keeps them to a single row per title.
    for table in ("watch_progress", "watch_history"):
        op.create_unique_constraint(
            f"uq_{table}_key",
            table,
            ["user_id", "media_id", "media_type", "season_number", "episode_number"],
            postgresql_nulls_not_distinct=True,
        )
    op.create_index("ix_watch_progress_user_media", "watch_progress", ["user_id", "media_id"])
    op.create_index("ix_watch_history_user_watched_at", "watch_history", ["user_id", "watched_at"])

    op.create_table(
        "favorites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("media_id", sa.String(64), nullable=False),
        sa.Column("media_type", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "media_id", "media_type", name="uq_favorites_user_media"),
    )

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_table("favorites")
    op.drop_index("ix_watch_history_user_watched_at", table_name="watch_history")
    op.drop_index("ix_watch_progress_user_media", table_name="watch_progress")
    op.drop_table("watch_history")
    op.drop_table("watch_progress")
