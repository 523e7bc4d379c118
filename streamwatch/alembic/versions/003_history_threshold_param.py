"""save_watch_progress takes the history threshold as a parameter

Revision ID: 003
Revises: 002
Create Date: 2026-10-17 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_OLD_SIGNATURE = "save_watch_progress(TEXT, TEXT, TEXT, INTEGER, INTEGER, INTEGER, INTEGER, BOOLEAN)"
_NEW_SIGNATURE = "save_watch_progress(TEXT, TEXT, TEXT, INTEGER, INTEGER, INTEGER, INTEGER, BOOLEAN, INTEGER)"


def _function(history_condition: str, extra_args: str) -> str:
    return f"""
        CREATE OR REPLACE FUNCTION save_watch_progress(
            p_user_id TEXT,
            p_media_id TEXT,
            p_media_type TEXT,
            p_season_number INTEGER,
            p_episode_number INTEGER,
            p_progress_seconds INTEGER,
            p_duration_seconds INTEGER,
            p_force_history BOOLEAN{extra_args})
        RETURNS VOID LANGUAGE plpgsql AS $fn$
        DECLARE
            v_now TIMESTAMPTZ := now();
        BEGIN
            UPDATE watch_progress
               SET progress_seconds = p_progress_seconds,
                   duration_seconds = p_duration_seconds,
                   updated_at = v_now
             WHERE user_id = p_user_id
               AND media_id = p_media_id
               AND media_type = p_media_type
               AND season_number IS NOT DISTINCT FROM p_season_number
               AND episode_number IS NOT DISTINCT FROM p_episode_number;
            IF NOT FOUND THEN
                INSERT INTO watch_progress (user_id, media_id, media_type, season_number, episode_number,
                                            progress_seconds, duration_seconds, updated_at)
                VALUES (p_user_id, p_media_id, p_media_type, p_season_number, p_episode_number,
                        p_progress_seconds, p_duration_seconds, v_now);
            END IF;

            IF {history_condition} THEN
                INSERT INTO watch_history (user_id, media_id, media_type, season_number, episode_number, watched_at)
                VALUES (p_user_id, p_media_id, p_media_type, p_season_number, p_episode_number, v_now)
                ON CONFLICT ON CONSTRAINT uq_watch_history_key DO UPDATE SET watched_at = EXCLUDED.watched_at;
            END IF;
        END;
        $fn$
    """


def upgrade() -> None:
    conn = op.get_bind()
    # The default keeps eight-argument callers resolving to this overload.
    conn.execute(sa.text(f"DROP FUNCTION IF EXISTS {_OLD_SIGNATURE}"))
    conn.execute(sa.text(_function(
        "p_force_history OR p_progress_seconds > p_history_min_seconds",
        ",\n            p_history_min_seconds INTEGER DEFAULT 60",
    )))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(sa.text(f"DROP FUNCTION IF EXISTS {_NEW_SIGNATURE}"))
    conn.execute(sa.text(_function("p_force_history OR p_progress_seconds > 60", "")))
