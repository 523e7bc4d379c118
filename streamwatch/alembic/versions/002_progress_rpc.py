"""save_watch_progress remote procedures

Revision ID: 002
Revises: 001
Create Date: 2026-09-08 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Both overloads share one body; the legacy one never forces history.
_BODY = """
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
"""

_ARGS = """
    p_user_id TEXT,
    p_media_id TEXT,
    p_media_type TEXT,
    p_season_number INTEGER,
    p_episode_number INTEGER,
    p_progress_seconds INTEGER,
    p_duration_seconds INTEGER"""


def upgrade() -> None:
    conn = op.get_bind()
    conn.execute(sa.text(f"""
        CREATE OR REPLACE FUNCTION save_watch_progress({_ARGS})
        RETURNS VOID LANGUAGE plpgsql AS $fn$
        {_BODY.format(history_condition="p_progress_seconds > 60")}
        $fn$
    """))
    conn.execute(sa.text(f"""
        CREATE OR REPLACE FUNCTION save_watch_progress({_ARGS},
            p_force_history BOOLEAN)
        RETURNS VOID LANGUAGE plpgsql AS $fn$
        {_BODY.format(history_condition="p_force_history OR p_progress_seconds > 60")}
        $fn$
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(sa.text(
        "DROP FUNCTION IF EXISTS save_watch_progress(TEXT, TEXT, TEXT, INTEGER, INTEGER, INTEGER, INTEGER, BOOLEAN)"
    ))
    conn.execute(sa.text(
        "DROP FUNCTION IF EXISTS save_watch_progress(TEXT, TEXT, TEXT, INTEGER, INTEGER, INTEGER, INTEGER)"
    ))
