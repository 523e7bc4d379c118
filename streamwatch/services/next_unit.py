"""Works out which episode follows a finished one."""
from __future__ import annotations
import logging

from streamwatch.services.catalog import Catalog
from streamwatch.services.items import NextUnit, is_series

logger = logging.getLogger(__name__)


class NextUnitResolver:
    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    async def next_unit(self, media_id: str, media_type: str, season: int | None, episode: int | None) -> NextUnit | None:
        if not is_series(media_type) or season is None or episode is None:
            return None

        try:
            series = await self.catalog.get_series(media_id, media_type)
        except Exception as e:
            logger.warning(f"No series metadata for {media_type}-{media_id}: {e}")
            return None

        listed = {s.season_number: s.episode_count for s in series.seasons}
        try:
            episodes = await self.catalog.get_season_episodes(media_id, media_type, season)
            episode_count = len(episodes)
        except Exception as e:
            logger.warning(f"No episode list for {media_type}-{media_id} S{season}: {e}")
            episode_count = listed.get(season, 0)

        if episode < episode_count:
            return NextUnit(season, episode + 1)

        # Season 0 holds specials and never takes part in sequencing.
        regular = {n: c for n, c in listed.items() if n > 0}
        following = regular.get(season + 1)
        if following and following > 0:
            return NextUnit(season + 1, 1)

        logger.debug(f"{media_type}-{media_id} has nothing after S{season}E{episode}")
        return None
