"""TVDB stage: fill TVDB ids for TV entries from the bridge table."""

import logging

from animap.clients.anime_list import BridgeTable
from animap.models import Anime

logger = logging.getLogger(__name__)


def apply_tvdb_ids(entities: list[Anime], bridge: BridgeTable) -> list[Anime]:
    """Set `tvdb_id` on TV entries whose AniDB id the bridge table maps."""
    mapped = 0
    tv_total = 0
    for anime in entities:
        if anime.type != "tv" or anime.anidb_id <= 0:
            continue
        tv_total += 1
        if tvdb_id := bridge.tvdb_id(anime.anidb_id):
            anime.tvdb_id = tvdb_id
            mapped += 1
    logger.info(f"TVDB stage: mapped {mapped}/{tv_total} TV entries with AniDB ids")
    return entities
