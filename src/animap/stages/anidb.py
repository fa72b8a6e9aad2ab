"""AniDB cross-reference stage.

Back-fills AniDB ids already known to the cache, then scrapes MAL detail pages
for the candidates the fetch mode selects. Every finding is written to the cache
as soon as it is scraped, so an interrupted run keeps its progress.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import date
from typing import Protocol

from animap.cache.store import CacheStore
from animap.exceptions import CacheStoreError, SourceFetchError
from animap.fetch_mode import ANIDB_POLICY, FetchMode, select_candidates
from animap.models import Anime

logger = logging.getLogger(__name__)


class AniDBIdSource(Protocol):
    async def fetch_anidb_id(self, mal_id: int) -> int: ...


def backfill_anidb_ids(entities: Sequence[Anime], cached: dict[int, int]) -> int:
    """Copy cached AniDB ids onto entities. Returns how many were filled."""
    filled = 0
    for anime in entities:
        anidb_id = cached.get(anime.mal_id, 0)
        if anidb_id and anime.anidb_id != anidb_id:
            anime.anidb_id = anidb_id
            filled += 1
    return filled


async def _resolve_one(
    anime: Anime,
    source: AniDBIdSource,
    store: CacheStore,
    semaphore: asyncio.Semaphore,
) -> bool:
    async with semaphore:
        try:
            anidb_id = await source.fetch_anidb_id(anime.mal_id)
        except SourceFetchError as e:
            logger.warning(f"Skipping MAL {anime.mal_id} ({anime.title}): {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error scraping MAL {anime.mal_id}: {e}")
            return False

    try:
        if anidb_id:
            anime.anidb_id = anidb_id
            store.upsert(anime.mal_id, anidb_id=anidb_id, anidb_checked=True)
            logger.debug(f"MAL {anime.mal_id} -> AniDB {anidb_id}")
        else:
            store.upsert(anime.mal_id, anidb_checked=True)
            logger.debug(f"MAL {anime.mal_id} has no AniDB link")
    except CacheStoreError as e:
        logger.warning(f"Cache upsert failed for MAL {anime.mal_id}: {e}")
    return bool(anidb_id)


async def resolve_anidb_ids(
    entities: list[Anime],
    *,
    store: CacheStore,
    source: AniDBIdSource,
    mode: FetchMode,
    concurrency: int = 10,
    today: date | None = None,
) -> list[Anime]:
    """Attach AniDB ids to `entities` in place and return them.

    Args:
        entities: Entity set from ranking ingestion.
        store: Identifier cache.
        source: Scraper used for candidates.
        mode: Fetch mode for this stage.
        concurrency: Maximum concurrent page fetches.
        today: Reference date for the recent-release window.

    Returns:
        The same list, in the same order.
    """
    start = time.time()
    cached = store.anidb_ids()
    filled = backfill_anidb_ids(entities, cached)
    logger.info(f"Back-filled {filled} AniDB ids from cache ({len(cached)} cached)")

    # Confirmed-absent pages count as known until `cache prune` drops them.
    known = dict(cached)
    known.update((mal_id, 0) for mal_id in store.anidb_checked_ids())
    candidates = select_candidates(entities, known, mode, ANIDB_POLICY, today=today)
    if not candidates:
        logger.info(f"No AniDB candidates to scrape (mode={FetchMode(mode).value})")
        return entities

    logger.info(
        f"Scraping {len(candidates)} MAL pages for AniDB ids "
        f"(mode={FetchMode(mode).value}, concurrency={concurrency})"
    )
    semaphore = asyncio.Semaphore(concurrency)
    results = await asyncio.gather(
        *(_resolve_one(anime, source, store, semaphore) for anime in candidates)
    )

    found = sum(1 for r in results if r)
    logger.info(
        f"AniDB stage: {found}/{len(candidates)} resolved in {time.time() - start:.2f}s"
    )
    return entities
