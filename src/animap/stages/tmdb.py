"""TMDB stage: resolve movie ids, bridge table first, search API second.

Resolution order for each candidate movie:

1. The bridge table's AniDB -> TMDB mapping (no network call).
2. A title + year search, accepted directly on an exact release-date match or a
   single result when the legacy shortcut is enabled.
3. The best confidence-scored result, if it clears `MIN_CONFIDENCE`.
4. Searches with the Japanese title, synonyms and generated title variants.

Anything still unresolved lands on the unmapped list for manual curation.
"""

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from animap.cache.store import CacheStore
from animap.clients.anime_list import BridgeTable
from animap.clients.tmdb import TmdbSearchResponse
from animap.exceptions import CacheStoreError, TmdbSearchError
from animap.fetch_mode import TMDB_POLICY, FetchMode, select_candidates
from animap.matching.scoring import (
    MIN_CONFIDENCE,
    find_best_match,
    generate_title_variations,
)
from animap.models import Anime, ScoringCandidate, TmdbMovieMapping

logger = logging.getLogger(__name__)


class MovieSearch(Protocol):
    async def search_movie(self, query: str, year: int | None = None) -> TmdbSearchResponse: ...


@dataclass
class TmdbStageResult:
    entities: list[Anime]
    unmapped: list[TmdbMovieMapping] = field(default_factory=list)
    from_bridge: int = 0
    from_search: int = 0
    candidates: int = 0


def legacy_exact_match(anime: Anime, response: TmdbSearchResponse) -> int:
    """Return the first result dated exactly like `anime`, or the only result."""
    for result in response.results:
        if (result.release_date or "") == anime.release_date or response.total_results == 1:
            return result.id
    return 0


def fallback_queries(anime: Anime) -> list[str]:
    """Alternate search titles in the order they are tried."""
    primary = {anime.title, anime.en_title}
    queries: list[str] = []
    if anime.ja_title and anime.ja_title != anime.title:
        queries.append(anime.ja_title)
    queries.extend(s for s in anime.synonyms if s and s not in primary)

    variations = generate_title_variations(anime.title)
    if anime.en_title:
        variations += generate_title_variations(anime.en_title)
    queries.extend(v for v in variations if v and v not in primary)

    unique: list[str] = []
    for query in queries:
        if query not in unique:
            unique.append(query)
    return unique


def backfill_tmdb_ids(entities: Iterable[Anime], cached: dict[int, int]) -> int:
    filled = 0
    for anime in entities:
        tmdb_id = cached.get(anime.mal_id, 0)
        if tmdb_id and anime.tmdb_id != tmdb_id:
            anime.tmdb_id = tmdb_id
            filled += 1
    return filled


def collect_unmapped(entities: Iterable[Anime]) -> list[TmdbMovieMapping]:
    return [
        TmdbMovieMapping(main_title=a.title, tmdb_id=0, mal_id=a.mal_id)
        for a in entities
        if a.type == "movie" and a.tmdb_id == 0
    ]


class TmdbResolver:
    """Resolves TMDB ids for movie entities.

    Args:
        search: TMDB search client.
        bridge: AniDB -> TMDB bridge table.
        store: Identifier cache.
        legacy_exact_match: Accept exact-date or single-result matches before scoring.
    """

    def __init__(
        self,
        *,
        search: MovieSearch,
        bridge: BridgeTable,
        store: CacheStore,
        legacy_exact_match: bool = True,
    ) -> None:
        self._search = search
        self._bridge = bridge
        self._store = store
        self._legacy = legacy_exact_match

    async def _search_scored(
        self, anime: Anime, query: str, year: int | None
    ) -> tuple[ScoringCandidate, float] | None:
        try:
            response = await self._search.search_movie(query, year)
        except TmdbSearchError as e:
            logger.debug(f"Fallback search {query!r} failed: {e}")
            return None
        return find_best_match(anime, [r.to_candidate() for r in response.results])

    async def _search_fallbacks(
        self, anime: Anime, year: int | None
    ) -> tuple[ScoringCandidate, float] | None:
        best: tuple[ScoringCandidate, float] | None = None
        for query in fallback_queries(anime):
            match = await self._search_scored(anime, query, year)
            if match is not None and (best is None or match[1] > best[1]):
                best = match
        return best

    async def resolve(self, anime: Anime) -> tuple[int, str]:
        """Find the TMDB id for one movie.

        Returns:
            `(tmdb_id, method)` where `tmdb_id` is 0 when unresolved.

        Raises:
            TmdbSearchError: If the primary search request fails.
        """
        if anime.anidb_id > 0:
            if tmdb_id := self._bridge.tmdb_id(anime.anidb_id):
                return tmdb_id, "bridge"

        if not anime.release_date:
            logger.debug(f"{anime.title} (MAL {anime.mal_id}) has no release date")
            return 0, "no-date"

        year = anime.release_year
        response = await self._search.search_movie(anime.en_title or anime.title, year)

        if self._legacy:
            if tmdb_id := legacy_exact_match(anime, response):
                return tmdb_id, "exact"
            if response.total_results > 1:
                logger.debug(
                    f"{anime.title}: no exact date match among {response.total_results} results"
                )

        best = find_best_match(anime, [r.to_candidate() for r in response.results])
        if best is None or best[1] < MIN_CONFIDENCE:
            fallback = await self._search_fallbacks(anime, year)
            if fallback is not None and (best is None or fallback[1] > best[1]):
                best = fallback

        if best is not None and best[1] >= MIN_CONFIDENCE:
            logger.info(
                f"TMDB {best[0].tmdb_id} for {anime.title} (MAL {anime.mal_id}) score={best[1]:.1f}"
            )
            return best[0].tmdb_id, "score"
        return 0, "unmatched"

    def _cache(self, anime: Anime) -> None:
        try:
            self._store.upsert(anime.mal_id, tmdb_id=anime.tmdb_id)
        except CacheStoreError as e:
            logger.warning(f"Cache upsert failed for MAL {anime.mal_id}: {e}")

    async def run(
        self, entities: list[Anime], mode: FetchMode
    ) -> TmdbStageResult:
        """Resolve TMDB ids for the movies `mode` selects, in place."""
        start = time.time()
        cached = self._store.tmdb_ids()
        filled = backfill_tmdb_ids(entities, cached)
        logger.info(f"Back-filled {filled} TMDB ids from cache ({len(cached)} cached)")

        candidates: Sequence[Anime] = select_candidates(entities, cached, mode, TMDB_POLICY)
        result = TmdbStageResult(entities=entities, candidates=len(candidates))
        logger.info(f"Resolving {len(candidates)} movies (mode={FetchMode(mode).value})")

        for anime in candidates:
            try:
                tmdb_id, method = await self.resolve(anime)
            except TmdbSearchError as e:
                logger.warning(f"TMDB search failed for {anime.title} (MAL {anime.mal_id}): {e}")
                continue

            if not tmdb_id:
                logger.warning(
                    f"No TMDB id for {anime.title} (MAL {anime.mal_id}, "
                    f"en={anime.en_title!r}, date={anime.release_date!r})"
                )
                continue

            anime.tmdb_id = tmdb_id
            if method == "bridge":
                result.from_bridge += 1
            else:
                result.from_search += 1
            self._cache(anime)

        result.unmapped = collect_unmapped(entities)
        logger.info(
            f"TMDB stage: {result.from_bridge} from bridge table, {result.from_search} from API, "
            f"{len(result.unmapped)} movies unmapped ({time.time() - start:.2f}s)"
        )
        return result


async def resolve_tmdb_ids(
    entities: list[Anime],
    *,
    store: CacheStore,
    search: MovieSearch,
    bridge: BridgeTable,
    mode: FetchMode,
    legacy_exact_match: bool = True,
) -> TmdbStageResult:
    """Attach TMDB ids to the movies in `entities` and collect the unmapped ones."""
    resolver = TmdbResolver(
        search=search, bridge=bridge, store=store, legacy_exact_match=legacy_exact_match
    )
    return await resolver.run(entities, mode)
