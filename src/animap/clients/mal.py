"""MyAnimeList ranking ingestion.

Walks the full `ranking_type=all` listing of the MAL v2 API page by page and turns
every node into an `Anime`. The result is the authoritative entity set for a run,
so any failure aborts ingestion instead of returning a partial catalog.
"""

import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from animap.cache.store import CacheStore
from animap.clients.http import HttpFetcher
from animap.exceptions import CacheStoreError, RankingIngestionError, SourceFetchError
from animap.models import Anime

logger = logging.getLogger(__name__)

RANKING_URL = (
    "https://api.myanimelist.net/v2/anime/ranking"
    "?ranking_type=all&limit=500&fields=media_type,start_date,alternative_titles"
)
ANIME_PAGE_URL = "https://myanimelist.net/anime/{mal_id}"


class MalAlternativeTitles(BaseModel):
    model_config = ConfigDict(extra="allow")

    synonyms: list[str] = Field(default_factory=list)
    en: str = ""
    ja: str = ""


class MalRankingNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    title: str = ""
    media_type: str = ""
    start_date: str = ""
    alternative_titles: MalAlternativeTitles = Field(default_factory=MalAlternativeTitles)


class MalRankingItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    node: MalRankingNode


class MalPaging(BaseModel):
    model_config = ConfigDict(extra="allow")

    next: str | None = None


class MalRankingPage(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: list[MalRankingItem] = Field(default_factory=list)
    paging: MalPaging = Field(default_factory=MalPaging)


def node_to_anime(node: MalRankingNode) -> Anime:
    alt = node.alternative_titles
    return Anime(
        mal_id=node.id,
        title=node.title,
        en_title=alt.en,
        ja_title=alt.ja,
        synonyms=[s for s in alt.synonyms if s],
        type=node.media_type,
        release_date=node.start_date,
    )


class MalRankingClient:
    """Fetches the complete MAL ranking.

    Args:
        session: aiohttp-style session.
        client_id: Value for the `X-MAL-CLIENT-ID` header.
        limiter: Optional rate limiter for api.myanimelist.net.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        *,
        session: Any,
        client_id: str,
        limiter: Any | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._fetcher = HttpFetcher(
            session=session,
            limiter=limiter,
            timeout_seconds=timeout_seconds,
            headers={"X-MAL-CLIENT-ID": client_id},
        )

    async def fetch_page(self, url: str) -> MalRankingPage:
        try:
            payload = await self._fetcher.get_json(url)
        except SourceFetchError as e:
            raise RankingIngestionError(str(e), url=e.url, status=e.status) from e
        try:
            return MalRankingPage.model_validate(payload)
        except ValidationError as e:
            raise RankingIngestionError(f"Malformed ranking page {url}: {e}", url=url) from e

    async def fetch_all(self, store: CacheStore | None = None) -> list[Anime]:
        """Follow `paging.next` until exhausted and return entities sorted by MAL id.

        Args:
            store: When given, each entity's URL, release date and type are
                upserted as it is ingested.

        Raises:
            RankingIngestionError: If any page fails.
        """
        start = time.time()
        entities: list[Anime] = []
        url: str | None = RANKING_URL
        pages = 0
        while url:
            page = await self.fetch_page(url)
            pages += 1
            for item in page.data:
                anime = node_to_anime(item.node)
                entities.append(anime)
                if store is not None:
                    _cache_ranking_fields(store, anime)
            logger.debug(f"Ranking page {pages}: {len(page.data)} entries")
            url = page.paging.next

        entities.sort(key=lambda a: a.mal_id)
        logger.info(
            f"Ingested {len(entities)} MAL entries from {pages} pages in {time.time() - start:.2f}s"
        )
        return entities


def _cache_ranking_fields(store: CacheStore, anime: Anime) -> None:
    try:
        store.upsert(
            anime.mal_id,
            url=ANIME_PAGE_URL.format(mal_id=anime.mal_id),
            release_date=anime.release_date,
            type=anime.type,
        )
    except CacheStoreError as e:
        logger.warning(f"Cache upsert failed for MAL {anime.mal_id}: {e}")
