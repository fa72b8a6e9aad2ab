"""
Main mapping pipeline.
Runs ranking ingestion, AniDB scraping, TVDB/TMDB resolution and deduplication
in sequence, persisting each stage's artifact under the output directory.
"""

import logging
import time
from types import TracebackType
from typing import Any

import aiohttp

from animap import repository
from animap.cache.store import CacheStore
from animap.clients.anime_list import BridgeTable, load_bridge_table
from animap.clients.anime_titles import TitleAuthority
from animap.clients.mal import MalRankingClient
from animap.clients.mal_scraper import MalPageScraper
from animap.clients.tmdb import TmdbClient
from animap.config import Settings
from animap.exceptions import BridgeTableError, ConfigurationError
from animap.fetch_mode import FetchMode
from animap.models import RunStatistics
from animap.rate_limiter import RateLimiter
from animap.stages.anidb import resolve_anidb_ids
from animap.stages.dedupe import remove_duplicates
from animap.stages.tmdb import resolve_tmdb_ids
from animap.stages.tvdb import apply_tvdb_ids
from animap.statistics import compute_statistics

logger = logging.getLogger(__name__)

MAL_API_MIN_INTERVAL_SECONDS = 1.0
TMDB_MIN_INTERVAL_SECONDS = 0.25


class MappingPipeline:
    """
    Orchestrates one full mapping run.

    The pipeline owns its HTTP session and cache handle unless they are passed
    in, and releases whatever it owns on exit.

    Args:
        settings: Effective configuration.
        session: Optional aiohttp session to share.
        store: Optional cache store; opened on enter if not already open.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session: Any | None = None,
        store: CacheStore | None = None,
    ) -> None:
        self.settings = settings
        self._session = session
        self._owns_session = session is None
        self.store = store or CacheStore(settings.db_path)
        self.timing_breakdown: dict[str, float] = {}

    @property
    def session(self) -> Any:
        if self._session is None:
            raise RuntimeError("MappingPipeline must be used as an async context manager")
        return self._session

    async def __aenter__(self) -> "MappingPipeline":
        self.store.open()
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self.store.close()
        return False

    def _validate(self) -> None:
        if not self.settings.mal_client_id:
            raise ConfigurationError("mal_client_id is required (ANIMAP_MAL_CLIENT_ID)")
        if self.settings.tmdb_mode != FetchMode.SKIP and not self.settings.tmdb_api_key:
            raise ConfigurationError(
                "tmdb_api_key is required unless the TMDB stage is skipped (ANIMAP_TMDB_API_KEY)"
            )

    def _timed(self, step: str, started: float) -> None:
        self.timing_breakdown[step] = time.time() - started
        logger.info(f"{step} complete in {self.timing_breakdown[step]:.2f}s")

    async def _load_bridge(self) -> BridgeTable:
        try:
            return await load_bridge_table(
                session=self.session, cache_dir=self.settings.source_cache_dir
            )
        except BridgeTableError as e:
            logger.error(f"Bridge table unavailable, continuing without it: {e}")
            return BridgeTable.empty()

    async def run(self) -> RunStatistics:
        """Execute every stage and return coverage statistics.

        Raises:
            AnimapError: On any run-aborting failure.
        """
        self._validate()
        settings = self.settings
        out = settings.output_dir
        run_start = time.time()

        step = time.time()
        ranking = MalRankingClient(
            session=self.session,
            client_id=settings.mal_client_id,
            limiter=RateLimiter(min_interval_seconds=MAL_API_MIN_INTERVAL_SECONDS),
            timeout_seconds=settings.request_timeout_seconds,
        )
        entities = await ranking.fetch_all(self.store)
        repository.save_anime(out / repository.MAL_FILE, entities)
        self._timed("ranking", step)

        step = time.time()
        scraper = MalPageScraper(
            session=self.session,
            limiter=RateLimiter(
                min_interval_seconds=settings.scrape_delay_seconds,
                max_per_minute=0,
                jitter_seconds=settings.scrape_random_delay_seconds,
            ),
            timeout_seconds=settings.request_timeout_seconds,
        )
        await resolve_anidb_ids(
            entities,
            store=self.store,
            source=scraper,
            mode=settings.anidb_mode,
            concurrency=settings.scrape_concurrency,
        )
        repository.save_anime(out / repository.ANIDB_FILE, entities)
        self._timed("anidb", step)

        step = time.time()
        bridge = await self._load_bridge()
        apply_tvdb_ids(entities, bridge)
        repository.save_anime(out / repository.TVDB_FILE, entities)
        repository.update_tvdb_master(out, repository.build_tvdb_unmapped(entities))
        self._timed("tvdb", step)

        step = time.time()
        tmdb_result = await resolve_tmdb_ids(
            entities,
            store=self.store,
            search=TmdbClient(
                session=self.session,
                api_key=settings.tmdb_api_key,
                limiter=RateLimiter(min_interval_seconds=TMDB_MIN_INTERVAL_SECONDS),
                timeout_seconds=settings.request_timeout_seconds,
            ),
            bridge=bridge,
            mode=settings.tmdb_mode,
            legacy_exact_match=settings.tmdb_legacy_exact_match,
        )
        repository.save_anime(out / repository.TMDB_FILE, entities)
        repository.update_tmdb_master(out, tmdb_result.unmapped)
        self._timed("tmdb", step)

        step = time.time()
        authority = TitleAuthority(
            session=self.session, timeout_seconds=settings.request_timeout_seconds
        )
        dupe_count, final = await remove_duplicates(entities, authority)
        repository.save_anime(out / repository.FINAL_FILE, final)
        self._timed("dedupe", step)

        stats = compute_statistics(final, dupe_count)
        logger.info(f"Run finished in {time.time() - run_start:.2f}s")
        for line in stats.summary_lines():
            logger.info(f"  {line}")
        return stats

    def get_performance_report(self) -> str:
        report = ["Performance Report:"]
        for step, time_taken in self.timing_breakdown.items():
            report.append(f"  {step}: {time_taken:.3f}s")
        return "\n".join(report)
