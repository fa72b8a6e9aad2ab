"""TMDB movie search client."""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from animap.clients.http import HttpFetcher
from animap.exceptions import SourceFetchError, TmdbSearchError
from animap.models import ScoringCandidate

logger = logging.getLogger(__name__)

SEARCH_MOVIE_URL = "https://api.themoviedb.org/3/search/movie"


class TmdbMovieResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    title: str = ""
    original_title: str = ""
    release_date: str | None = ""
    popularity: float = 0.0
    vote_count: int = 0
    genre_ids: list[int] = Field(default_factory=list)
    video: bool = False

    def to_candidate(self) -> ScoringCandidate:
        return ScoringCandidate(
            tmdb_id=self.id,
            title=self.title,
            original_title=self.original_title,
            release_date=self.release_date or "",
            popularity=self.popularity,
            vote_count=self.vote_count,
            genre_ids=tuple(self.genre_ids),
            video=self.video,
        )


class TmdbSearchResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    page: int = 1
    results: list[TmdbMovieResult] = Field(default_factory=list)
    total_results: int = 0


class TmdbClient:
    """Searches TMDB movies by title and year.

    Args:
        session: aiohttp-style session.
        api_key: TMDB v3 API key.
        limiter: Optional rate limiter for api.themoviedb.org.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        *,
        session: Any,
        api_key: str,
        limiter: Any | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._fetcher = HttpFetcher(
            session=session, limiter=limiter, timeout_seconds=timeout_seconds
        )

    async def search_movie(self, query: str, year: int | None = None) -> TmdbSearchResponse:
        """Run one `/search/movie` query.

        Raises:
            TmdbSearchError: On transport failure, non-200 status or malformed body.
        """
        params: dict[str, Any] = {
            "api_key": self._api_key,
            "language": "en-US",
            "page": 1,
            "include_adult": "true",
            "query": query,
        }
        if year:
            params["year"] = year

        try:
            payload = await self._fetcher.get_json(SEARCH_MOVIE_URL, params=params)
        except SourceFetchError as e:
            # The URL carries the API key; log the query instead.
            raise TmdbSearchError(
                f"TMDB search failed for {query!r} ({year}): status={e.status}",
                status=e.status,
            ) from e

        try:
            return TmdbSearchResponse.model_validate(payload)
        except ValidationError as e:
            raise TmdbSearchError(f"Malformed TMDB response for {query!r}: {e}") from e
