"""Low-level rate-limited HTTP fetcher.

This module provides a small client responsible for:
- Applying a pre-request rate limiter.
- Performing HTTP GET requests.
- Retrying on HTTP 429 responses.
- Returning decoded JSON or text (no business mapping).

Unlike the stage code built on top of it, the fetcher does not swallow errors:
every failure surfaces as `SourceFetchError` so callers decide whether it is
fatal (ranking) or stage-local (detail pages, searches).
"""

import asyncio
import logging
from typing import Any

import aiohttp

from animap.exceptions import SourceFetchError
from animap.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5.0


class HttpFetcher:
    """HTTP GET helper shared by the source clients.

    Args:
        session: An aiohttp-style session that supports `session.get(...)`
            returning an async context manager.
        limiter: Optional limiter acquired before every attempt.
        timeout_seconds: Total request timeout in seconds.
        headers: Headers sent with every request.
    """

    def __init__(
        self,
        *,
        session: Any,
        limiter: RateLimiter | Any | None = None,
        timeout_seconds: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._session = session
        self._limiter = limiter
        self._timeout = aiohttp.ClientTimeout(total=float(timeout_seconds))
        self._headers = dict(headers or {})

    async def get_json(
        self, url: str, *, params: dict[str, Any] | None = None, max_retries: int = 3
    ) -> dict[str, Any]:
        """GET a URL and decode a JSON object.

        Raises:
            SourceFetchError: On a non-200 status (after 429 retries), a transport
                error, or a body that is not a JSON object.
        """
        result = await self._get(url, params=params, max_retries=max_retries, as_json=True)
        if not isinstance(result, dict):
            raise SourceFetchError(f"Expected a JSON object from {url}", url=url)
        return result

    async def get_text(
        self, url: str, *, params: dict[str, Any] | None = None, max_retries: int = 3
    ) -> str:
        """GET a URL and return the decoded body."""
        return await self._get(url, params=params, max_retries=max_retries, as_json=False)

    async def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None,
        max_retries: int,
        as_json: bool,
    ) -> Any:
        retry = 0
        while True:
            if self._limiter is not None:
                await self._limiter.acquire()
            try:
                async with self._session.get(
                    url, params=params, headers=self._headers, timeout=self._timeout
                ) as response:
                    if response.status == 200:
                        if as_json:
                            return await response.json(content_type=None)
                        return await response.text()

                    if response.status == 429 and retry < max_retries:
                        retry += 1
                        logger.warning(
                            f"HTTP 429 for {url}, retry {retry}/{max_retries} in {RETRY_AFTER_SECONDS}s"
                        )
                        await asyncio.sleep(RETRY_AFTER_SECONDS)
                        continue

                    raise SourceFetchError(
                        f"HTTP {response.status} for {url}", url=url, status=response.status
                    )
            except SourceFetchError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                raise SourceFetchError(f"Request failed for {url}: {e}", url=url) from e
