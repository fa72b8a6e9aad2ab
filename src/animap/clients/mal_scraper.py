"""MAL detail-page scraping for AniDB identifiers.

Each MAL anime page links to AniDB in its "External Links" block; the link
carries the AniDB id in its `aid` query parameter.
"""

import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from animap.clients.http import HttpFetcher

logger = logging.getLogger(__name__)

DETAIL_URL = "https://myanimelist.net/anime/{mal_id}"
ANIDB_LINK_ATTR = "data-ga-click-type"
ANIDB_LINK_VALUE = "external-links-anime-pc-anidb"
AID_PATTERN = re.compile(r"aid=(\d+)")

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def extract_anidb_id(html: str) -> int:
    """Return the AniDB id linked from a MAL detail page, or 0 if there is none."""
    soup = BeautifulSoup(html, "html.parser")
    link = soup.find("a", attrs={ANIDB_LINK_ATTR: ANIDB_LINK_VALUE})
    if link is None:
        return 0
    match = AID_PATTERN.search(link.get("href") or "")
    return int(match.group(1)) if match else 0


class MalPageScraper:
    """Fetches MAL detail pages through a shared limiter.

    Args:
        session: aiohttp-style session.
        limiter: Rate limiter shared by every concurrent fetch against myanimelist.net.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self, *, session: Any, limiter: Any | None = None, timeout_seconds: float = 30.0
    ) -> None:
        self._fetcher = HttpFetcher(
            session=session,
            limiter=limiter,
            timeout_seconds=timeout_seconds,
            headers={"User-Agent": USER_AGENT},
        )

    async def fetch_anidb_id(self, mal_id: int) -> int:
        """Scrape the AniDB id for one MAL entry.

        Raises:
            SourceFetchError: If the page cannot be retrieved.
        """
        html = await self._fetcher.get_text(DETAIL_URL.format(mal_id=mal_id))
        return extract_anidb_id(html)
