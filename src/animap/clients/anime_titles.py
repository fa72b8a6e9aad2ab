"""AniDB main-title authority backed by Anime-Lists `animetitles.xml`."""

import logging
from typing import Any

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from animap.clients.http import HttpFetcher
from animap.exceptions import SourceFetchError, TitleAuthorityError

logger = logging.getLogger(__name__)

ANIME_TITLES_URL = "https://github.com/Anime-Lists/anime-lists/raw/master/animetitles.xml"


def parse_main_titles(xml_content: str | bytes) -> dict[int, str]:
    """Map AniDB id -> main title.

    Raises:
        TitleAuthorityError: If the document is not well-formed XML.
    """
    try:
        root = ET.fromstring(xml_content)
    except (ET.ParseError, DefusedXmlException) as e:
        raise TitleAuthorityError(f"Invalid animetitles.xml: {e}") from e

    titles: dict[int, str] = {}
    for anime in root.iter("anime"):
        try:
            aid = int(anime.get("aid", ""))
        except ValueError:
            continue
        for title in anime.iter("title"):
            if title.get("type") == "main" and title.text:
                titles[aid] = title.text.strip()
                break
    return titles


class TitleAuthority:
    """Looks up AniDB main titles, downloading the feed at most once.

    A failed download is remembered too, so one run never retries it.
    """

    def __init__(
        self, *, session: Any, url: str = ANIME_TITLES_URL, timeout_seconds: float = 30.0
    ) -> None:
        self._fetcher = HttpFetcher(session=session, timeout_seconds=timeout_seconds)
        self._url = url
        self._titles: dict[int, str] | None = None
        self._failed = False

    async def _load(self) -> dict[int, str] | None:
        if self._titles is not None or self._failed:
            return self._titles
        try:
            content = await self._fetcher.get_text(self._url)
            self._titles = parse_main_titles(content)
        except SourceFetchError as e:
            logger.error(f"Title authority unavailable: {e}")
            self._failed = True
            return None
        logger.info(f"Loaded {len(self._titles)} AniDB main titles")
        return self._titles

    async def main_title(self, anidb_id: int) -> str | None:
        """Return the main title for `anidb_id`, or None when unknown or unavailable."""
        titles = await self._load()
        if titles is None:
            return None
        return titles.get(anidb_id)
