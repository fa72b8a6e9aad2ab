"""Anime-Lists `anime-list.xml` bridge table.

The file maps AniDB ids to TVDB and TMDB ids. It is downloaded at most once a day:
a local copy is reused while fresh, refreshed on miss or expiry, and written
through after each download.
"""

import logging
import time
from pathlib import Path
from typing import Any

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from animap.clients.http import HttpFetcher
from animap.exceptions import BridgeTableError, SourceFetchError

logger = logging.getLogger(__name__)

ANIME_LIST_URL = "https://raw.githubusercontent.com/Anime-Lists/anime-lists/master/anime-list.xml"
CACHE_FILE_NAME = "anime-list.xml"
MAX_CACHE_AGE_SECONDS = 24 * 60 * 60
FETCH_TIMEOUT_SECONDS = 30.0


def _positive_int(value: str | None) -> int:
    try:
        number = int(value or "")
    except ValueError:
        return 0
    return number if number > 0 else 0


class BridgeTable:
    """Immutable AniDB -> TVDB / TMDB lookup maps."""

    def __init__(self, tvdb: dict[int, int], tmdb: dict[int, int]) -> None:
        self._tvdb = dict(tvdb)
        self._tmdb = dict(tmdb)

    @classmethod
    def empty(cls) -> "BridgeTable":
        return cls({}, {})

    @classmethod
    def from_xml(cls, xml_content: str | bytes) -> "BridgeTable":
        """Parse anime-list.xml, skipping non-numeric and non-positive ids.

        Raises:
            BridgeTableError: If the document is not well-formed XML.
        """
        try:
            root = ET.fromstring(xml_content)
        except (ET.ParseError, DefusedXmlException) as e:
            raise BridgeTableError(f"Invalid anime-list.xml: {e}") from e

        tvdb: dict[int, int] = {}
        tmdb: dict[int, int] = {}
        for anime in root.iter("anime"):
            anidb_id = _positive_int(anime.get("anidbid"))
            if not anidb_id:
                continue
            if tvdb_id := _positive_int(anime.get("tvdbid")):
                tvdb[anidb_id] = tvdb_id
            if tmdb_id := _positive_int(anime.get("tmdbid")):
                tmdb[anidb_id] = tmdb_id
        return cls(tvdb, tmdb)

    def tvdb_id(self, anidb_id: int) -> int:
        return self._tvdb.get(anidb_id, 0)

    def tmdb_id(self, anidb_id: int) -> int:
        return self._tmdb.get(anidb_id, 0)

    def __len__(self) -> int:
        return len(self._tvdb.keys() | self._tmdb.keys())


def _read_fresh_cache(path: Path, max_age: float) -> bytes | None:
    try:
        age = time.time() - path.stat().st_mtime
    except FileNotFoundError:
        return None
    if age > max_age:
        logger.debug(f"{path} is {age:.0f}s old, refreshing")
        return None
    return path.read_bytes()


def _write_cache(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not write bridge table cache {path}: {e}")


async def load_bridge_table(
    *,
    session: Any,
    cache_dir: Path | None = None,
    url: str = ANIME_LIST_URL,
    max_age_seconds: float = MAX_CACHE_AGE_SECONDS,
    timeout_seconds: float = FETCH_TIMEOUT_SECONDS,
) -> BridgeTable:
    """Load the bridge table from a fresh local copy or the network.

    Raises:
        BridgeTableError: If neither the cache nor the network yields a table.
    """
    cache_path = Path(cache_dir) / CACHE_FILE_NAME if cache_dir else None

    if cache_path is not None:
        try:
            cached = _read_fresh_cache(cache_path, max_age_seconds)
            if cached is not None:
                table = BridgeTable.from_xml(cached)
                logger.info(f"Loaded bridge table from {cache_path} ({len(table)} AniDB ids)")
                return table
        except (OSError, BridgeTableError) as e:
            logger.warning(f"Ignoring unreadable bridge table cache {cache_path}: {e}")

    fetcher = HttpFetcher(session=session, timeout_seconds=timeout_seconds)
    try:
        content = await fetcher.get_text(url)
    except SourceFetchError as e:
        raise BridgeTableError(f"Failed to download anime-list.xml: {e}", url=url) from e

    table = BridgeTable.from_xml(content)
    if cache_path is not None:
        _write_cache(cache_path, content)
    logger.info(f"Downloaded bridge table ({len(table)} AniDB ids)")
    return table
