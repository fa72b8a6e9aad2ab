import os
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from animap.clients.anime_list import CACHE_FILE_NAME, BridgeTable, load_bridge_table
from animap.exceptions import BridgeTableError

ANIME_LIST_XML = """<?xml version="1.0" encoding="UTF-8"?>
<anime-list>
  <anime anidbid="1" tvdbid="76885" defaulttvdbseason="1">
    <name>Seikai no Monshou</name>
  </anime>
  <anime anidbid="23" tvdbid="76885" defaulttvdbseason="0" tmdbid="11299">
    <name>Cowboy Bebop: Tengoku no Tobira</name>
  </anime>
  <anime anidbid="50" tvdbid="movie" tmdbid="4935">
    <name>Howl no Ugoku Shiro</name>
  </anime>
  <anime anidbid="60" tvdbid="hentai">
    <name>Skipped</name>
  </anime>
  <anime anidbid="x" tvdbid="1"/>
  <anime anidbid="70" tvdbid="0" tmdbid="-3"/>
</anime-list>
"""


def _cm(response):
    cm = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=response)
    cm.__aexit__ = AsyncMock(return_value=None)
    return cm


def _session(text=ANIME_LIST_XML, status=200):
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    session = MagicMock()
    session.get = MagicMock(return_value=_cm(resp))
    return session


class TestBridgeTable:
    def test_parses_tvdb_and_tmdb_maps(self):
        table = BridgeTable.from_xml(ANIME_LIST_XML)

        assert table.tvdb_id(1) == 76885
        assert table.tvdb_id(23) == 76885
        assert table.tmdb_id(23) == 11299
        assert table.tmdb_id(50) == 4935

    def test_skips_non_numeric_and_non_positive_ids(self):
        table = BridgeTable.from_xml(ANIME_LIST_XML)

        assert table.tvdb_id(50) == 0
        assert table.tvdb_id(60) == 0
        assert table.tvdb_id(70) == 0
        assert table.tmdb_id(70) == 0
        assert table.tmdb_id(1) == 0
        assert len(table) == 3

    def test_invalid_xml_raises(self):
        with pytest.raises(BridgeTableError):
            BridgeTable.from_xml("<anime-list><anime>")

    def test_entity_declarations_are_rejected(self):
        xml = '<!DOCTYPE a [<!ENTITY x "y">]><anime-list>&x;</anime-list>'
        with pytest.raises(BridgeTableError):
            BridgeTable.from_xml(xml)

    def test_empty(self):
        assert BridgeTable.empty().tmdb_id(1) == 0


class TestLoadBridgeTable:
    @pytest.mark.asyncio
    async def test_downloads_and_writes_through(self, tmp_path):
        session = _session()

        table = await load_bridge_table(session=session, cache_dir=tmp_path)

        assert table.tmdb_id(23) == 11299
        assert (tmp_path / CACHE_FILE_NAME).read_text(encoding="utf-8") == ANIME_LIST_XML

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_network(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_text(ANIME_LIST_XML, encoding="utf-8")
        session = _session()

        table = await load_bridge_table(session=session, cache_dir=tmp_path)

        assert table.tvdb_id(1) == 76885
        session.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_cache_is_refreshed(self, tmp_path):
        cached = tmp_path / CACHE_FILE_NAME
        cached.write_text("<anime-list/>", encoding="utf-8")
        stale = time.time() - 2 * 24 * 60 * 60
        os.utime(cached, (stale, stale))
        session = _session()

        table = await load_bridge_table(session=session, cache_dir=tmp_path)

        assert table.tmdb_id(23) == 11299
        session.get.assert_called_once()
        assert "tmdbid" in cached.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_corrupt_cache_falls_back_to_network(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_text("<broken", encoding="utf-8")
        session = _session()

        table = await load_bridge_table(session=session, cache_dir=tmp_path)

        assert table.tmdb_id(50) == 4935

    @pytest.mark.asyncio
    async def test_undecodable_cache_falls_back_to_network(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_bytes(b"<anime-list>\xff\xfe</anime-list>")

        table = await load_bridge_table(session=_session(), cache_dir=tmp_path)

        assert table.tmdb_id(50) == 4935

    @pytest.mark.asyncio
    async def test_without_cache_dir_fetches_directly(self):
        session = _session()

        table = await load_bridge_table(session=session, cache_dir=None)

        assert table.tvdb_id(1) == 76885

    @pytest.mark.asyncio
    async def test_network_failure_raises(self, tmp_path):
        with pytest.raises(BridgeTableError):
            await load_bridge_table(session=_session(status=404), cache_dir=tmp_path)
