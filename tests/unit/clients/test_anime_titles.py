from unittest.mock import AsyncMock, MagicMock

import pytest

from animap.clients.anime_titles import TitleAuthority, parse_main_titles

ANIME_TITLES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<animetitles>
  <anime aid="1">
    <title xml:lang="ja" type="official">星界の紋章</title>
    <title xml:lang="x-jat" type="main">Seikai no Monshou</title>
    <title xml:lang="en" type="official">Crest of the Stars</title>
  </anime>
  <anime aid="100">
    <title xml:lang="x-jat" type="main">Show A</title>
    <title xml:lang="en" type="synonym">Show B</title>
  </anime>
  <anime aid="200">
    <title xml:lang="en" type="official">No Main Title</title>
  </anime>
</animetitles>
"""


def _cm(response):
    cm = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=response)
    cm.__aexit__ = AsyncMock(return_value=None)
    return cm


def _session(status=200):
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=ANIME_TITLES_XML)
    session = MagicMock()
    session.get = MagicMock(return_value=_cm(resp))
    return session


def test_parse_main_titles():
    assert parse_main_titles(ANIME_TITLES_XML) == {1: "Seikai no Monshou", 100: "Show A"}


@pytest.mark.asyncio
async def test_main_title_fetches_once():
    session = _session()
    authority = TitleAuthority(session=session)

    assert await authority.main_title(100) == "Show A"
    assert await authority.main_title(1) == "Seikai no Monshou"
    assert await authority.main_title(200) is None
    session.get.assert_called_once()


@pytest.mark.asyncio
async def test_failed_fetch_returns_none_and_is_not_retried():
    session = _session(status=500)
    authority = TitleAuthority(session=session)

    assert await authority.main_title(100) is None
    assert await authority.main_title(1) is None
    session.get.assert_called_once()
