from unittest.mock import AsyncMock

import pytest

from animap.clients.anime_list import BridgeTable
from animap.clients.tmdb import TmdbMovieResult, TmdbSearchResponse
from animap.exceptions import TmdbSearchError
from animap.fetch_mode import FetchMode
from animap.models import Anime
from animap.stages.tmdb import TmdbResolver, collect_unmapped, fallback_queries, resolve_tmdb_ids


def _response(*results):
    return TmdbSearchResponse(
        results=[TmdbMovieResult(**r) for r in results], total_results=len(results)
    )


def _search(response=None, side_effect=None):
    search = AsyncMock()
    search.search_movie = AsyncMock(return_value=response or _response(), side_effect=side_effect)
    return search


def _resolver(search, store, bridge=None, legacy=True):
    return TmdbResolver(
        search=search,
        bridge=bridge or BridgeTable.empty(),
        store=store,
        legacy_exact_match=legacy,
    )


@pytest.mark.asyncio
async def test_bridge_mapping_wins_without_search_even_in_all_mode(store):
    search = _search()
    bridge = BridgeTable(tvdb={}, tmdb={10: 555})
    movie = Anime(mal_id=1, title="Film", type="movie", anidb_id=10, release_date="2020-01-01")

    result = await resolve_tmdb_ids(
        [movie], store=store, search=search, bridge=bridge, mode=FetchMode.ALL
    )

    assert movie.tmdb_id == 555
    assert result.from_bridge == 1
    assert result.unmapped == []
    search.search_movie.assert_not_awaited()
    assert store.get(1).tmdb_id == 555


@pytest.mark.asyncio
async def test_movie_without_release_date_is_unmapped_without_search(store):
    search = _search()
    movie = Anime(mal_id=2, title="Undated", type="movie")

    result = await _resolver(search, store).run([movie], FetchMode.DEFAULT)

    assert movie.tmdb_id == 0
    assert [m.mal_id for m in result.unmapped] == [2]
    search.search_movie.assert_not_awaited()


@pytest.mark.asyncio
async def test_legacy_exact_date_match(store):
    search = _search(
        _response(
            {"id": 7, "title": "Film", "release_date": "2019-01-01"},
            {"id": 8, "title": "Film", "release_date": "2020-03-14"},
        )
    )
    movie = Anime(mal_id=3, title="Film", en_title="The Film", type="movie", release_date="2020-03-14")

    tmdb_id, method = await _resolver(search, store).resolve(movie)

    assert (tmdb_id, method) == (8, "exact")
    search.search_movie.assert_awaited_once_with("The Film", 2020)


@pytest.mark.asyncio
async def test_scored_match_when_legacy_shortcut_disabled(store):
    search = _search(
        _response(
            {"id": 2, "title": "Bar", "release_date": "2020-05-01", "popularity": 50, "vote_count": 1000},
            {
                "id": 1,
                "title": "Foo Movie",
                "release_date": "2020-05-01",
                "popularity": 50,
                "vote_count": 1000,
                "genre_ids": [16],
            },
        )
    )
    movie = Anime(mal_id=4, title="Foo Movie", type="movie", release_date="2020-05-01")

    result = await _resolver(search, store, legacy=False).run([movie], FetchMode.DEFAULT)

    assert movie.tmdb_id == 1
    assert result.from_search == 1
    assert store.get(4).tmdb_id == 1


@pytest.mark.asyncio
async def test_fallback_to_japanese_title(store):
    async def search_movie(query, year=None):
        if query == "劇場版X":
            return _response(
                {"id": 42, "title": "Completely Different", "original_title": "劇場版X", "release_date": "2020-05-01"}
            )
        return _response()

    search = _search(side_effect=search_movie)
    movie = Anime(
        mal_id=5, title="Gekijouban X", ja_title="劇場版X", type="movie", release_date="2020-05-01"
    )

    tmdb_id, method = await _resolver(search, store, legacy=False).resolve(movie)

    assert (tmdb_id, method) == (42, "score")
    queries = [c.args[0] for c in search.search_movie.await_args_list]
    assert queries[0] == "Gekijouban X"
    assert "劇場版X" in queries


@pytest.mark.asyncio
async def test_search_failure_leaves_movie_unmapped_and_continues(store):
    async def search_movie(query, year=None):
        if query == "Broken":
            raise TmdbSearchError("HTTP 500", status=500)
        return _response({"id": 9, "title": "Works", "release_date": "2021-01-01"})

    search = _search(side_effect=search_movie)
    broken = Anime(mal_id=6, title="Broken", type="movie", release_date="2021-01-01")
    works = Anime(mal_id=7, title="Works", type="movie", release_date="2021-01-01")

    result = await _resolver(search, store).run([broken, works], FetchMode.MISSING)

    assert broken.tmdb_id == 0
    assert works.tmdb_id == 9
    assert [m.mal_id for m in result.unmapped] == [6]
    assert store.get(6) is None


@pytest.mark.asyncio
async def test_skip_mode_only_backfills_from_cache(store):
    store.upsert(8, tmdb_id=800)
    search = _search()
    movies = [
        Anime(mal_id=8, title="Cached", type="movie", release_date="2020-01-01"),
        Anime(mal_id=9, title="Unknown", type="movie", release_date="2020-01-01"),
    ]

    result = await _resolver(search, store).run(movies, FetchMode.SKIP)

    assert movies[0].tmdb_id == 800
    assert result.candidates == 0
    assert [m.mal_id for m in result.unmapped] == [9]
    search.search_movie.assert_not_awaited()


def test_fallback_queries_order_and_dedupe():
    anime = Anime(
        mal_id=1,
        title="Bleach Movie",
        ja_title="劇場版 BLEACH",
        synonyms=["Bleach Movie", "Memories of Nobody", "Memories of Nobody"],
    )
    assert fallback_queries(anime) == ["劇場版 BLEACH", "Memories of Nobody", "Bleach"]


def test_collect_unmapped_lists_movies_without_tmdb_id():
    entities = [
        Anime(mal_id=1, title="A", type="movie"),
        Anime(mal_id=2, title="B", type="movie", tmdb_id=5),
        Anime(mal_id=3, title="C", type="tv"),
    ]
    unmapped = collect_unmapped(entities)
    assert [(m.mal_id, m.main_title, m.tmdb_id) for m in unmapped] == [(1, "A", 0)]
