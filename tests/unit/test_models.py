import json

from animap.models import Anime, RunStatistics


def test_to_record_uses_aliases_and_omits_empty_ids():
    anime = Anime(mal_id=1, title="Cowboy Bebop", type="tv", release_date="1998-04-03")

    assert anime.to_record() == {
        "title": "Cowboy Bebop",
        "malid": 1,
        "type": "tv",
        "releaseDate": "1998-04-03",
    }


def test_to_record_excludes_matching_only_titles():
    anime = Anime(
        mal_id=5,
        title="Tengen Toppa Gurren Lagann",
        en_title="Gurren Lagann",
        ja_title="天元突破グレンラガン",
        synonyms=["TTGL"],
        anidb_id=5101,
        tvdb_id=81178,
        type="tv",
        release_date="2007-04-01",
    )

    record = anime.to_record()

    assert record["enTitle"] == "Gurren Lagann"
    assert record["anidbid"] == 5101
    assert record["tvdbid"] == 81178
    assert "ja_title" not in record
    assert "synonyms" not in record
    assert "tmdbid" not in record


def test_record_round_trip_preserves_persisted_fields():
    original = [
        Anime(mal_id=1, title="A", en_title="A en", anidb_id=10, tvdb_id=20, type="tv", release_date="2020"),
        Anime(mal_id=2, title="B", tmdb_id=30, type="movie", release_date="2021-05-01", synonyms=["Bee"]),
        Anime(mal_id=3, title="C", type="ova", release_date=""),
    ]

    text = json.dumps([a.to_record() for a in original])
    restored = [Anime.model_validate(r) for r in json.loads(text)]

    for before, after in zip(original, restored):
        assert after == before.model_copy(update={"synonyms": [], "ja_title": ""})


def test_release_year():
    assert Anime(mal_id=1, release_date="2019-10-02").release_year == 2019
    assert Anime(mal_id=1, release_date="2019").release_year == 2019
    assert Anime(mal_id=1, release_date="").release_year is None
    assert Anime(mal_id=1, release_date="n/a").release_year is None


def test_run_statistics_percentages_guard_zero_division():
    stats = RunStatistics()
    assert stats.anidb_coverage == 0.0
    assert stats.tmdb_coverage == 0.0

    stats = RunStatistics(total=4, with_anidb=1, movies=2, movies_with_tmdb=2)
    assert stats.anidb_coverage == 25.0
    assert stats.tmdb_coverage == 100.0
    assert any("25.00%" in line for line in stats.summary_lines())
