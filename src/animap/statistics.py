"""Coverage statistics for a finished run."""

from collections.abc import Iterable

from animap.models import Anime, RunStatistics


def compute_statistics(entities: Iterable[Anime], dupe_count: int = 0) -> RunStatistics:
    stats = RunStatistics(dupe_count=dupe_count)
    for anime in entities:
        stats.total += 1
        if anime.anidb_id > 0:
            stats.with_anidb += 1
        if anime.type == "movie":
            stats.movies += 1
            if anime.tmdb_id > 0:
                stats.movies_with_tmdb += 1
        elif anime.type == "tv":
            stats.tv += 1
            if anime.tvdb_id > 0:
                stats.tv_with_tvdb += 1
    return stats
