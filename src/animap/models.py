"""
Data models shared across the mapping pipeline.

`Anime` is the unit every stage enriches; its aliased fields define the JSON
artifact layout. Matching-only titles (`ja_title`, `synonyms`) are excluded from
serialization and do not survive a save/load cycle.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Serialized only when set.
_OMIT_WHEN_EMPTY = ("enTitle", "anidbid", "tvdbid", "tmdbid")


class Anime(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    en_title: str = Field(default="", alias="enTitle")
    ja_title: str = Field(default="", exclude=True)
    synonyms: list[str] = Field(default_factory=list, exclude=True)
    mal_id: int = Field(alias="malid")
    anidb_id: int = Field(default=0, alias="anidbid")
    tvdb_id: int = Field(default=0, alias="tvdbid")
    tmdb_id: int = Field(default=0, alias="tmdbid")
    type: str = ""
    release_date: str = Field(default="", alias="releaseDate")

    @property
    def release_year(self) -> int | None:
        """Year prefix of `release_date`, or None when absent or malformed."""
        prefix = self.release_date[:4]
        if len(prefix) == 4 and prefix.isdigit():
            return int(prefix)
        return None

    def to_record(self) -> dict:
        record = self.model_dump(by_alias=True)
        for key in _OMIT_WHEN_EMPTY:
            if not record.get(key):
                record.pop(key, None)
        return record


class CacheEntry(BaseModel):
    """One row of the identifier cache."""

    mal_id: int
    anidb_id: int = 0
    tmdb_id: int = 0
    url: str = ""
    release_date: str = ""
    type: str = ""
    cached_at: datetime
    last_used: datetime
    had_anidb_id: bool = False
    anidb_checked_at: datetime | None = None


class ScoringCandidate(BaseModel):
    """The subset of a TMDB search result the confidence scorer looks at."""

    model_config = ConfigDict(frozen=True)

    tmdb_id: int
    title: str = ""
    original_title: str = ""
    release_date: str = ""
    popularity: float = 0.0
    vote_count: int = 0
    genre_ids: tuple[int, ...] = ()
    video: bool = False


class RunStatistics(BaseModel):
    total: int = 0
    with_anidb: int = 0
    movies: int = 0
    movies_with_tmdb: int = 0
    tv: int = 0
    tv_with_tvdb: int = 0
    dupe_count: int = 0

    @staticmethod
    def _percent(part: int, whole: int) -> float:
        return (part / whole * 100.0) if whole else 0.0

    @property
    def anidb_coverage(self) -> float:
        return self._percent(self.with_anidb, self.total)

    @property
    def tmdb_coverage(self) -> float:
        return self._percent(self.movies_with_tmdb, self.movies)

    @property
    def tvdb_coverage(self) -> float:
        return self._percent(self.tv_with_tvdb, self.tv)

    def summary_lines(self) -> list[str]:
        return [
            f"Total MAL IDs: {self.total}",
            f"MAL IDs with AniDB ID: {self.with_anidb} ({self.anidb_coverage:.2f}%)",
            f"Movies: {self.movies}",
            f"Movies with TMDB ID: {self.movies_with_tmdb} ({self.tmdb_coverage:.2f}%)",
            f"TV shows: {self.tv}",
            f"TV shows with TVDB ID: {self.tv_with_tvdb} ({self.tvdb_coverage:.2f}%)",
            f"Duplicate groups removed: {self.dupe_count}",
        ]


# =============================================================================
# Curation mapping files
# =============================================================================


class TmdbMovieMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    main_title: str = Field(alias="mainTitle")
    tmdb_id: int = Field(default=0, alias="tmdbid")
    mal_id: int = Field(alias="malid")


class TvdbSeasonMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tvdb_season: int = Field(default=0, alias="tvdbseason")
    start: int = 0


class TvdbShowMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mal_id: int = Field(alias="malid")
    title: str = ""
    type: str = ""
    tvdb_id: int = Field(default=0, alias="tvdbid")
    tvdb_season: int = Field(default=0, alias="tvdbseason")
    start: int = 0
    use_mapping: bool = Field(default=False, alias="useMapping")
    anime_mapping: list[TvdbSeasonMapping] = Field(
        default_factory=list, alias="animeMapping"
    )
