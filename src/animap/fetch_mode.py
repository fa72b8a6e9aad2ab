"""
Fetch-mode policy shared by the resolution stages.

Each stage describes what it gates on with a `StagePolicy`; `select_candidates`
turns the entity set, the identifiers already known to the cache and the
configured `FetchMode` into the list of entities that need network work.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum

from animap.models import Anime


class FetchMode(str, Enum):
    """How aggressively a stage re-resolves identifiers."""

    SKIP = "skip"
    ALL = "all"
    MISSING = "missing"
    DEFAULT = "default"


@dataclass(frozen=True)
class StagePolicy:
    """
    Parameters for one stage's candidate selection.

    Attributes:
        id_field: Entity attribute holding the identifier the stage resolves.
        stage_type: Type filter applied in every non-skip mode, or None.
        default_type: Type required under `FetchMode.DEFAULT` only, or None.
        recent_window_years: Under `FetchMode.DEFAULT`, maximum distance between
            the release year and the current year, or None for no date gate.
    """

    id_field: str
    stage_type: str | None = None
    default_type: str | None = None
    recent_window_years: int | None = None


ANIDB_POLICY = StagePolicy(
    "anidb_id", stage_type=None, default_type="tv", recent_window_years=1
)
TMDB_POLICY = StagePolicy("tmdb_id", stage_type="movie")


def _is_unresolved(anime: Anime, policy: StagePolicy, cached_ids: Mapping[int, int]) -> bool:
    return getattr(anime, policy.id_field) == 0 and anime.mal_id not in cached_ids


def _is_recent(anime: Anime, window: int, today: date) -> bool:
    year = anime.release_year
    return year is not None and abs(year - today.year) <= window


def select_candidates(
    entities: Iterable[Anime],
    cached_ids: Mapping[int, int],
    mode: FetchMode,
    policy: StagePolicy,
    *,
    today: date | None = None,
) -> list[Anime]:
    """Return the entities a stage should resolve this run, in input order."""
    mode = FetchMode(mode)
    if mode is FetchMode.SKIP:
        return []

    today = today or date.today()
    selected: list[Anime] = []
    for anime in entities:
        if policy.stage_type is not None and anime.type != policy.stage_type:
            continue

        if mode is FetchMode.ALL:
            selected.append(anime)
            continue

        if not _is_unresolved(anime, policy, cached_ids):
            continue

        if mode is FetchMode.DEFAULT:
            if policy.default_type is not None and anime.type != policy.default_type:
                continue
            if policy.recent_window_years is not None and not _is_recent(
                anime, policy.recent_window_years, today
            ):
                continue

        selected.append(anime)

    return selected
