"""
Confidence scoring for TMDB movie candidates.

A candidate earns up to 40 points for title similarity, 30 for release-date
proximity, 20 for popularity and vote count, and a 5 point bonus for the
animation genre. Title similarity is a hard gate: a candidate with no title
overlap scores 0 no matter how well the rest lines up.
"""

from collections.abc import Sequence
from datetime import date

from animap.models import Anime, ScoringCandidate

MIN_CONFIDENCE = 50.0

ANIMATION_GENRE_ID = 16
DOCUMENTARY_GENRE_ID = 99

MOVIE_SUFFIXES = (" the Movie", " Movie", " (Movie)", " - Movie")


def _norm(value: str) -> str:
    return value.strip().lower()


def _overlaps(a: str, b: str) -> bool:
    """Substring containment in either direction, ignoring empty strings."""
    return bool(a) and bool(b) and (a in b or b in a)


def _eq(a: str, b: str) -> bool:
    return bool(a) and a == b


def title_score(anime: Anime, candidate: ScoringCandidate) -> float:
    title = _norm(anime.title)
    en_title = _norm(anime.en_title)
    ja_title = _norm(anime.ja_title)
    tmdb_title = _norm(candidate.title)
    tmdb_original = _norm(candidate.original_title)

    if _eq(title, tmdb_title) or _eq(en_title, tmdb_title):
        return 40.0
    if _eq(title, tmdb_original) or _eq(en_title, tmdb_original):
        return 35.0
    if _eq(ja_title, tmdb_original) or _eq(ja_title, tmdb_title):
        return 35.0
    if _overlaps(title, tmdb_title):
        return 25.0
    if _overlaps(title, tmdb_original):
        return 20.0
    if _overlaps(en_title, tmdb_title):
        return 25.0
    if _overlaps(ja_title, tmdb_original):
        return 20.0
    return 0.0


def _parse_date(value: str) -> date | None:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def date_score(release_date: str, candidate_date: str) -> float:
    if release_date == candidate_date:
        return 30.0

    ours, theirs = _parse_date(release_date), _parse_date(candidate_date)
    if ours is None or theirs is None:
        return 10.0

    days = abs((ours - theirs).days)
    if days <= 7:
        return 25.0
    if days <= 30:
        return 20.0
    if days <= 90:
        return 15.0
    return 10.0


def calculate_score(anime: Anime, candidate: ScoringCandidate) -> float:
    """Score how likely `candidate` is the TMDB entry for `anime` (0 to 105)."""
    score = title_score(anime, candidate)
    if score == 0:
        return 0.0

    score += date_score(anime.release_date, candidate.release_date)
    score += min(candidate.popularity / 10.0, 10.0)
    score += min(candidate.vote_count / 500.0, 10.0)
    if ANIMATION_GENRE_ID in candidate.genre_ids:
        score += 5.0
    return score


def _year(value: str) -> str:
    prefix = value[:4]
    return prefix if len(prefix) == 4 and prefix.isdigit() else ""


def prefilter(anime: Anime, candidates: Sequence[ScoringCandidate]) -> list[ScoringCandidate]:
    """Drop trailers, documentaries and candidates released in another year."""
    year = _year(anime.release_date)
    return [
        c
        for c in candidates
        if not c.video
        and DOCUMENTARY_GENRE_ID not in c.genre_ids
        and _year(c.release_date) == year
    ]


def find_best_match(
    anime: Anime, candidates: Sequence[ScoringCandidate]
) -> tuple[ScoringCandidate, float] | None:
    """Return the highest-scoring candidate and its score.

    The prefilter only applies when there is more than one candidate. Ties keep
    the earlier candidate (TMDB's relevance order).
    """
    if not candidates:
        return None
    pool = list(candidates) if len(candidates) == 1 else prefilter(anime, candidates)

    best: tuple[ScoringCandidate, float] | None = None
    for candidate in pool:
        score = calculate_score(anime, candidate)
        if score > 0 and (best is None or score > best[1]):
            best = (candidate, score)
    return best


def _strip_suffix_ci(title: str, suffix: str) -> str | None:
    if title.lower().endswith(suffix.lower()):
        return title[: -len(suffix)].rstrip()
    return None


def generate_title_variations(title: str) -> list[str]:
    """Mechanical search variants of `title`, excluding `title` itself."""
    title = title.strip()
    variations: list[str] = []

    for suffix in MOVIE_SUFFIXES:
        stripped = _strip_suffix_ci(title, suffix)
        if stripped:
            variations.append(stripped)

    if " vs. " in title:
        variations.append(title.replace(" vs. ", " vs "))
        variations.append(title.replace(" vs. ", " versus "))
    if " vs " in title:
        variations.append(title.replace(" vs ", " vs. "))
        variations.append(title.replace(" vs ", " versus "))
    if " versus " in title:
        variations.append(title.replace(" versus ", " vs. "))
        variations.append(title.replace(" versus ", " vs "))

    normalized = " ".join(title.split())
    if normalized != title:
        variations.append(normalized)

    seen: set[str] = {title}
    unique: list[str] = []
    for v in variations:
        if v not in seen:
            seen.add(v)
            unique.append(v)
    return unique
