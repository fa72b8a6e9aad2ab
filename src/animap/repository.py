"""
File persistence for entity artifacts and curation mappings.

Entity artifacts are JSON lists of `Anime` records. Curation mappings are YAML
documents edited by hand: the pipeline regenerates the "unmapped" lists each run
and merges them into the "master" files without losing curated ids.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from animap.exceptions import RepositoryError
from animap.models import Anime, TmdbMovieMapping, TvdbShowMapping

logger = logging.getLogger(__name__)

# Per-stage artifacts, in pipeline order.
MAL_FILE = "mal.json"
ANIDB_FILE = "mal-anidb.json"
TVDB_FILE = "mal-anidb-tvdb.json"
TMDB_FILE = "mal-anidb-tvdb-tmdb.json"
FINAL_FILE = "animap.json"

TMDB_UNMAPPED_FILE = "tmdb-mal-unmapped.yaml"
TMDB_MASTER_FILE = "tmdb-mal-master.yaml"
TMDB_MAP_FILE = "tmdb-mal.yaml"
TVDB_UNMAPPED_FILE = "tvdb-mal-unmapped.yaml"
TVDB_MASTER_FILE = "tvdb-mal-master.yaml"
TVDB_MAP_FILE = "tvdb-mal.yaml"

TMDB_KEY = "animeMovies"
TVDB_KEY = "AnimeMap"


# =============================================================================
# Entity artifacts
# =============================================================================


def save_anime(path: str | Path, entities: Iterable[Anime]) -> None:
    """Write entities as indented JSON.

    Raises:
        RepositoryError: If the file cannot be written.
    """
    path = Path(path)
    records = [anime.to_record() for anime in entities]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        raise RepositoryError(f"Failed to write {path}: {e}") from e
    logger.info(f"Stored {len(records)} entries in {path}")


def load_anime(path: str | Path) -> list[Anime]:
    """Read entities written by `save_anime`.

    Raises:
        RepositoryError: If the file is missing, unreadable or malformed.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
    except FileNotFoundError as e:
        raise RepositoryError(f"Artifact not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise RepositoryError(f"Failed to read {path}: {e}") from e

    if not isinstance(records, list):
        raise RepositoryError(f"Expected a JSON list in {path}")
    try:
        return [Anime.model_validate(record) for record in records]
    except ValidationError as e:
        raise RepositoryError(f"Malformed entry in {path}: {e}") from e


# =============================================================================
# YAML curation mappings
# =============================================================================


def _space_entries(text: str) -> str:
    """Separate top-level list items with a blank line for easier hand editing."""
    lines = text.splitlines()
    out: list[str] = []
    seen_item = False
    for line in lines:
        if line.startswith("- "):
            if seen_item:
                out.append("")
            seen_item = True
        out.append(line)
    return "\n".join(out) + "\n"


def _dump_yaml(path: Path, key: str, items: Sequence[BaseModel]) -> None:
    document = {key: [item.model_dump(by_alias=True) for item in items]}
    text = yaml.safe_dump(
        document, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_space_entries(text), encoding="utf-8")
    except OSError as e:
        raise RepositoryError(f"Failed to write {path}: {e}") from e
    logger.info(f"Stored {len(items)} mappings in {path}")


def _load_yaml(path: Path, key: str, model: type[BaseModel]) -> list:
    try:
        with open(path, encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise
    except (OSError, yaml.YAMLError) as e:
        raise RepositoryError(f"Failed to read {path}: {e}") from e

    if not isinstance(document, dict):
        raise RepositoryError(f"Expected a mapping at the top of {path}")
    try:
        return [model.model_validate(item) for item in document.get(key) or []]
    except ValidationError as e:
        raise RepositoryError(f"Malformed mapping in {path}: {e}") from e


def load_tmdb_mappings(path: str | Path) -> list[TmdbMovieMapping]:
    """Raises FileNotFoundError if absent, RepositoryError if malformed."""
    return _load_yaml(Path(path), TMDB_KEY, TmdbMovieMapping)


def save_tmdb_mappings(path: str | Path, items: Sequence[TmdbMovieMapping]) -> None:
    _dump_yaml(Path(path), TMDB_KEY, items)


def load_tvdb_mappings(path: str | Path) -> list[TvdbShowMapping]:
    """Raises FileNotFoundError if absent, RepositoryError if malformed."""
    return _load_yaml(Path(path), TVDB_KEY, TvdbShowMapping)


def save_tvdb_mappings(path: str | Path, items: Sequence[TvdbShowMapping]) -> None:
    _dump_yaml(Path(path), TVDB_KEY, items)


def update_tmdb_master(output_dir: str | Path, unmapped: Sequence[TmdbMovieMapping]) -> list[TmdbMovieMapping]:
    """Write the unmapped list and rebuild the master from it.

    Curated non-zero TMDB ids already in the master are carried over by MAL id.
    """
    output_dir = Path(output_dir)
    save_tmdb_mappings(output_dir / TMDB_UNMAPPED_FILE, unmapped)

    try:
        existing = load_tmdb_mappings(output_dir / TMDB_MASTER_FILE)
    except FileNotFoundError:
        existing = []
    curated = {m.mal_id: m.tmdb_id for m in existing if m.tmdb_id}

    master = [
        m.model_copy(update={"tmdb_id": curated.get(m.mal_id, m.tmdb_id)}) for m in unmapped
    ]
    save_tmdb_mappings(output_dir / TMDB_MASTER_FILE, master)
    return master


def build_tvdb_unmapped(entities: Iterable[Anime]) -> list[TvdbShowMapping]:
    return [
        TvdbShowMapping(mal_id=a.mal_id, title=a.title, type=a.type) for a in entities
    ]


def update_tvdb_master(output_dir: str | Path, unmapped: Sequence[TvdbShowMapping]) -> list[TvdbShowMapping]:
    """Write the unmapped list and merge curated entries (tvdbid != 0) into the master."""
    output_dir = Path(output_dir)
    save_tvdb_mappings(output_dir / TVDB_UNMAPPED_FILE, unmapped)

    try:
        existing = load_tvdb_mappings(output_dir / TVDB_MASTER_FILE)
    except FileNotFoundError:
        existing = []
    curated = {m.mal_id: m for m in existing if m.tvdb_id}

    master: list[TvdbShowMapping] = []
    for entry in unmapped:
        known = curated.get(entry.mal_id)
        if known is None:
            master.append(entry)
            continue
        master.append(
            entry.model_copy(
                update={
                    "tvdb_id": known.tvdb_id,
                    "tvdb_season": known.tvdb_season,
                    "start": known.start,
                    "use_mapping": known.use_mapping,
                    "anime_mapping": list(known.anime_mapping),
                }
            )
        )
    save_tvdb_mappings(output_dir / TVDB_MASTER_FILE, master)
    return master


def generate_mappings(output_dir: str | Path) -> tuple[int, int]:
    """Write the published TMDB and TVDB maps from their masters.

    Returns:
        `(tmdb_count, tvdb_count)` entries written.

    Raises:
        RepositoryError: If a master file is missing or malformed.
    """
    output_dir = Path(output_dir)
    try:
        tmdb_master = load_tmdb_mappings(output_dir / TMDB_MASTER_FILE)
        tvdb_master = load_tvdb_mappings(output_dir / TVDB_MASTER_FILE)
    except FileNotFoundError as e:
        raise RepositoryError(f"Master mapping not found: {e.filename}") from e

    tmdb = sorted((m for m in tmdb_master if m.tmdb_id), key=lambda m: m.mal_id)
    tvdb = sorted((m for m in tvdb_master if m.tvdb_id), key=lambda m: m.mal_id)
    save_tmdb_mappings(output_dir / TMDB_MAP_FILE, tmdb)
    save_tvdb_mappings(output_dir / TVDB_MAP_FILE, tvdb)
    return len(tmdb), len(tvdb)


def format_masters(output_dir: str | Path) -> list[Path]:
    """Rewrite existing master files sorted by MAL id. Missing files are skipped."""
    output_dir = Path(output_dir)
    formatted: list[Path] = []

    tmdb_path = output_dir / TMDB_MASTER_FILE
    try:
        tmdb = load_tmdb_mappings(tmdb_path)
    except FileNotFoundError:
        logger.info(f"{tmdb_path} not found, skipping")
    else:
        save_tmdb_mappings(tmdb_path, sorted(tmdb, key=lambda m: m.mal_id))
        formatted.append(tmdb_path)

    tvdb_path = output_dir / TVDB_MASTER_FILE
    try:
        tvdb = load_tvdb_mappings(tvdb_path)
    except FileNotFoundError:
        logger.info(f"{tvdb_path} not found, skipping")
    else:
        save_tvdb_mappings(tvdb_path, sorted(tvdb, key=lambda m: m.mal_id))
        formatted.append(tvdb_path)

    return formatted
