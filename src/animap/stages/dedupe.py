"""Duplicate resolution.

Two MAL TV entries sometimes point at the same AniDB id. The AniDB main title
decides which of them is wrong; without a main title nothing is removed.
"""

import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Protocol

from animap.models import Anime

logger = logging.getLogger(__name__)


class MainTitleSource(Protocol):
    async def main_title(self, anidb_id: int) -> str | None: ...


def find_duplicate_groups(entities: Sequence[Anime]) -> dict[tuple[int, str], list[Anime]]:
    """Group TV entries by (AniDB id, type), keeping only groups with 2+ members."""
    groups: dict[tuple[int, str], list[Anime]] = defaultdict(list)
    for anime in entities:
        if anime.anidb_id > 0 and anime.type == "tv":
            groups[(anime.anidb_id, anime.type)].append(anime)
    return {key: members for key, members in groups.items() if len(members) > 1}


async def remove_duplicates(
    entities: Sequence[Anime], authority: MainTitleSource
) -> tuple[int, list[Anime]]:
    """Drop duplicate-group members whose title is not the AniDB main title.

    Returns:
        `(duplicate_group_count, filtered_entities)`; order is preserved.
    """
    groups = find_duplicate_groups(entities)
    if not groups:
        logger.info("No duplicate AniDB ids found")
        return 0, list(entities)

    removed: set[int] = set()
    for (anidb_id, _), members in groups.items():
        main_title = await authority.main_title(anidb_id)
        if not main_title:
            logger.warning(
                f"No main title for AniDB {anidb_id}; keeping MAL "
                f"{[a.mal_id for a in members]}"
            )
            continue

        expected = main_title.casefold()
        for anime in members:
            if anime.title.casefold() != expected:
                logger.info(
                    f"Removing MAL {anime.mal_id} ({anime.title!r}): AniDB {anidb_id} is {main_title!r}"
                )
                removed.add(anime.mal_id)

    logger.info(f"Found {len(groups)} duplicate groups, removed {len(removed)} entries")
    return len(groups), [a for a in entities if a.mal_id not in removed]
