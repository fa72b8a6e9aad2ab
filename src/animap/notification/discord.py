"""Discord webhook notifications for run outcomes."""

import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp

from animap.models import RunStatistics

logger = logging.getLogger(__name__)

SUCCESS_COLOR = 0x00FF00
FAILURE_COLOR = 0xFF0000
WEBHOOK_TIMEOUT_SECONDS = 10.0


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_success_embed(stats: RunStatistics) -> dict[str, Any]:
    return {
        "title": "animap run completed",
        "description": "Mapping database updated successfully",
        "color": SUCCESS_COLOR,
        "timestamp": _timestamp(),
        "fields": [
            {"name": "Total MAL IDs", "value": str(stats.total), "inline": True},
            {
                "name": "AniDB Coverage",
                "value": f"{stats.with_anidb} ({stats.anidb_coverage:.1f}%)",
                "inline": True,
            },
            {
                "name": "Movies",
                "value": f"{stats.movies} total, {stats.movies_with_tmdb} with TMDB ({stats.tmdb_coverage:.1f}%)",
                "inline": False,
            },
            {
                "name": "TV Shows",
                "value": f"{stats.tv} total, {stats.tv_with_tvdb} with TVDB ({stats.tvdb_coverage:.1f}%)",
                "inline": False,
            },
            {"name": "Duplicates Removed", "value": str(stats.dupe_count), "inline": True},
        ],
    }


def build_failure_embed(message: str) -> dict[str, Any]:
    return {
        "title": "animap run failed",
        "description": f"Mapping update failed with error:\n```{message}```",
        "color": FAILURE_COLOR,
        "timestamp": _timestamp(),
    }


class DiscordNotifier:
    """Posts run results to a Discord webhook.

    Both methods are no-ops without a webhook URL. Delivery problems are logged,
    never raised: a failed notification must not change the run outcome.
    """

    def __init__(self, webhook_url: str, *, session: Any) -> None:
        self._webhook_url = webhook_url
        self._session = session

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def notify_success(self, stats: RunStatistics) -> bool:
        return await self._send(build_success_embed(stats))

    async def notify_failure(self, message: str) -> bool:
        return await self._send(build_failure_embed(message))

    async def _send(self, embed: dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        try:
            async with self._session.post(
                self._webhook_url,
                json={"embeds": [embed]},
                timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT_SECONDS),
            ) as response:
                if not 200 <= response.status < 300:
                    logger.warning(f"Discord webhook returned HTTP {response.status}")
                    return False
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning(f"Discord notification failed: {e}")
            return False
        logger.debug("Discord notification sent")
        return True
