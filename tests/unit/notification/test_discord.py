from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from animap.models import RunStatistics
from animap.notification.discord import (
    FAILURE_COLOR,
    SUCCESS_COLOR,
    DiscordNotifier,
    build_failure_embed,
    build_success_embed,
)

WEBHOOK = "https://discord.com/api/webhooks/1/token"


def _cm(response):
    cm = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=response)
    cm.__aexit__ = AsyncMock(return_value=None)
    return cm


def _session(status=204):
    resp = MagicMock()
    resp.status = status
    session = MagicMock()
    session.post = MagicMock(return_value=_cm(resp))
    return session


def _stats():
    return RunStatistics(
        total=10, with_anidb=8, movies=4, movies_with_tmdb=3, tv=5, tv_with_tvdb=2, dupe_count=1
    )


def test_success_embed_reports_coverage():
    embed = build_success_embed(_stats())
    assert embed["color"] == SUCCESS_COLOR
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields["Total MAL IDs"] == "10"
    assert fields["AniDB Coverage"] == "8 (80.0%)"
    assert fields["Movies"] == "4 total, 3 with TMDB (75.0%)"
    assert fields["Duplicates Removed"] == "1"


def test_failure_embed_carries_message():
    embed = build_failure_embed("ranking unavailable")
    assert embed["color"] == FAILURE_COLOR
    assert "ranking unavailable" in embed["description"]


@pytest.mark.asyncio
async def test_notify_success_posts_embed():
    session = _session()
    notifier = DiscordNotifier(WEBHOOK, session=session)

    assert await notifier.notify_success(_stats()) is True

    assert session.post.call_args.args[0] == WEBHOOK
    payload = session.post.call_args.kwargs["json"]
    assert payload["embeds"][0]["title"] == "animap run completed"


@pytest.mark.asyncio
async def test_disabled_without_webhook_url():
    session = _session()
    notifier = DiscordNotifier("", session=session)

    assert notifier.enabled is False
    assert await notifier.notify_failure("boom") is False
    session.post.assert_not_called()


@pytest.mark.asyncio
async def test_http_error_status_is_reported_not_raised():
    notifier = DiscordNotifier(WEBHOOK, session=_session(status=400))
    assert await notifier.notify_failure("boom") is False


@pytest.mark.asyncio
async def test_transport_error_is_reported_not_raised():
    session = MagicMock()
    session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
    notifier = DiscordNotifier(WEBHOOK, session=session)

    assert await notifier.notify_success(_stats()) is False
