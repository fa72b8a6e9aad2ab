import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from animap import __version__, cli
from animap.cache.store import CacheStore
from animap.config import Settings
from animap.exceptions import ConfigurationError
from animap.fetch_mode import FetchMode
from animap.models import RunStatistics


@pytest.fixture
def base_settings(tmp_path):
    return Settings(_env_file=None, root_path=tmp_path)


def test_version(capsys):
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == f"animap {__version__}"


def test_parser_run_modes():
    args = cli.build_parser().parse_args(["--root", "/data", "run", "--anidb", "skip", "--tmdb", "all"])
    assert args.command == "run"
    assert args.root == Path("/data")
    assert (args.anidb, args.tmdb) == ("skip", "all")


def test_parser_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["run", "--anidb", "sometimes"])


def test_resolve_settings_applies_overrides(base_settings, tmp_path):
    args = cli.build_parser().parse_args(
        ["--root", str(tmp_path / "x"), "--log-level", "debug", "run", "--tmdb", "missing"]
    )

    settings = cli.resolve_settings(args, base_settings)

    assert settings.root_path == tmp_path / "x"
    assert settings.log_level == "DEBUG"
    assert settings.tmdb_mode is FetchMode.MISSING
    assert settings.anidb_mode is FetchMode.DEFAULT


def test_resolve_settings_rejects_bad_log_level(base_settings):
    args = cli.build_parser().parse_args(["--log-level", "chatty", "genmap"])
    with pytest.raises(ValueError):
        cli.resolve_settings(args, base_settings)


def test_prune_cache_removes_only_unresolved_tv_entries_of_year(base_settings):
    with CacheStore(base_settings.db_path) as store:
        store.upsert(1, release_date="2025-01-10", type="tv", anidb_checked=True)
        store.upsert(2, release_date="2025-03-01", type="tv", anidb_id=22)
        store.upsert(3, release_date="2024-12-31", type="tv")
        store.upsert(9, release_date="2025-05-01", type="movie", tmdb_id=777)

    assert cli.prune_cache(base_settings, 2025) == 1

    with CacheStore(base_settings.db_path) as store:
        assert store.get(1) is None
        assert store.get(2) is not None
        assert store.get(3) is not None
        assert store.tmdb_ids() == {9: 777}


def test_genmap_without_masters_fails(tmp_path):
    assert cli.main(["--root", str(tmp_path), "genmap"]) == 1


def test_format_without_masters_succeeds(tmp_path):
    assert cli.main(["--root", str(tmp_path), "format"]) == 0


@pytest.mark.asyncio
async def test_run_pipeline_notifies_failure(base_settings):
    notifier = AsyncMock()
    with (
        patch("animap.cli.DiscordNotifier", return_value=notifier),
        patch("animap.cli.MappingPipeline") as pipeline_cls,
    ):
        pipeline = pipeline_cls.return_value.__aenter__.return_value
        pipeline.run = AsyncMock(side_effect=ConfigurationError("mal_client_id is required"))
        code = await cli.run_pipeline(base_settings)

    assert code == 1
    notifier.notify_failure.assert_awaited_once_with("mal_client_id is required")
    notifier.notify_success.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_pipeline_notifies_success(base_settings):
    notifier = AsyncMock()
    stats = RunStatistics(total=1)
    with (
        patch("animap.cli.DiscordNotifier", return_value=notifier),
        patch("animap.cli.MappingPipeline") as pipeline_cls,
    ):
        pipeline = pipeline_cls.return_value.__aenter__.return_value
        pipeline.run = AsyncMock(return_value=stats)
        pipeline.get_performance_report.return_value = "Performance Report:"
        code = await cli.run_pipeline(base_settings)

    assert code == 0
    notifier.notify_success.assert_awaited_once_with(stats)


@pytest.mark.asyncio
async def test_cancelled_run_exits_130():
    async def never_finishes():
        await asyncio.sleep(3600)

    task = asyncio.ensure_future(cli._run_cancellable(never_finishes()))
    await asyncio.sleep(0)
    # Cancels the inner task the same way the signal handler does.
    inner = [t for t in asyncio.all_tasks() if t is not task and t is not asyncio.current_task()]
    for t in inner:
        t.cancel()

    assert await task == 130
