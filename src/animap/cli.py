#!/usr/bin/env python3
"""
Command-line entry point.

Commands:
  run          Fetch, enrich and deduplicate the mapping database
  genmap       Publish tmdb-mal.yaml / tvdb-mal.yaml from the master files
  format       Re-sort and re-emit the master mapping files
  cache prune  Forget TV entries of a release year confirmed to have no AniDB id
  version      Print the version
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import aiohttp

from animap import __version__, repository
from animap.cache.store import CacheStore
from animap.config import Settings, get_settings
from animap.exceptions import AnimapError
from animap.fetch_mode import FetchMode
from animap.notification.discord import DiscordNotifier
from animap.pipeline import MappingPipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MODE_CHOICES = [m.value for m in FetchMode]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="animap",
        description="Map MyAnimeList ids to AniDB, TVDB and TMDB ids",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  animap run                              # Default fetch modes
  animap run --anidb skip --tmdb missing  # Only fill missing TMDB ids
  animap --root /data genmap              # Publish maps under /data/animap
  animap cache prune --year 2024          # Re-check 2024 TV entries without an AniDB link
        """,
    )
    parser.add_argument("--root", type=Path, help="Root directory for artifacts")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    run_cmd = sub.add_parser("run", help="Run the full mapping pipeline")
    run_cmd.add_argument("--anidb", choices=MODE_CHOICES, help="AniDB stage fetch mode")
    run_cmd.add_argument("--tmdb", choices=MODE_CHOICES, help="TMDB stage fetch mode")

    sub.add_parser("genmap", help="Generate tmdb-mal.yaml and tvdb-mal.yaml")
    sub.add_parser("format", help="Format the master mapping files")

    cache = sub.add_parser("cache", help="Cache maintenance")
    cache_sub = cache.add_subparsers(dest="cache_command", required=True)
    prune = cache_sub.add_parser(
        "prune", help="Forget TV entries of a release year confirmed to have no AniDB id"
    )
    prune.add_argument("--year", type=int, required=True, help="Release year")

    sub.add_parser("version", help="Print the version and exit")
    return parser


def resolve_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Apply CLI overrides on top of environment/.env settings."""
    base = base or get_settings()
    overrides: dict = {}
    if args.root is not None:
        overrides["root_path"] = args.root
    if args.log_level:
        level = args.log_level.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {args.log_level}")
        overrides["log_level"] = level
    if getattr(args, "anidb", None):
        overrides["anidb_mode"] = FetchMode(args.anidb)
    if getattr(args, "tmdb", None):
        overrides["tmdb_mode"] = FetchMode(args.tmdb)
    return base.model_copy(update=overrides)


async def run_pipeline(settings: Settings) -> int:
    settings.log_configuration()
    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=settings.request_timeout_seconds)
    ) as session:
        notifier = DiscordNotifier(settings.discord_webhook_url, session=session)
        try:
            async with MappingPipeline(settings, session=session) as pipeline:
                stats = await pipeline.run()
                logger.info(pipeline.get_performance_report())
        except AnimapError as e:
            logger.error(f"Run failed: {e}")
            await notifier.notify_failure(str(e))
            return 1
        except Exception as e:
            logger.exception(f"Run failed unexpectedly: {e}")
            await notifier.notify_failure(str(e))
            return 1
        await notifier.notify_success(stats)
    return 0


def prune_cache(settings: Settings, year: int) -> int:
    with CacheStore(settings.db_path) as store:
        entries = store.entries_by_release_year(year)
        removed = sum(1 for entry in entries if store.delete(entry.mal_id))
    logger.info(f"Pruned {removed} cached entries from {year}")
    return removed


async def _run_cancellable(coro) -> int:
    """Await `coro`, cancelling it on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(coro)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C still cancels via asyncio.run.
            pass
    try:
        return await task
    except asyncio.CancelledError:
        logger.warning("Run cancelled")
        return 130


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print(f"animap {__version__}")
        return 0

    try:
        settings = resolve_settings(args)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    try:
        if args.command == "run":
            return asyncio.run(_run_cancellable(run_pipeline(settings)))
        if args.command == "genmap":
            tmdb_count, tvdb_count = repository.generate_mappings(settings.output_dir)
            logger.info(f"Generated {tmdb_count} TMDB and {tvdb_count} TVDB mappings")
            return 0
        if args.command == "format":
            formatted = repository.format_masters(settings.output_dir)
            logger.info(f"Formatted {len(formatted)} master files")
            return 0
        if args.command == "cache" and args.cache_command == "prune":
            prune_cache(settings, args.year)
            return 0
    except AnimapError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    parser.print_help()
    return 2


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
