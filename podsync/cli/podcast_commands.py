"""CLI commands for podcast syncing.

Provides commands for:
- Syncing all (or one) configured podcasts
- Listing due episodes without downloading
- Listing configured podcasts
- Viewing download counts
- Editing the podcasts file
"""

import argparse
import asyncio
import logging
import os
import shlex
import subprocess
import sys
from typing import Dict, List, Tuple

from ..config import Config
from ..db.factory import create_repository
from ..podcast.errors import ConfigError
from ..podcast.http_client import HttpClient
from ..podcast.podcast_config import PodcastConfig, load_podcast_configs
from ..podcast.policy import Backlog, DownloadMode
from ..workflow.display import ProgressDisplay
from ..workflow.orchestrator import PodcastSyncResult, SyncOrchestrator

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_selected_podcasts(args, config: Config) -> Dict[str, PodcastConfig]:
    """
    Load the podcasts file, optionally narrowed to ``args.podcast``.

    Exits with status 1 if the file is invalid or the named podcast is not configured.
    """
    path = config.ensure_podcasts_file()

    try:
        podcast_configs = load_podcast_configs(path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    selected = getattr(args, "podcast", None)
    if selected:
        if selected not in podcast_configs:
            print(f"Error: no podcast named '{selected}' in {path}", file=sys.stderr)
            sys.exit(1)
        podcast_configs = {selected: podcast_configs[selected]}

    if not podcast_configs:
        print(f"No podcasts configured. Add entries to {path}")

    return podcast_configs


async def run_sync(
    config: Config, repository, podcast_configs: Dict[str, PodcastConfig], show_progress: bool
) -> Tuple[List, List[PodcastSyncResult]]:
    display = ProgressDisplay(podcast_configs, enabled=show_progress)
    try:
        async with HttpClient.from_config(config) as client:
            orchestrator = SyncOrchestrator(
                config=config,
                client=client,
                repository=repository,
                display=display,
            )
            paths = await orchestrator.sync_all(podcast_configs)
            return paths, orchestrator.last_results
    finally:
        display.close()


def sync_podcasts(args, config: Config):
    """
    Download due episodes for every configured podcast (or just ``args.podcast``).

    Prints each downloaded file path. Exits with status 1 if any podcast failed.
    """
    podcast_configs = load_selected_podcasts(args, config)
    if not podcast_configs:
        return

    config.ensure_download_directory()
    repository = create_repository(database_url=config.DATABASE_URL)

    try:
        show_progress = not args.no_progress and sys.stderr.isatty()
        paths, results = asyncio.run(
            run_sync(config, repository, podcast_configs, show_progress)
        )
    finally:
        repository.close()

    for path in paths:
        print(path)

    failed = [result for result in results if not result.success]
    for result in failed:
        print(f"Error: {result.name}: {result.error}", file=sys.stderr)

    print(f"\nDownloaded {len(paths)} episodes from {len(results)} podcasts")
    if failed:
        sys.exit(1)


async def run_pending(config: Config, repository, podcast_configs: Dict[str, PodcastConfig]):
    async with HttpClient.from_config(config) as client:
        orchestrator = SyncOrchestrator(config=config, client=client, repository=repository)
        return await orchestrator.pending(podcast_configs)


def show_pending(args, config: Config):
    """List the episodes the next sync would download, in download order."""
    podcast_configs = load_selected_podcasts(args, config)
    if not podcast_configs:
        return

    repository = create_repository(database_url=config.DATABASE_URL)
    try:
        results = asyncio.run(run_pending(config, repository, podcast_configs))
    finally:
        repository.close()

    for name, result in results.items():
        if result.error:
            print(f"\n{name}: error: {result.error}")
            continue

        print(f"\n{name}: {len(result.episodes)} due")
        for episode in result.episodes:
            print(f"  - {episode.published:%Y-%m-%d} {episode.title}")


def describe_mode(mode: DownloadMode) -> str:
    if isinstance(mode, Backlog):
        return f"backlog since {mode.cutoff:%Y-%m-%d}"
    return f"standard, latest {mode.limit}"


def list_podcasts(args, config: Config):
    """List configured podcasts with their feed URL and download mode."""
    podcast_configs = load_selected_podcasts(args, config)

    for name, podcast_config in podcast_configs.items():
        mode = DownloadMode.from_config(config, podcast_config)
        print(f"\n{name}")
        print(f"  URL: {podcast_config.url}")
        print(f"  Mode: {describe_mode(mode)}")
        if podcast_config.download_path:
            print(f"  Directory: {podcast_config.download_path}")


def show_status(args, config: Config):
    """Show how many episodes have been downloaded per podcast."""
    podcast_configs = load_selected_podcasts(args, config)
    repository = create_repository(database_url=config.DATABASE_URL)

    try:
        counts = repository.count_downloaded()
    finally:
        repository.close()

    print(f"\nPodcasts file: {config.PODCASTS_FILE}")
    print(f"Download directory: {config.DOWNLOAD_DIRECTORY}")
    print(f"\nDownloaded episodes:")
    for name in podcast_configs:
        print(f"  {name}: {counts.get(name, 0)}")

    # Podcasts removed from the file still have recorded downloads
    removed = sorted(set(counts) - set(podcast_configs))
    if removed and not getattr(args, "podcast", None):
        print(f"\n  No longer configured:")
        for name in removed:
            print(f"  {name}: {counts[name]}")


def edit_podcasts(args, config: Config):
    """Open the podcasts file in $EDITOR (or $VISUAL, falling back to vi)."""
    path = config.ensure_podcasts_file()
    editor = os.getenv("EDITOR") or os.getenv("VISUAL") or "vi"

    try:
        completed = subprocess.run([*shlex.split(editor), str(path)])
    except OSError as e:
        print(f"Error: could not start editor '{editor}': {e}", file=sys.stderr)
        sys.exit(1)

    if completed.returncode != 0:
        sys.exit(completed.returncode)

    # Validate the edited file so mistakes show up right away
    try:
        configs = load_podcast_configs(path)
    except ConfigError as e:
        print(f"Warning: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"{len(configs)} podcasts configured in {path}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="podsync",
        description="Podcast feed sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        help="Path to .env file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: PODSYNC_LOG_LEVEL or INFO)",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Download due episodes",
    )
    sync_parser.add_argument(
        "--podcast",
        help="Sync only the podcast with this name",
    )
    sync_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bars",
    )

    # pending command
    pending_parser = subparsers.add_parser(
        "pending",
        help="Show episodes the next sync would download",
    )
    pending_parser.add_argument(
        "--podcast",
        help="Check only the podcast with this name",
    )

    # list command
    subparsers.add_parser(
        "list",
        help="List configured podcasts",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show downloaded episode counts",
    )
    status_parser.add_argument(
        "--podcast",
        help="Show status for a specific podcast",
    )

    # edit command
    subparsers.add_parser(
        "edit",
        help="Open the podcasts file in $EDITOR",
    )

    return parser


def main():
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load configuration
    config = Config(env_file=args.env_file)
    setup_logging(args.log_level or config.LOG_LEVEL)

    # Route to appropriate command
    commands = {
        "sync": sync_podcasts,
        "pending": show_pending,
        "list": list_podcasts,
        "status": show_status,
        "edit": edit_podcasts,
    }

    command_func = commands.get(args.command)
    if command_func:
        command_func(args, config)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
