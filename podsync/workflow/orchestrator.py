"""Concurrent sync orchestrator.

One task per podcast runs concurrently with every other podcast. Within a
podcast the due episodes are processed strictly in policy order: download,
tag, start the post-download hook, mark downloaded. The first failing
episode stops that podcast's loop; episodes finished before it are kept and
their background work is awaited before the podcast's result is returned.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from podsync.config import Config
from podsync.db.repository import DownloadStateRepositoryInterface
from podsync.podcast.errors import PodSyncError
from podsync.podcast.hooks import spawn_download_hook
from podsync.podcast.http_client import HttpClient, build_episode_path
from podsync.podcast.models import DownloadedEpisode, Episode, Podcast
from podsync.podcast.podcast_config import PodcastConfig
from podsync.podcast.policy import eligible_episodes
from podsync.podcast.tags import enrich
from podsync.workflow.display import DownloadBar, ProgressDisplay

logger = logging.getLogger(__name__)


@dataclass
class PodcastSyncResult:
    """Outcome of syncing one podcast.

    Attributes:
        name: Configured podcast name.
        paths: Files downloaded in this run, in processing order.
        episodes: Due episodes (filled by dry runs).
        error: Message of the failure that stopped the podcast, if any.
    """

    name: str
    paths: List[Path] = field(default_factory=list)
    episodes: List[Episode] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class SyncOrchestrator:
    """Fans podcast syncs out over the event loop.

    The network client, repository and display are created by the caller
    and shared by every podcast task.

    Example:
        config = Config()
        async with HttpClient.from_config(config) as client:
            orchestrator = SyncOrchestrator(
                config=config,
                client=client,
                repository=create_repository(config.DATABASE_URL),
                display=ProgressDisplay(podcast_configs),
            )
            paths = await orchestrator.sync_all(podcast_configs)
    """

    def __init__(
        self,
        config: Config,
        client: HttpClient,
        repository: DownloadStateRepositoryInterface,
        display: Optional[ProgressDisplay] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Global configuration.
            client: Open HttpClient shared by all podcast tasks.
            repository: Persisted download state.
            display: Progress sink; a disabled display is used when omitted.
        """
        self.config = config
        self.client = client
        self.repository = repository
        self.display = display or ProgressDisplay(enabled=False)
        self.last_results: List[PodcastSyncResult] = []

    async def sync_all(self, podcast_configs: Mapping[str, PodcastConfig]) -> List[Path]:
        """Sync every podcast concurrently.

        Args:
            podcast_configs: Podcast entries keyed by their unique name.

        Returns:
            Paths of all files downloaded in this run. Per-podcast outcomes,
            including failures, are kept in ``last_results``.
        """
        results = await asyncio.gather(
            *(
                self.sync_podcast(name, podcast_config, self.display.bar(name))
                for name, podcast_config in podcast_configs.items()
            )
        )
        self.last_results = list(results)

        paths = [path for result in results for path in result.paths]
        failed = [result.name for result in results if not result.success]

        logger.info(
            f"Sync complete: {len(paths)} episodes downloaded "
            f"from {len(results)} podcasts"
        )
        if failed:
            logger.warning(f"Podcasts with errors: {', '.join(failed)}")

        return paths

    async def sync_podcast(
        self, name: str, podcast_config: PodcastConfig, bar: DownloadBar
    ) -> PodcastSyncResult:
        """Sync a single podcast. Never raises; failures land in the result."""
        result = PodcastSyncResult(name=name)
        finished: List[DownloadedEpisode] = []
        claimed: Set[Path] = set()

        try:
            bar.fetching()
            podcast = await self._load_podcast(name, podcast_config)

            bar.init()
            episodes = eligible_episodes(podcast, self.repository.downloaded_guids(name))
            logger.info(f"[{name}] {len(episodes)} episodes due")

            for i, episode in enumerate(episodes):
                bar.begin_download(episode, i, len(episodes))
                finished.append(
                    await self._process_episode(podcast, episode, bar, claimed)
                )

        except PodSyncError as e:
            logger.error(f"[{name}] {e}")
            result.error = str(e)
            bar.error(str(e))
        except Exception as e:
            logger.exception(f"[{name}] Unexpected error during sync")
            result.error = f"unexpected error: {e}"
            bar.error(result.error)
        finally:
            for downloaded in finished:
                await downloaded.await_handle()

        result.paths = [downloaded.path for downloaded in finished]
        bar.complete(len(result.paths))
        return result

    async def pending(
        self, podcast_configs: Mapping[str, PodcastConfig]
    ) -> Dict[str, PodcastSyncResult]:
        """Compute due episodes for every podcast without downloading.

        Returns:
            Results keyed by podcast name, with ``episodes`` in processing order.
        """
        results = await asyncio.gather(
            *(
                self._pending_podcast(name, podcast_config)
                for name, podcast_config in podcast_configs.items()
            )
        )
        self.last_results = list(results)
        return {result.name: result for result in results}

    async def _pending_podcast(
        self, name: str, podcast_config: PodcastConfig
    ) -> PodcastSyncResult:
        result = PodcastSyncResult(name=name)
        try:
            podcast = await self._load_podcast(name, podcast_config)
            result.episodes = eligible_episodes(
                podcast, self.repository.downloaded_guids(name)
            )
        except PodSyncError as e:
            logger.error(f"[{name}] {e}")
            result.error = str(e)
        except Exception as e:
            logger.exception(f"[{name}] Unexpected error while checking pending episodes")
            result.error = f"unexpected error: {e}"
        return result

    async def _load_podcast(self, name: str, podcast_config: PodcastConfig) -> Podcast:
        xml_text = await self.client.fetch_text(podcast_config.url)
        logger.debug(f"[{name}] Fetched feed from {podcast_config.url}")
        return Podcast.from_feed(name, xml_text, self.config, podcast_config)

    async def _process_episode(
        self, podcast: Podcast, episode: Episode, bar: DownloadBar, claimed: Set[Path]
    ) -> DownloadedEpisode:
        """Run one episode through download, tagging and the hook.

        Raises:
            EpisodeDownloadError: If the audio download fails.
            TaggingError: If the tags cannot be written.
        """
        path = build_episode_path(podcast.name, episode, claimed)
        claimed.add(path)
        logger.info(f"[{podcast.name}] Downloading '{episode.title}' to {path}")

        await self.client.download_file(
            episode.enclosure_url, path, progress_callback=bar.update
        )

        downloaded = DownloadedEpisode(episode=episode, path=path)
        await enrich(podcast, downloaded, self.client)
        downloaded.mark_downloaded(self.repository, podcast.name)

        hook = episode.config.download_hook if episode.config else None
        if hook:
            bar.hook_status()
            downloaded.handle = spawn_download_hook(hook, path, podcast.name, episode)

        return downloaded
