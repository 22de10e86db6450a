"""Episode eligibility and ordering.

Two mutually exclusive modes decide which episodes of a feed are due:

- Standard keeps a podcast current. Only the ``limit`` most recent
  episodes of the feed are candidates, and they are fetched newest first.
- Backlog catches up on history. Every episode published at or after the
  configured cutoff is a candidate, fetched oldest first.

In both modes episodes already marked downloaded are skipped.

Standard mode is a fixed window over the newest ``limit`` feed positions.
Downloaded episodes inside the window are not replaced by older ones, so a
run can pick fewer than ``limit`` episodes even when more are pending.
Steady-state runs then fetch only genuinely new releases.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, AbstractSet, List, Sequence

if TYPE_CHECKING:
    from .models import Episode, Podcast
    from .podcast_config import PodcastConfig


class DownloadMode(ABC):
    """Selection and ordering policy for a podcast's episodes."""

    @abstractmethod
    def should_download(
        self, episode: "Episode", qty: int, downloaded_guids: AbstractSet[str]
    ) -> bool:
        """Whether the episode is due.

        Args:
            episode: Episode with its index assigned.
            qty: Total number of episodes in the feed.
            downloaded_guids: GUIDs already marked downloaded.
        """
        pass

    @abstractmethod
    def order(self, episodes: Sequence["Episode"]) -> List["Episode"]:
        """Order eligible episodes for processing."""
        pass

    @classmethod
    def from_config(cls, config, podcast_config: "PodcastConfig") -> "DownloadMode":
        """Resolve the mode for a podcast.

        An explicit ``mode`` wins; otherwise a ``backlog_start`` implies
        backlog mode. Standard mode falls back to the global episode limit.
        """
        mode = podcast_config.mode or (
            "backlog" if podcast_config.backlog_start else "standard"
        )
        if mode == "backlog":
            return Backlog(cutoff=podcast_config.backlog_start)

        limit = podcast_config.limit
        if limit is None:
            limit = config.EPISODE_LIMIT
        return Standard(limit=limit)


@dataclass(frozen=True)
class Standard(DownloadMode):
    limit: int

    def should_download(self, episode, qty, downloaded_guids) -> bool:
        if episode.guid in downloaded_guids:
            return False
        return self.limit > 0 and episode.index >= qty - self.limit

    def order(self, episodes):
        return sorted(episodes, key=lambda ep: ep.index, reverse=True)


@dataclass(frozen=True)
class Backlog(DownloadMode):
    cutoff: datetime

    def should_download(self, episode, qty, downloaded_guids) -> bool:
        if episode.guid in downloaded_guids:
            return False
        return episode.published >= self.cutoff

    def order(self, episodes):
        return sorted(episodes, key=lambda ep: ep.index)


def eligible_episodes(
    podcast: "Podcast", downloaded_guids: AbstractSet[str]
) -> List["Episode"]:
    """Return the podcast's due episodes in processing order."""
    qty = len(podcast.episodes)
    pending = [
        episode
        for episode in podcast.episodes
        if podcast.mode.should_download(episode, qty, downloaded_guids)
    ]
    return podcast.mode.order(pending)
