"""Typed views over decoded feed attributes.

A Podcast is built once per sync run from a freshly fetched feed. Its
episodes are sorted by publish time and numbered with a contiguous ``index``
that the download policy uses as its ordering key.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import List, Optional

from dateutil import parser as date_parser

from .errors import FeedParseError
from .feed_decoder import RawAttributes, decode, value_to_text
from .podcast_config import EpisodeConfig, PodcastConfig
from .policy import DownloadMode

logger = logging.getLogger(__name__)


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed publish date into an aware UTC datetime.

    RFC 2822 dates are the norm for RSS; ISO-8601 is accepted as a
    fallback. Dates without a timezone are taken as UTC.

    Returns:
        The parsed datetime, or None if the value is missing or unparsable.
    """
    if not value:
        return None

    try:
        published = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            published = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None

    if published.tzinfo is None:
        published = published.replace(tzinfo=UTC)
    return published.astimezone(UTC)


@dataclass
class Episode:
    """A single downloadable episode.

    Everything but ``index`` is fixed at construction; ``index`` is the
    episode's position in ascending publish order across the whole feed.
    """

    # Required fields
    guid: str
    title: str
    published: datetime
    enclosure_url: str

    # Optional metadata
    enclosure_type: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None

    # iTunes specific
    itunes_episode: Optional[str] = None
    itunes_duration: Optional[str] = None

    raw: RawAttributes = field(default_factory=RawAttributes, repr=False)
    config: Optional[EpisodeConfig] = field(default=None, repr=False)
    index: int = -1

    @classmethod
    def from_raw(
        cls, raw: RawAttributes, config: Optional[EpisodeConfig] = None
    ) -> Optional["Episode"]:
        """Build an episode from one decoded item.

        Returns:
            The episode, or None if the title, guid, enclosure URL or publish
            date is missing or unparsable.
        """
        title = raw.get_text("title")
        guid = raw.get_text("guid")
        enclosure_url = raw.get_url("enclosure")
        published = parse_pub_date(raw.get_text("pubDate"))

        if not (title and guid and enclosure_url and published):
            logger.debug(
                f"Dropping item missing required fields "
                f"(title={title!r}, guid={guid!r}, enclosure={enclosure_url!r}, "
                f"published={published})"
            )
            return None

        enclosure = raw.get("enclosure")
        enclosure_type = None
        if isinstance(enclosure, Mapping):
            enclosure_type = value_to_text(enclosure.get("@type"))

        return cls(
            guid=guid,
            title=title,
            published=published,
            enclosure_url=enclosure_url,
            enclosure_type=enclosure_type,
            image=raw.get_url("itunes:image"),
            description=raw.get_text("description") or raw.get_text("itunes:summary"),
            author=raw.get_text("itunes:author") or raw.get_text("author"),
            itunes_episode=raw.get_text("itunes:episode"),
            itunes_duration=raw.get_text("itunes:duration"),
            raw=raw,
            config=config,
        )

    @property
    def timestamp(self) -> int:
        """Publish time as Unix seconds."""
        return int(self.published.timestamp())


def assign_indices(episodes: List[Episode]) -> List[Episode]:
    """Sort episodes by publish time and number them 0..n-1.

    The sort is stable, so episodes published at the same instant keep
    their feed order.
    """
    ordered = sorted(episodes, key=lambda episode: episode.published)
    for index, episode in enumerate(ordered):
        episode.index = index
    return ordered


@dataclass
class Podcast:
    """A configured podcast and the episodes of its current feed."""

    name: str
    raw: RawAttributes
    mode: DownloadMode
    episodes: List[Episode] = field(default_factory=list)

    @classmethod
    def from_feed(
        cls,
        name: str,
        xml_text: str,
        config,
        podcast_config: PodcastConfig,
    ) -> "Podcast":
        """Decode a feed and build the podcast with its indexed episodes.

        Args:
            name: Configured display name.
            xml_text: Feed document.
            config: Global configuration.
            podcast_config: This podcast's configuration entry.

        Raises:
            FeedParseError: If the feed has no rss/channel/item structure.
        """
        decoded = decode(xml_text)
        if decoded is None:
            raise FeedParseError("failed to parse xml")

        channel, raw_episodes = decoded
        episode_config = EpisodeConfig.resolve(config, podcast_config)

        episodes = []
        for raw in raw_episodes:
            episode = Episode.from_raw(raw, episode_config)
            if episode is not None:
                episodes.append(episode)

        dropped = len(raw_episodes) - len(episodes)
        if dropped:
            logger.debug(f"[{name}] Dropped {dropped} malformed items")

        podcast = cls(
            name=name,
            raw=channel,
            mode=DownloadMode.from_config(config, podcast_config),
        )
        podcast.episodes = assign_indices(episodes)

        logger.info(f"Parsed podcast '{podcast.title}' with {len(podcast.episodes)} episodes")
        return podcast

    @property
    def title(self) -> str:
        return self.raw.get_text("title") or self.name

    @property
    def author(self) -> Optional[str]:
        return self.raw.get_text("itunes:author")

    @property
    def categories(self) -> List[str]:
        return self.raw.get_text_list("itunes:category")

    @property
    def copyright(self) -> Optional[str]:
        return self.raw.get_text("copyright")

    @property
    def language(self) -> Optional[str]:
        return self.raw.get_text("language")

    @property
    def description(self) -> Optional[str]:
        return self.raw.get_text("description")

    @property
    def image(self) -> Optional[str]:
        return self.raw.get_url("itunes:image") or self.raw.get_url("image")


@dataclass
class DownloadedEpisode:
    """An episode whose audio payload is on disk.

    ``handle`` is background work (the post-download hook) still running
    after the orchestrator moved on to the next episode.
    """

    episode: Episode
    path: Path
    handle: Optional[asyncio.Task] = None
    downloaded: bool = False

    def mark_downloaded(self, repository, podcast_name: str) -> None:
        """Persist the downloaded marker for this episode."""
        repository.mark_downloaded(podcast_name, self.episode.guid, str(self.path))
        self.downloaded = True

    async def await_handle(self) -> None:
        """Wait for background work to finish. Failures are logged only."""
        if self.handle is None:
            return

        handle, self.handle = self.handle, None
        try:
            await handle
        except Exception as e:
            logger.warning(f"Background work for '{self.episode.title}' failed: {e}")
