"""Podcast feed module.

Provides functionality for:
- Namespace-preserving feed decoding
- Episode/podcast models
- Download policy (standard and backlog modes)
- Episode downloading and ID3 tagging
"""

from .errors import (
    ConfigError,
    EpisodeDownloadError,
    FeedFetchError,
    FeedParseError,
    PodSyncError,
    TaggingError,
)
from .feed_decoder import RawAttributes, decode
from .http_client import HttpClient
from .models import DownloadedEpisode, Episode, Podcast
from .podcast_config import EpisodeConfig, PodcastConfig, load_podcast_configs
from .policy import Backlog, DownloadMode, Standard, eligible_episodes

__all__ = [
    "PodSyncError",
    "FeedFetchError",
    "FeedParseError",
    "EpisodeDownloadError",
    "TaggingError",
    "ConfigError",
    "RawAttributes",
    "decode",
    "HttpClient",
    "Episode",
    "Podcast",
    "DownloadedEpisode",
    "PodcastConfig",
    "EpisodeConfig",
    "load_podcast_configs",
    "DownloadMode",
    "Standard",
    "Backlog",
    "eligible_episodes",
]
