"""Exceptions raised while syncing podcasts."""


class PodSyncError(Exception):
    """Base class for podsync errors."""

    pass


class ConfigError(PodSyncError):
    """Raised when a podcast entry in the podcasts file is invalid."""

    pass


class FeedFetchError(PodSyncError):
    """Raised when a podcast's feed cannot be downloaded."""

    pass


class FeedParseError(PodSyncError):
    """Raised when a feed is not a usable rss/channel/item document."""

    pass


class EpisodeDownloadError(PodSyncError):
    """Raised when an episode's audio payload cannot be downloaded."""

    pass


class TaggingError(PodSyncError):
    """Raised when metadata tags cannot be written to a downloaded file."""

    pass
