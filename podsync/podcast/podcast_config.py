"""Per-podcast configuration loaded from the podcasts file.

The podcasts file is TOML with one table per podcast, keyed by the display
name used for the progress line and the download directory:

    [my-show]
    url = "https://example.com/feed.xml"
    mode = "standard"
    limit = 3

    [old-show]
    url = "https://example.com/old.xml"
    backlog_start = 2021-01-01

    [old-show.id3]
    TCOM = "Someone"
"""

import logging
import tomllib
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import ConfigError
from .http_client import sanitize_filename

logger = logging.getLogger(__name__)

MODES = ("standard", "backlog")


def _to_datetime(value: Union[str, date, datetime]) -> datetime:
    """Normalize a TOML date, datetime or ISO string to an aware UTC datetime."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ConfigError(f"Invalid backlog_start: '{value}' is not an ISO date")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    raise ConfigError(f"Invalid backlog_start: {value!r}")


@dataclass
class PodcastConfig:
    """Configuration for a single podcast entry."""

    name: str
    url: str

    # Download mode
    mode: Optional[str] = None
    limit: Optional[int] = None
    backlog_start: Optional[datetime] = None

    # Per-podcast overrides of the global settings
    download_path: Optional[Path] = None
    name_pattern: Optional[str] = None
    download_hook: Optional[str] = None
    tag_files: bool = True
    id3: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """
        Validate the entry.

        Raises:
            ConfigError: If the URL is missing, the mode is unknown, the limit
                is negative, or backlog mode has no starting point.
        """
        if not self.url or not self.url.strip():
            raise ConfigError(f"Podcast '{self.name}' has no url")
        self.url = self.url.strip()

        if self.mode is not None and self.mode not in MODES:
            raise ConfigError(
                f"Podcast '{self.name}' has unknown mode '{self.mode}', "
                f"expected one of: {', '.join(MODES)}"
            )

        if self.limit is not None and (
            not isinstance(self.limit, int) or self.limit < 0
        ):
            raise ConfigError(
                f"Podcast '{self.name}' limit must be a non-negative integer"
            )

        if self.mode == "backlog" and self.backlog_start is None:
            raise ConfigError(
                f"Podcast '{self.name}' uses backlog mode but has no backlog_start"
            )

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "PodcastConfig":
        """Build a PodcastConfig from one table of the podcasts file."""
        if not isinstance(data, dict):
            raise ConfigError(f"Podcast '{name}' must be a table")

        backlog_start = data.get("backlog_start")
        download_path = data.get("download_path")
        id3 = data.get("id3", {})
        if not isinstance(id3, dict):
            raise ConfigError(f"Podcast '{name}' id3 must be a table")

        return cls(
            name=name,
            url=data.get("url", ""),
            mode=data.get("mode"),
            limit=data.get("limit"),
            backlog_start=_to_datetime(backlog_start) if backlog_start else None,
            download_path=Path(download_path).expanduser() if download_path else None,
            name_pattern=data.get("name_pattern"),
            download_hook=data.get("download_hook"),
            tag_files=bool(data.get("tag_files", True)),
            id3={str(k): str(v) for k, v in id3.items()},
        )


def parse_podcast_configs(content: str) -> Dict[str, PodcastConfig]:
    """Parse podcasts file content into configs keyed by name, in file order."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid podcasts file: {e}") from e

    return {name: PodcastConfig.from_dict(name, entry) for name, entry in data.items()}


def load_podcast_configs(path: Union[str, Path]) -> Dict[str, PodcastConfig]:
    """
    Load podcast entries from a TOML podcasts file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is not valid TOML or an entry is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Podcasts file not found: {path}")

    logger.info(f"Loading podcasts from: {path}")
    configs = parse_podcast_configs(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded {len(configs)} podcasts")
    return configs


@dataclass(frozen=True)
class EpisodeConfig:
    """Settings resolved for the episodes of one podcast.

    Values from the podcast entry win over the global configuration.
    """

    download_dir: Path
    name_pattern: str
    download_hook: Optional[str] = None
    tag_files: bool = True
    custom_tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def resolve(cls, config, podcast_config: PodcastConfig) -> "EpisodeConfig":
        download_dir = podcast_config.download_path or (
            Path(config.DOWNLOAD_DIRECTORY) / sanitize_filename(podcast_config.name)
        )
        return cls(
            download_dir=download_dir,
            name_pattern=podcast_config.name_pattern or config.NAME_PATTERN,
            download_hook=podcast_config.download_hook or config.DOWNLOAD_HOOK,
            tag_files=podcast_config.tag_files,
            custom_tags=dict(podcast_config.id3),
        )
