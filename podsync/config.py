import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

APP_NAME = "podsync"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64; rv:124.0) Gecko/20100101 Firefox/124.0"
)


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ValueError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    return value


def default_config_dir() -> Path:
    """Return the configuration directory, honoring XDG_CONFIG_HOME."""
    xdg = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APP_NAME


class Config:
    def __init__(self, env_file=None):
        """
        Load global settings from the environment.

        Reads a .env file first (the given path, or the default discovery when
        omitted), then resolves every PODSYNC_* variable with its default. The
        instance is treated as a read-only snapshot once constructed: the sync
        orchestrator shares it between all concurrently running podcast tasks.

        Parameters:
            env_file (str | None): Optional path to a .env file.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Where podcasts.toml and the state database live
        self.CONFIG_DIR = Path(
            os.getenv("PODSYNC_CONFIG_DIR", str(default_config_dir()))
        ).expanduser()
        self.PODCASTS_FILE = Path(
            os.getenv("PODSYNC_PODCASTS_FILE", str(self.CONFIG_DIR / "podcasts.toml"))
        ).expanduser()

        # Audio files end up in <download dir>/<podcast name>/
        self.DOWNLOAD_DIRECTORY = Path(
            os.getenv("PODSYNC_DOWNLOAD_DIRECTORY", str(Path.home() / APP_NAME))
        ).expanduser()

        self.DATABASE_URL = os.getenv(
            "PODSYNC_DATABASE_URL", f"sqlite:///{self.CONFIG_DIR / 'state.db'}"
        )

        # Network settings. A timeout of 0 leaves timing to the transport.
        self.USER_AGENT = os.getenv("PODSYNC_USER_AGENT", DEFAULT_USER_AGENT)
        self.DOWNLOAD_TIMEOUT = _get_int_env("PODSYNC_DOWNLOAD_TIMEOUT", 0, min_val=0)
        self.CHUNK_SIZE = _get_int_env("PODSYNC_CHUNK_SIZE", 8192, min_val=1)

        # Defaults for podcasts that don't override them
        self.EPISODE_LIMIT = _get_int_env("PODSYNC_EPISODE_LIMIT", 5, min_val=0)
        self.NAME_PATTERN = os.getenv("PODSYNC_NAME_PATTERN", "{title}")
        self.DOWNLOAD_HOOK = os.getenv("PODSYNC_DOWNLOAD_HOOK") or None

        self.LOG_LEVEL = os.getenv("PODSYNC_LOG_LEVEL", "INFO").upper()

    def ensure_podcasts_file(self) -> Path:
        """Create the podcasts file (and its directory) if missing."""
        self.PODCASTS_FILE.parent.mkdir(parents=True, exist_ok=True)
        if not self.PODCASTS_FILE.exists():
            self.PODCASTS_FILE.touch()
        return self.PODCASTS_FILE

    def ensure_download_directory(self) -> Path:
        '''Create the download directory if missing.'''
        self.DOWNLOAD_DIRECTORY.mkdir(parents=True, exist_ok=True)
        return self.DOWNLOAD_DIRECTORY
