"""Shared async network client for feeds, audio payloads and artwork.

One HttpClient (one aiohttp session) is created per sync run and shared
read-only by every podcast task.
"""

import asyncio
import hashlib
import logging
import os
import re
from pathlib import Path
from typing import AbstractSet, Callable, Optional, Tuple
from urllib.parse import unquote, urlparse

import aiohttp

from .errors import EpisodeDownloadError, FeedFetchError

logger = logging.getLogger(__name__)

MIME_TO_EXT = {
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/ogg": ".ogg",
    "audio/opus": ".opus",
    "audio/wav": ".wav",
}

MAX_FILENAME_LENGTH = 200


class HttpClient:
    """Thin wrapper around an aiohttp session.

    Example:
        async with HttpClient(user_agent="Mozilla/5.0 ...") as client:
            xml = await client.fetch_text("https://example.com/feed.xml")
    """

    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (X11; Linux x86_64; rv:124.0) Gecko/20100101 Firefox/124.0"
    )
    DEFAULT_CHUNK_SIZE = 8192

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: int = 0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize the client.

        Args:
            user_agent: User agent sent with every request.
            timeout: Total timeout per request in seconds, 0 for none.
            chunk_size: Chunk size for streaming downloads.
        """
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config) -> "HttpClient":
        return cls(
            user_agent=config.USER_AGENT,
            timeout=config.DOWNLOAD_TIMEOUT,
            chunk_size=config.CHUNK_SIZE,
        )

    async def __aenter__(self) -> "HttpClient":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def open(self) -> None:
        """Create the session. Must be called from a running event loop."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout or None)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.user_agent},
            )

    async def close(self) -> None:
        """Close the session and release its connections."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HttpClient is not open")
        return self._session

    async def fetch_text(self, url: str) -> str:
        """Fetch a document as UTF-8 text.

        Raises:
            FeedFetchError: On transport errors or a non-success status.
        """
        try:
            async with self.session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                return await response.text(encoding="utf-8", errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FeedFetchError(f"failed to download {url}: {e}") from e

    async def download_file(
        self,
        url: str,
        output_path: Path,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
    ) -> int:
        """Stream a file to disk with progress tracking.

        Args:
            url: URL to download.
            output_path: Destination path; parent directories are created.
            progress_callback: Called with (downloaded, total) after each chunk.
                ``total`` is None when the server sends no content length.

        Returns:
            Number of bytes written.

        Raises:
            EpisodeDownloadError: If the download fails. Any partial file is removed.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        downloaded = 0

        try:
            async with self.session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                total_size = response.content_length

                with open(output_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            downloaded += len(chunk)

                            if progress_callback:
                                progress_callback(downloaded, total_size)

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            # Clean up partial file
            if output_path.exists():
                try:
                    output_path.unlink()
                except OSError:
                    pass
            raise EpisodeDownloadError(f"failed to download {url}: {e}") from e

        logger.debug(f"Downloaded {downloaded} bytes to {output_path}")
        return downloaded

    async def fetch_bytes(self, url: str) -> Tuple[bytes, str]:
        """Fetch a binary resource.

        Returns:
            Tuple of (data, mime_type).

        Raises:
            aiohttp.ClientError: On transport errors or a non-success status.
        """
        async with self.session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            data = await response.read()
            return data, response.content_type


def sanitize_filename(name: str) -> str:
    """Sanitize a string for use as a file or directory name.

    Args:
        name: Original name

    Returns:
        Sanitized name safe for filesystem
    """
    # Remove or replace invalid characters
    safe = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", name)
    # Replace multiple spaces/underscores with single
    safe = re.sub(r"[\s_]+", "_", safe)
    # Remove leading/trailing whitespace, underscores and dots
    safe = safe.strip(" ._")
    return safe or "episode"


def episode_extension(episode) -> str:
    """File extension for an episode, from its enclosure URL or MIME type."""
    url_path = urlparse(episode.enclosure_url).path
    url_filename = unquote(os.path.basename(url_path))
    _, ext = os.path.splitext(url_filename)

    if re.fullmatch(r"\.[A-Za-z0-9]{1,5}", ext):
        return ext.lower()

    return MIME_TO_EXT.get(episode.enclosure_type or "", ".mp3")


def build_episode_path(
    podcast_name: str, episode, taken: AbstractSet[Path] = frozenset()
) -> Path:
    """Destination path for an episode's audio file.

    The file name is the episode's configured name pattern filled with
    ``{title}``, ``{podcast}``, ``{guid}``, ``{pubdate}``, ``{index}`` and
    ``{episode}``. An unusable pattern falls back to the title.

    When the name is already used (a file on disk, or a path in ``taken``)
    a suffix derived from the GUID is added, so two episodes never share
    a file.
    """
    config = episode.config
    values = {
        "title": episode.title,
        "podcast": podcast_name,
        "guid": episode.guid,
        "pubdate": episode.published.strftime("%Y-%m-%d"),
        "index": episode.index,
        "episode": episode.itunes_episode or "",
    }

    try:
        stem = config.name_pattern.format(**values)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning(f"Invalid name pattern '{config.name_pattern}': {e}")
        stem = episode.title

    ext = episode_extension(episode)
    filename = sanitize_filename(stem) + ext

    # Limit filename length
    if len(filename) > MAX_FILENAME_LENGTH:
        filename = filename[: MAX_FILENAME_LENGTH - len(ext)] + ext

    path = Path(config.download_dir) / filename
    return _unused_path(path, episode.guid, taken)


def _unused_path(path: Path, guid: str, taken: AbstractSet[Path]) -> Path:
    if path not in taken and not path.exists():
        return path

    digest = hashlib.sha1(guid.encode("utf-8")).hexdigest()[:8]
    stem = path.stem[: MAX_FILENAME_LENGTH - len(path.suffix) - 14]
    candidate = path.with_name(f"{stem}_{digest}{path.suffix}")
    counter = 1
    while candidate in taken or candidate.exists():
        candidate = path.with_name(f"{stem}_{digest}_{counter}{path.suffix}")
        counter += 1

    logger.debug(f"{path.name} is taken, using {candidate.name}")
    return candidate
