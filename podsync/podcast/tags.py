"""ID3 metadata enrichment for downloaded episodes.

Tags are derived from podcast- and episode-level feed attributes and only
fill frames the file doesn't already carry, so user-set or previously
written values are never overwritten and a second run changes nothing.
"""

import asyncio
import logging
from pathlib import Path
from typing import AbstractSet, Dict, List, Optional, Set, Union

import aiohttp
from mutagen import MutagenError
from mutagen.id3 import APIC, ID3, TXXX, Frames, PictureType

from .errors import TaggingError

logger = logging.getLogger(__name__)

TagValue = Union[str, List[str]]


class Id3Frame:
    """ID3v2.4 frame identifiers used for podcast metadata."""

    TITLE = "TIT2"
    ARTIST = "TPE1"
    ALBUM = "TALB"
    GENRE = "TCON"
    TRACK = "TRCK"
    YEAR = "TDRC"
    RELEASED = "TDRL"
    COPYRIGHT = "TCOP"
    DESCRIPTION = "TDES"
    PODCAST_CATEGORY = "TCAT"
    LANGUAGE = "TLAN"
    DURATION = "TLEN"
    PUBLISHER = "TPUB"
    PODCAST_ID = "TGID"
    PICTURE = "APIC"


GENRE = "podcast"


def _track_number(value: Optional[str]) -> Optional[str]:
    """Track number from an itunes:episode value, if it's a plain integer."""
    if value and value.strip().isdigit():
        return str(int(value.strip()))
    return None


def _parse_duration(value: Optional[str]) -> Optional[int]:
    """Parse an itunes:duration into seconds.

    Handles various formats:
    - Seconds: "3600"
    - MM:SS: "60:00"
    - HH:MM:SS: "1:00:00"
    """
    if not value:
        return None

    parts = value.strip().split(":")
    if not all(part.isdigit() for part in parts):
        return None

    if len(parts) == 1:
        return int(parts[0])
    if len(parts) == 2:
        return int(parts[0]) * 60 + int(parts[1])
    if len(parts) == 3:
        return int(parts[0]) * 3600 + int(parts[1]) * 60 + int(parts[2])
    return None


def _duration_millis(value: Optional[str]) -> Optional[str]:
    seconds = _parse_duration(value)
    if seconds is None:
        return None
    return str(seconds * 1000)


def plan_tags(podcast, episode, existing_ids: AbstractSet[str]) -> Dict[str, TagValue]:
    """Derive the text frames to add to an episode's file.

    Args:
        podcast: The episode's Podcast.
        episode: The Episode.
        existing_ids: Frame IDs already present in the file.

    Returns:
        Mapping of frame ID to value for every frame that is missing from
        the file and has a usable source value. Cover art is handled
        separately because it needs a network fetch.
    """
    planned: Dict[str, TagValue] = {}

    def want(frame_id: str, value: Optional[TagValue]) -> None:
        if frame_id in existing_ids or not value:
            return
        planned[frame_id] = value

    want(Id3Frame.TITLE, episode.title)
    want(Id3Frame.ARTIST, episode.author)
    want(Id3Frame.ALBUM, podcast.title)
    want(Id3Frame.GENRE, GENRE)
    want(Id3Frame.TRACK, _track_number(episode.itunes_episode))
    want(Id3Frame.YEAR, str(episode.published.year))
    want(Id3Frame.COPYRIGHT, podcast.copyright)
    want(Id3Frame.DESCRIPTION, episode.description)
    want(Id3Frame.PODCAST_CATEGORY, podcast.categories)
    want(Id3Frame.RELEASED, episode.published.strftime("%Y-%m-%dT%H:%M:%S"))
    want(Id3Frame.LANGUAGE, podcast.language)
    want(Id3Frame.DURATION, _duration_millis(episode.itunes_duration))
    want(Id3Frame.PUBLISHER, podcast.author)
    want(Id3Frame.PODCAST_ID, episode.guid)

    return planned


def read_tags(path: Path) -> ID3:
    """Read a file's ID3 tag, or an empty tag if it has none."""
    try:
        return ID3(path)
    except MutagenError as e:
        logger.debug(f"No readable ID3 tag in {path}: {e}")
        return ID3()


def existing_frame_ids(tags: ID3) -> Set[str]:
    return {frame.FrameID for frame in tags.values()}


def has_front_cover(tags: ID3) -> bool:
    return any(pic.type == PictureType.COVER_FRONT for pic in tags.getall(Id3Frame.PICTURE))


def make_text_frame(frame_id: str, value: TagValue):
    """Build a text frame; unknown IDs become user-defined TXXX frames."""
    frame_class = Frames.get(frame_id)
    if frame_class is None or not frame_id.startswith("T") or frame_id == "TXXX":
        return TXXX(encoding=3, desc=frame_id, text=value)
    return frame_class(encoding=3, text=value)


def apply_custom_tags(tags: ID3, custom_tags: Dict[str, str]) -> None:
    """Set configured frames unconditionally, replacing existing values."""
    for frame_id, value in custom_tags.items():
        frame = make_text_frame(frame_id, value)
        tags.setall(frame.HashKey, [frame])


async def fetch_cover_art(client, url: str) -> Optional[APIC]:
    """Fetch artwork as a front-cover APIC frame.

    Best effort: a failed fetch is logged and yields None.
    """
    try:
        data, mime_type = await client.fetch_bytes(url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Could not fetch cover art from {url}: {e}")
        return None

    if not data:
        return None

    return APIC(
        encoding=3,
        mime=mime_type or "",
        type=PictureType.COVER_FRONT,
        desc="",
        data=data,
    )


async def enrich(podcast, downloaded, client) -> Dict[str, TagValue]:
    """Write missing metadata tags to a downloaded episode's file.

    Only ``.mp3`` destinations are tagged, and only when tagging is enabled
    for the podcast. Configured custom frames are applied first.

    Args:
        podcast: The episode's Podcast.
        downloaded: The DownloadedEpisode whose file gets tagged.
        client: HttpClient used for the artwork fetch.

    Returns:
        The frames that were added (``APIC`` maps to the artwork MIME type).

    Raises:
        TaggingError: If the tag cannot be written.
    """
    episode = downloaded.episode
    path = Path(downloaded.path)
    config = episode.config

    if config is not None and not config.tag_files:
        return {}
    if path.suffix.lower() != ".mp3":
        logger.debug(f"Not tagging non-mp3 file: {path}")
        return {}

    tags = await asyncio.to_thread(read_tags, path)

    if config is not None and config.custom_tags:
        apply_custom_tags(tags, config.custom_tags)

    applied = plan_tags(podcast, episode, existing_frame_ids(tags))
    for frame_id, value in applied.items():
        tags.add(make_text_frame(frame_id, value))

    if not has_front_cover(tags):
        image_url = episode.image or podcast.image
        if image_url:
            picture = await fetch_cover_art(client, image_url)
            if picture is not None:
                tags.add(picture)
                applied[Id3Frame.PICTURE] = picture.mime

    try:
        await asyncio.to_thread(tags.save, path, v2_version=4)
    except (MutagenError, OSError) as e:
        raise TaggingError(f"failed to write tags to {path}: {e}") from e

    logger.debug(f"Tagged {path}: {', '.join(applied) or 'nothing new'}")
    return applied
