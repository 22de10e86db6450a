"""Multi-line terminal progress for concurrent podcast syncs.

One ProgressDisplay is shared by all podcast tasks; each task owns the
single DownloadBar (one tqdm line) created for its podcast.
"""

import logging
import unicodedata
from typing import IO, Iterable, List, Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)

ELLIPSIS = "…"
MAX_TITLE_WIDTH = 40


def char_width(char: str) -> int:
    """Terminal columns taken by a single character."""
    if unicodedata.combining(char):
        return 0
    if unicodedata.east_asian_width(char) in ("W", "F"):
        return 2
    return 1


def display_width(text: str) -> int:
    return sum(char_width(char) for char in text)


def truncate_to_width(text: str, width: int) -> str:
    """Cut text to at most ``width`` columns, marking the cut with an ellipsis."""
    if display_width(text) <= width:
        return text
    if width <= 0:
        return ""

    result = []
    used = 0
    for char in text:
        w = char_width(char)
        if used + w > width - 1:
            break
        result.append(char)
        used += w
    return "".join(result) + ELLIPSIS


def pad_to_width(text: str, width: int) -> str:
    """Truncate or right-pad text to exactly ``width`` columns."""
    text = truncate_to_width(text, width)
    return text + " " * max(width - display_width(text), 0)


class DownloadBar:
    """Progress line for one podcast.

    ``status`` and ``errors`` mirror what is shown so callers (and tests)
    can inspect the line without a terminal.
    """

    def __init__(self, name: str, position: int, label_width: int, enabled: bool = True, file: Optional[IO] = None):
        self.name = name
        self.label = pad_to_width(name, label_width) if label_width else name
        self.status = "waiting"
        self.errors: List[str] = []
        self.completed = False
        self._bar = tqdm(
            total=None,
            position=position,
            desc=self.label,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            leave=True,
            dynamic_ncols=True,
            disable=not enabled,
            file=file,
        )

    def _set_status(self, status: str) -> None:
        self.status = status
        self._bar.set_postfix_str(status)

    def fetching(self) -> None:
        self._set_status("fetching feed")

    def init(self) -> None:
        self._set_status("checking episodes")

    def begin_download(self, episode, index: int, total: int) -> None:
        """Start the byte counter for the ``index``-th (0-based) of ``total`` episodes."""
        self._bar.reset(total=None)
        title = truncate_to_width(episode.title, MAX_TITLE_WIDTH)
        self._set_status(f"[{index + 1}/{total}] {title}")

    def update(self, downloaded: int, total: Optional[int]) -> None:
        if total and self._bar.total != total:
            self._bar.total = total
        self._bar.n = downloaded
        self._bar.refresh()

    def hook_status(self) -> None:
        self._set_status("finishing")

    def complete(self, count: int = 0) -> None:
        self.completed = True
        if self.errors:
            return
        self._set_status(f"done ({count} new)" if count else "up to date")

    def error(self, message: str) -> None:
        self.errors.append(str(message))
        self._set_status(f"error: {message}")

    def close(self) -> None:
        self._bar.close()


class ProgressDisplay:
    """Shared sink handing out one progress line per podcast.

    Args:
        names: Every podcast name that will get a line; labels are aligned to
            the longest one.
        enabled: Render to the terminal. Disable for tests or non-TTY output.
        file: Stream to render to (tqdm default: stderr).
    """

    def __init__(self, names: Iterable[str] = (), enabled: bool = True, file: Optional[IO] = None):
        self.enabled = enabled
        self.file = file
        self.label_width = max((display_width(name) for name in names), default=0)
        self.bars: List[DownloadBar] = []

    def bar(self, name: str) -> DownloadBar:
        bar = DownloadBar(
            name,
            position=len(self.bars),
            label_width=self.label_width,
            enabled=self.enabled,
            file=self.file,
        )
        self.bars.append(bar)
        return bar

    def close(self) -> None:
        for bar in self.bars:
            bar.close()
