"""Optional external program run after each downloaded episode.

The hook runs in the background while the orchestrator moves on to the
next episode. Its exit status never affects the sync result.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


async def run_download_hook(hook: str, path: Path, env: Dict[str, str]) -> Optional[int]:
    """Run the hook program with the file path as its only argument.

    Returns:
        The exit code, or None if the program could not be started.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            hook,
            str(path),
            env=env,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"Could not run download hook {hook}: {e}")
        return None

    _, stderr = await process.communicate()

    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()
        logger.warning(
            f"Download hook {hook} exited with {process.returncode} for {path}"
            + (f": {message}" if message else "")
        )
    else:
        logger.debug(f"Download hook finished for {path}")

    return process.returncode


def spawn_download_hook(
    hook: Optional[str], path: Path, podcast_name: str, episode
) -> Optional[asyncio.Task]:
    """Start the hook for a downloaded episode as a background task.

    Must be called from a running event loop.

    Args:
        hook: Program to run, or None/empty for no hook.
        path: Final path of the downloaded file.
        podcast_name: Configured podcast name.
        episode: The downloaded Episode.

    Returns:
        The task running the hook, or None when no hook is configured.
    """
    if not hook:
        return None

    env = dict(os.environ)
    env.update(
        {
            "PODSYNC_PODCAST": podcast_name,
            "PODSYNC_TITLE": episode.title,
            "PODSYNC_GUID": episode.guid,
        }
    )

    program = os.path.expanduser(hook)
    return asyncio.create_task(
        run_download_hook(program, path, env), name=f"download-hook:{episode.guid}"
    )
