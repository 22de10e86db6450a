"""Sync workflow for configured podcasts.

Runs one concurrent task per podcast through the pipeline:
fetch feed → select due episodes → download → tag → hook.
"""

from podsync.workflow.display import DownloadBar, ProgressDisplay
from podsync.workflow.orchestrator import PodcastSyncResult, SyncOrchestrator

__all__ = [
    "DownloadBar",
    "ProgressDisplay",
    "PodcastSyncResult",
    "SyncOrchestrator",
]
