"""
Pytest configuration and fixtures for podsync tests.

This module runs before any test imports, setting up the test environment.
PODSYNC_* variables from the developer's shell are removed so tests behave
the same regardless of external configuration.
"""

import os
from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

for _name in [name for name in os.environ if name.startswith("PODSYNC_")]:
    del os.environ[_name]


SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Test Podcast</title>
    <description>A podcast for testing</description>
    <language>en</language>
    <copyright>2024 Test Media</copyright>
    <category>Technology</category>
    <itunes:author>Test Author</itunes:author>
    <itunes:category text="News"/>
    <itunes:category text="Science"/>
    <itunes:image href="https://example.com/cover.jpg"/>
    <item>
      <title>Episode 1</title>
      <guid>ep-1</guid>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://example.com/ep1.mp3" type="audio/mpeg" length="1000"/>
      <itunes:episode>1</itunes:episode>
      <itunes:duration>60</itunes:duration>
    </item>
    <item>
      <title>Episode 3</title>
      <guid>ep-3</guid>
      <pubDate>Wed, 03 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://example.com/ep3.mp3" type="audio/mpeg" length="1000"/>
      <description>Third episode</description>
      <itunes:episode>3</itunes:episode>
    </item>
    <item>
      <title>Episode 2</title>
      <guid>ep-2</guid>
      <pubDate>Tue, 02 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://example.com/ep2.mp3" type="audio/mpeg" length="1000"/>
      <itunes:episode>2</itunes:episode>
      <itunes:image href="https://example.com/ep2.jpg"/>
    </item>
  </channel>
</rss>
"""

T1 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
T2 = datetime(2024, 1, 2, 12, 0, tzinfo=UTC)
T3 = datetime(2024, 1, 3, 12, 0, tzinfo=UTC)


@pytest.fixture
def sample_feed():
    """Feed with three episodes listed out of publish order."""
    return SAMPLE_FEED


@pytest.fixture
def global_config(tmp_path):
    """Stand-in for Config with every attribute the sync engine reads."""
    return SimpleNamespace(
        CONFIG_DIR=tmp_path / "config",
        PODCASTS_FILE=tmp_path / "config" / "podcasts.toml",
        DOWNLOAD_DIRECTORY=tmp_path / "downloads",
        DATABASE_URL=f"sqlite:///{tmp_path / 'state.db'}",
        USER_AGENT="podsync-tests",
        DOWNLOAD_TIMEOUT=0,
        CHUNK_SIZE=8192,
        EPISODE_LIMIT=5,
        NAME_PATTERN="{title}",
        DOWNLOAD_HOOK=None,
        LOG_LEVEL="INFO",
    )


@pytest.fixture
def downloads_dir(global_config) -> Path:
    return global_config.DOWNLOAD_DIRECTORY
