"""Tests for the sync orchestrator."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from podsync.db.repository import SQLAlchemyDownloadStateRepository
from podsync.podcast.errors import EpisodeDownloadError, FeedFetchError, TaggingError
from podsync.podcast.podcast_config import PodcastConfig
from podsync.workflow.orchestrator import PodcastSyncResult, SyncOrchestrator

FEED_A = "https://example.com/a.xml"
FEED_B = "https://example.com/b.xml"

SAME_TITLE_FEED = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Same Titles</title>
    <item>
      <title>Bonus</title>
      <guid>a</guid>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://example.com/a.mp3" type="audio/mpeg"/>
    </item>
    <item>
      <title>Bonus</title>
      <guid>b</guid>
      <pubDate>Tue, 02 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://example.com/b.mp3" type="audio/mpeg"/>
    </item>
  </channel>
</rss>
"""


class FakeClient:
    """In-memory stand-in for HttpClient."""

    def __init__(self, feeds, failing_downloads=()):
        self.feeds = feeds
        self.failing_downloads = set(failing_downloads)
        self.downloaded = []

    async def fetch_text(self, url):
        feed = self.feeds[url]
        if isinstance(feed, Exception):
            raise feed
        return feed

    async def download_file(self, url, output_path, progress_callback=None):
        if url in self.failing_downloads:
            raise EpisodeDownloadError(f"failed to download {url}: 500")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"\x00" * 64)
        self.downloaded.append(url)
        if progress_callback:
            progress_callback(64, 64)
        return 64

    async def fetch_bytes(self, url):
        return b"\xff\xd8jpeg", "image/jpeg"


@pytest.fixture
def repository(tmp_path):
    repo = SQLAlchemyDownloadStateRepository(f"sqlite:///{tmp_path / 'state.db'}")
    yield repo
    repo.close()


@pytest.fixture
def bars():
    return {}


@pytest.fixture
def display(bars):
    """Display whose bars are Mocks, recorded by podcast name."""
    display = Mock()
    display.bar.side_effect = lambda name: bars.setdefault(name, Mock())
    return display


def _configs(**limits):
    urls = {"show-a": FEED_A, "show-b": FEED_B}
    return {
        name: PodcastConfig(name=name, url=urls[name], limit=limit)
        for name, limit in limits.items()
    }


def _names(paths):
    return [path.name for path in paths]


class TestSyncAll:
    """Tests for SyncOrchestrator.sync_all()."""

    def test_downloads_due_episodes_in_order(
        self, sample_feed, global_config, repository, display, bars
    ):
        """Test standard mode downloads the newest episodes, newest first."""
        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository, display)

        paths = asyncio.run(orchestrator.sync_all(_configs(**{"show-a": 2})))

        assert _names(paths) == ["Episode_3.mp3", "Episode_2.mp3"]
        assert paths[0].parent == global_config.DOWNLOAD_DIRECTORY / "show-a"
        assert all(path.exists() for path in paths)
        assert repository.downloaded_guids("show-a") == {"ep-3", "ep-2"}
        bars["show-a"].complete.assert_called_once_with(2)

    def test_files_are_tagged(self, sample_feed, global_config, repository, display):
        """Test downloaded mp3 files get ID3 tags."""
        from mutagen.id3 import ID3

        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository, display)

        paths = asyncio.run(orchestrator.sync_all(_configs(**{"show-a": 1})))

        tags = ID3(paths[0])
        assert tags["TIT2"].text == ["Episode 3"]
        assert tags["TALB"].text == ["Test Podcast"]

    def test_second_run_downloads_nothing(
        self, sample_feed, global_config, repository, display, bars
    ):
        """Test downloaded episodes are not fetched again and the bar still completes."""
        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository, display)
        configs = _configs(**{"show-a": 2})

        asyncio.run(orchestrator.sync_all(configs))
        bars.clear()
        paths = asyncio.run(orchestrator.sync_all(configs))

        assert paths == []
        assert len(client.downloaded) == 2
        bars["show-a"].init.assert_called_once()
        bars["show-a"].complete.assert_called_once_with(0)
        bars["show-a"].begin_download.assert_not_called()

    def test_same_titles_get_distinct_files(self, global_config, repository, display):
        """Test two episodes with one title are written to separate files."""
        client = FakeClient({FEED_A: SAME_TITLE_FEED})
        orchestrator = SyncOrchestrator(global_config, client, repository, display)

        paths = asyncio.run(orchestrator.sync_all(_configs(**{"show-a": 2})))

        assert len(set(paths)) == 2
        assert paths[0].name == "Bonus.mp3"
        assert paths[1].name.startswith("Bonus_")
        assert all(path.exists() for path in paths)
        assert repository.downloaded_guids("show-a") == {"a", "b"}

    def test_podcasts_are_isolated(self, sample_feed, global_config, repository, display):
        """Test a broken feed does not affect a sibling podcast."""
        client = FakeClient({FEED_A: "<rss><nothing/></rss>", FEED_B: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository, display)

        paths = asyncio.run(orchestrator.sync_all(_configs(**{"show-a": 2, "show-b": 2})))

        assert _names(paths) == ["Episode_3.mp3", "Episode_2.mp3"]
        results = {result.name: result for result in orchestrator.last_results}
        assert results["show-a"].error == "failed to parse xml"
        assert results["show-a"].paths == []
        assert results["show-b"].success
        assert len(results["show-b"].paths) == 2

    def test_last_results_in_config_order(self, sample_feed, global_config, repository):
        """Test per-podcast results are kept in configuration order."""
        client = FakeClient({FEED_A: sample_feed, FEED_B: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository)

        asyncio.run(orchestrator.sync_all(_configs(**{"show-b": 1, "show-a": 1})))

        assert [result.name for result in orchestrator.last_results] == ["show-b", "show-a"]
        assert all(isinstance(result, PodcastSyncResult) for result in orchestrator.last_results)


class TestSyncPodcast:
    """Tests for SyncOrchestrator.sync_podcast()."""

    def _sync(self, orchestrator, name, podcast_config, bar=None):
        return asyncio.run(orchestrator.sync_podcast(name, podcast_config, bar or Mock()))

    def test_malformed_feed(self, global_config, repository):
        """Test a feed without a channel yields no paths and one reported error."""
        client = FakeClient({FEED_A: "<rss><item/></rss>"})
        orchestrator = SyncOrchestrator(global_config, client, repository)
        bar = Mock()

        result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 2})["show-a"], bar)

        assert result.paths == []
        assert result.error == "failed to parse xml"
        bar.error.assert_called_once_with("failed to parse xml")
        bar.complete.assert_called_once_with(0)

    def test_feed_fetch_failure(self, global_config, repository):
        """Test a transport failure is reported, not raised."""
        client = FakeClient({FEED_A: FeedFetchError("failed to download feed: timeout")})
        orchestrator = SyncOrchestrator(global_config, client, repository)

        result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 2})["show-a"])

        assert result.paths == []
        assert "timeout" in result.error

    def test_episode_failure_stops_loop(self, sample_feed, global_config, repository):
        """Test failure at position i keeps exactly the first i episodes."""
        client = FakeClient(
            {FEED_A: sample_feed}, failing_downloads={"https://example.com/ep2.mp3"}
        )
        orchestrator = SyncOrchestrator(global_config, client, repository)
        bar = Mock()

        result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 3})["show-a"], bar)

        assert _names(result.paths) == ["Episode_3.mp3"]
        assert "ep2.mp3" in result.error
        assert client.downloaded == ["https://example.com/ep3.mp3"]
        assert repository.downloaded_guids("show-a") == {"ep-3"}
        bar.error.assert_called_once()

    def test_tagging_failure_stops_loop(self, sample_feed, global_config, repository):
        """Test a tag write failure is fatal to the remaining episodes."""
        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository)
        failing_enrich = AsyncMock(side_effect=[{}, TaggingError("failed to write tags")])

        with patch("podsync.workflow.orchestrator.enrich", failing_enrich):
            result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 3})["show-a"])

        assert _names(result.paths) == ["Episode_3.mp3"]
        assert result.error == "failed to write tags"
        assert repository.downloaded_guids("show-a") == {"ep-3"}

    def test_background_work_awaited_before_return(
        self, sample_feed, global_config, repository
    ):
        """Test every hook finishes before the podcast's result is returned."""
        global_config.DOWNLOAD_HOOK = "/usr/local/bin/on-download"
        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository)
        finished = []

        async def slow_hook(guid):
            await asyncio.sleep(0.01)
            finished.append(guid)

        def fake_spawn(hook, path, podcast_name, episode):
            return asyncio.create_task(slow_hook(episode.guid))

        with patch("podsync.workflow.orchestrator.spawn_download_hook", side_effect=fake_spawn):
            result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 2})["show-a"])

        assert sorted(finished) == ["ep-2", "ep-3"]
        assert len(result.paths) == 2

    def test_background_work_awaited_after_failure(
        self, sample_feed, global_config, repository
    ):
        """Test hooks of finished episodes are awaited when a later one fails."""
        global_config.DOWNLOAD_HOOK = "/usr/local/bin/on-download"
        client = FakeClient(
            {FEED_A: sample_feed}, failing_downloads={"https://example.com/ep2.mp3"}
        )
        orchestrator = SyncOrchestrator(global_config, client, repository)
        finished = []

        async def slow_hook(guid):
            await asyncio.sleep(0.01)
            finished.append(guid)

        def fake_spawn(hook, path, podcast_name, episode):
            return asyncio.create_task(slow_hook(episode.guid))

        with patch("podsync.workflow.orchestrator.spawn_download_hook", side_effect=fake_spawn):
            result = self._sync(orchestrator, "show-a", _configs(**{"show-a": 3})["show-a"])

        assert finished == ["ep-3"]
        assert len(result.paths) == 1
        assert result.error is not None

    def test_lifecycle_calls(self, sample_feed, global_config, repository):
        """Test the bar sees fetch, init, one begin per episode and complete."""
        client = FakeClient({FEED_A: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository)
        bar = Mock()

        self._sync(orchestrator, "show-a", _configs(**{"show-a": 2})["show-a"], bar)

        bar.fetching.assert_called_once()
        bar.init.assert_called_once()
        assert bar.begin_download.call_count == 2
        first_call = bar.begin_download.call_args_list[0]
        assert first_call.args[1:] == (0, 2)
        bar.update.assert_called_with(64, 64)
        bar.complete.assert_called_once_with(2)
        bar.error.assert_not_called()


class TestPending:
    """Tests for SyncOrchestrator.pending()."""

    def test_pending(self, sample_feed, global_config, repository):
        """Test due episodes are listed without downloading."""
        client = FakeClient({FEED_A: sample_feed, FEED_B: FeedFetchError("offline")})
        orchestrator = SyncOrchestrator(global_config, client, repository)

        results = asyncio.run(orchestrator.pending(_configs(**{"show-a": 2, "show-b": 2})))

        assert [ep.guid for ep in results["show-a"].episodes] == ["ep-3", "ep-2"]
        assert results["show-b"].error == "offline"
        assert client.downloaded == []

    def test_unexpected_error_isolated(self, sample_feed, global_config, repository):
        """Test a state lookup failure only affects its own podcast."""
        client = FakeClient({FEED_A: sample_feed, FEED_B: sample_feed})
        orchestrator = SyncOrchestrator(global_config, client, repository)
        real_lookup = repository.downloaded_guids

        def flaky_lookup(name):
            if name == "show-b":
                raise RuntimeError("database is locked")
            return real_lookup(name)

        with patch.object(repository, "downloaded_guids", side_effect=flaky_lookup):
            results = asyncio.run(
                orchestrator.pending(_configs(**{"show-a": 2, "show-b": 2}))
            )

        assert len(results["show-a"].episodes) == 2
        assert results["show-b"].error == "unexpected error: database is locked"
