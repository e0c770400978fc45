"""Tests for the RSS scraper and the subscription file."""

from unittest.mock import MagicMock

import podcasts
from player_state import Podcast

FEED = """<?xml version="1.0"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
<channel>
<title>Science &amp; Stuff</title>
<item>
  <title>Episode 2</title>
  <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
  <itunes:subtitle><![CDATA[Black holes]]></itunes:subtitle>
  <description><p>All about gravity</p></description>
  <enclosure url="https://cdn.example/ep2.mp3" length="1" type="audio/mpeg"/>
</item>
<item>
  <title>Episode 1</title>
  <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
  <itunes:summary>Stars</itunes:summary>
  <enclosure url="https://cdn.example/ep1.mp3" length="1" type="audio/mpeg"/>
</item>
</channel>
</rss>
"""


class TestScraper:
    def test_extract_missing(self):
        assert podcasts.extract("<a>x</a>", "<b>", "</b>") == ""

    def test_extract_unescapes(self):
        assert podcasts.extract(FEED, "<title>", "</title>") == "Science & Stuff"

    def test_looks_like_rss(self):
        assert podcasts.looks_like_rss(FEED)
        assert not podcasts.looks_like_rss("ICY 200 OK")

    def test_parse_episodes(self):
        eps = podcasts.parse_episodes(FEED)
        assert [e.url for e in eps] == ["https://cdn.example/ep2.mp3", "https://cdn.example/ep1.mp3"]
        assert eps[0].subtitle == "Black holes"
        assert eps[0].summary == "All about gravity"
        assert eps[1].subtitle == "Episode 1"
        assert eps[1].summary == "Stars"
        assert eps[1].date.startswith("Mon, 01 Jan")

    def test_fetch_raises_for_status(self):
        session = MagicMock()
        resp = session.get.return_value
        resp.encoding = "utf-8"
        resp.iter_content.return_value = [FEED.encode()]
        assert podcasts.fetch("https://feeds.example/rss", session) == FEED
        session.get.assert_called_once_with("https://feeds.example/rss", stream=True,
                                            timeout=podcasts.FETCH_TIMEOUT)
        resp.raise_for_status.assert_called_once()
        resp.close.assert_called_once()

    def test_fetch_stops_at_limit(self):
        session = MagicMock()
        resp = session.get.return_value
        resp.encoding = None
        resp.iter_content.return_value = iter(lambda: b"\xff\xfb" * 4096, None)
        body = podcasts.fetch("http://radio.example/live", session, limit=20_000)
        assert len(body) <= 20_000
        resp.close.assert_called_once()


class TestSubscriptions:
    def test_absent_file_is_empty(self, tmp_path):
        assert podcasts.load_subscriptions(tmp_path / "none.toml") == []

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "podcasts.toml"
        subs = [Podcast("Science & Stuff", "https://feeds.example/rss"),
                Podcast("Другое", "https://other.example/feed")]
        podcasts.save_subscriptions(path, subs)
        assert "[[podcast_data_for_all_stations]]" in path.read_text(encoding="utf-8")
        assert podcasts.load_subscriptions(path) == subs
        assert not (tmp_path / "podcasts.toml.tmp").exists()
