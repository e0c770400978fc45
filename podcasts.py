"""
podcasts.py – podcast subscriptions and a minimal RSS scraper.

Subscriptions persist as
    [[podcast_data_for_all_stations]]
    title = "…"
    url = "…"
An absent file is an empty list.
"""

from __future__ import annotations

import html
import logging
import os
import tomllib
from dataclasses import asdict, dataclass
from pathlib import Path

import requests
import tomli_w

from player_state import Podcast

log = logging.getLogger(__name__)

SUBSCRIPTION_KEY = "podcast_data_for_all_stations"
RSS_MARKERS = ("<rss version", "xmlns:atom")

FETCH_TIMEOUT = 10            # seconds to connect and between chunks
CHUNK_BYTES   = 8192
SNIFF_BYTES   = 64 * 1024     # enough to tell a feed from a stream
FEED_BYTES    = 8 * 1024 * 1024


@dataclass
class Episode:
    date: str
    subtitle: str
    summary: str
    url: str


# ── scraping ───────────────────────────────────────────────────────────────
def extract(text: str, start: str, end: str) -> str:
    """Text between the first *start* and the following *end*; "" if either is missing."""
    i = text.find(start)
    if i < 0:
        return ""
    i += len(start)
    j = text.find(end, i)
    if j < 0:
        return ""
    return _clean(text[i:j])


def _clean(value: str) -> str:
    value = value.strip()
    if value.startswith("<![CDATA[") and value.endswith("]]>"):
        value = value[len("<![CDATA["):-len("]]>")].strip()
    if value.startswith("<p>") and value.endswith("</p>"):
        value = value[3:-4].strip()
    return html.unescape(value)


def looks_like_rss(body: str) -> bool:
    return any(marker in body for marker in RSS_MARKERS)


def feed_title(body: str) -> str:
    return extract(body, "<title>", "</title>")


def parse_episodes(body: str) -> list[Episode]:
    episodes = []
    pos = 0
    while True:
        start = body.find("<item>", pos)
        if start < 0:
            break
        end = body.find("</item>", start)
        if end < 0:
            break
        item = body[start:end]
        pos = end + len("</item>")
        summary = extract(item, "<itunes:summary>", "</itunes:summary>") \
            or extract(item, "<description>", "</description>")
        episodes.append(Episode(
            date=extract(item, "<pubDate>", "</pubDate>"),
            subtitle=extract(item, "<itunes:subtitle>", "</itunes:subtitle>")
            or extract(item, "<title>", "</title>"),
            summary=summary,
            url=extract(item, '<enclosure url="', '"'),
        ))
    return episodes


def fetch(url: str, session: requests.Session | None = None,
          limit: int = FEED_BYTES) -> str:
    """GET at most *limit* bytes of *url*; raises requests.RequestException.

    A live audio stream never ends, so the body is read in chunks and the
    connection dropped once *limit* is reached.
    """
    resp = (session or requests).get(url, stream=True, timeout=FETCH_TIMEOUT)
    try:
        resp.raise_for_status()
        body = bytearray()
        for chunk in resp.iter_content(CHUNK_BYTES):
            body += chunk
            if len(body) >= limit:
                log.debug("stopped reading %s after %d bytes", url, len(body))
                break
        return bytes(body[:limit]).decode(resp.encoding or "utf-8", errors="replace")
    finally:
        resp.close()


def episodes_as_dicts(episodes: list[Episode]) -> list[dict]:
    return [asdict(e) for e in episodes]


# ── subscription file ──────────────────────────────────────────────────────
def load_subscriptions(path: str | Path) -> list[Podcast]:
    if not os.path.exists(path):
        return []
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return [Podcast(title=str(p.get("title", "")), url=str(p["url"]))
            for p in data.get(SUBSCRIPTION_KEY, []) if "url" in p]


def save_subscriptions(path: str | Path, subs: list[Podcast]) -> None:
    data = {SUBSCRIPTION_KEY: [{"title": p.title, "url": p.url} for p in subs]}
    tmp = f"{path}.tmp"
    with open(tmp, "wb") as f:
        tomli_w.dump(data, f)
    os.replace(tmp, path)
    log.info("saved %d podcast subscriptions to %s", len(subs), path)
