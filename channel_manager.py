"""
channel_manager.py

Station-file catalog for the radio.

* Scans `stations_directory` for files whose names start with a two-digit
  channel number (`01 BBC Radio 4.toml`, `42-jazz.toml`, …).
* Parsing is lazy: a file is only read when its channel is selected.
* A miss triggers one rescan, so files copied onto the card while the
  radio runs are picked up.
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from errors import EntryReadError, FileReadError, FolderReadError, NotFound, ParseError

log = logging.getLogger(__name__)

_CHAN_RE = re.compile(r"^(\d{2})")


# ── Data structures ─────────────────────────────────────────────────────────
@dataclass
class ChannelFile:
    organisation: str = ""
    pause_before_playing_ms: Optional[int] = None
    station_url: List[str] = field(default_factory=list)
    playlist_device: Optional[str] = None

    @property
    def is_playlist_of_albums(self) -> bool:
        return self.playlist_device is not None


def parse_channel_file(channel: int, text: str) -> ChannelFile:
    """Parse the TOML body of a channel file; raises ParseError."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ParseError(channel, str(e)) from e

    urls = data.get("station_url", [])
    if isinstance(urls, str):
        urls = [urls]
    if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
        raise ParseError(channel, "station_url must be a list of strings")

    pause = data.get("pause_before_playing_ms")
    if pause is not None and (not isinstance(pause, int) or isinstance(pause, bool) or pause < 0):
        raise ParseError(channel, "pause_before_playing_ms must be a positive integer")

    device = data.get("playlist_device")
    return ChannelFile(
        organisation=str(data.get("organisation", "")),
        pause_before_playing_ms=pause,
        station_url=urls,
        playlist_device=str(device) if device is not None else None,
    )


# ── Catalog ─────────────────────────────────────────────────────────────────
class ChannelManager:
    """Maps channel numbers to station files below *root_dir*."""

    def __init__(self, root_dir: str) -> None:
        self.root_dir = os.path.abspath(root_dir)
        self.files: Dict[int, str] = {}
        self.scan_error: Optional[FolderReadError] = None
        self._discover()

    # ----------------------------------------------------------- discovery
    def _discover(self) -> None:
        files: Dict[int, str] = {}
        try:
            entries = sorted(os.scandir(self.root_dir), key=lambda e: e.name)
        except OSError as e:
            self.scan_error = FolderReadError(self.root_dir, str(e))
            log.error("%s", self.scan_error)
            return

        for entry in entries:
            m = _CHAN_RE.match(entry.name)
            if not m:
                continue
            try:
                if not entry.is_file():
                    continue
            except OSError as e:
                log.warning("%s", EntryReadError(str(e)))
                continue
            files.setdefault(int(m.group(1)), entry.path)

        self.scan_error = None
        self.files = files
        log.info("indexed %d station files in %s", len(files), self.root_dir)

    # ----------------------------------------------------------- lookup
    def path_for(self, channel: int) -> Optional[str]:
        if channel not in self.files:
            self._discover()
        if self.scan_error is not None:
            raise self.scan_error
        return self.files.get(channel)

    def load(self, channel: int) -> ChannelFile:
        """Read and parse the file for *channel*; raises NotFound, FileReadError or ParseError."""
        path = self.path_for(channel)
        if path is None:
            raise NotFound()
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise FileReadError(path, str(e)) from e
        return parse_channel_file(channel, text)
