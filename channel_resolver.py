"""
channel_resolver.py – channel number → ChannelRecord.

Order of precedence: the CD slot, then the USB / Samba slots, then the
station files. Errors are ChannelError subclasses for the event loop to
render; mount side effects go through MountManager only.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Optional

import cd_drive
import playlist_builder
from channel_manager import ChannelManager
from config import Config
from errors import EmptyTrackList, NoUsbConfigured, ParseError
from mount_manager import MediaBinding, MountManager
from player_state import ChannelRecord, SourceKind

log = logging.getLogger(__name__)


class ChannelResolver:
    def __init__(
        self,
        config: Config,
        catalog: ChannelManager,
        mounts: MountManager,
        rng: Optional[random.Random] = None,
        read_toc: Callable[[str], tuple[int, int]] = cd_drive.read_toc,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.mounts = mounts
        self.rng = rng or random.Random()
        self._read_toc = read_toc

    @property
    def _end_ding(self) -> Optional[str]:
        return self.config.aural_notifications.filename_sound_at_end_of_playlist

    def _with_ding(self, tracks: list[str]) -> tuple[list[str], bool]:
        if tracks and self._end_ding:
            return tracks + [playlist_builder.file_uri(self._end_ding)], True
        return tracks, False

    # ------------------------------------------------------------------ api
    def resolve(self, n: int) -> ChannelRecord:
        if self.config.cd_channel_number is not None and n == self.config.cd_channel_number:
            return self._resolve_cd()
        binding = self.mounts.binding_for_channel(n)
        if binding is not None:
            return self._resolve_media(binding)
        return self._resolve_file(n)

    # ------------------------------------------------------------------ CD
    def _resolve_cd(self) -> ChannelRecord:
        first, last = self._read_toc(self.config.cd_device)
        log.info("CD TOC first=%d last=%d", first, last)
        tracks, ding = self._with_ding(cd_drive.track_uris(first, last))
        if not tracks:
            raise EmptyTrackList()
        return ChannelRecord(organisation="CD", source=SourceKind.CD,
                             tracks=tracks, last_track_is_ding=ding)

    # ------------------------------------------------------------------ USB / Samba
    def _resolve_media(self, binding: MediaBinding) -> ChannelRecord:
        self.mounts.mount(binding)
        album, tracks = playlist_builder.pick_random_album(binding.mount_point, self.rng)
        tracks, ding = self._with_ding(tracks)
        log.info("picked album %s (%d tracks)", album, len(tracks))
        return ChannelRecord(organisation=album, source=self.mounts.source_kind(binding),
                             tracks=tracks, last_track_is_ding=ding, media=binding)

    # ------------------------------------------------------------------ station files
    def _resolve_file(self, n: int) -> ChannelRecord:
        station = self.catalog.load(n)

        if station.is_playlist_of_albums:
            usb = self.mounts.usb
            if usb is None:
                raise NoUsbConfigured()
            if not station.station_url:
                raise ParseError(n, "no albums listed")
            self.mounts.mount(usb)
            album = self.rng.choice(station.station_url)
            tracks, ding = self._with_ding(playlist_builder.album_tracks(usb.mount_point, album))
            return ChannelRecord(organisation=album, source=SourceKind.LOCAL_USB,
                                 tracks=tracks, last_track_is_ding=ding,
                                 pause_before_play_ms=station.pause_before_playing_ms,
                                 media=usb)

        if not station.station_url:
            raise ParseError(n, "no URLs")
        return ChannelRecord(organisation=station.organisation, source=SourceKind.URL_LIST,
                             tracks=list(station.station_url),
                             pause_before_play_ms=station.pause_before_playing_ms)
