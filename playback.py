"""
playback.py – track selection on top of AudioPlayer.

The functions take the player, the PlayerState and the Config; they mutate
only the channel runtime they are asked to play and raise PlaybackError for
anything the LCD should show.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import config as cfg
from config import Config
from errors import PlaybackError
from player_state import PipelineState, PlayerState, StateChange

log = logging.getLogger(__name__)


def _restore_position(player, position_ms: int, sleep: Callable[[float], None]) -> None:
    for _ in range(cfg.SEEK_POLL_COUNT):
        if player.query_position_ms() is not None:
            break
        sleep(cfg.SEEK_POLL_PERIOD)
    else:
        log.warning("failed to seek, probably because could not get a gstreamer position")
        return
    if not player.seek_ms(position_ms):
        log.warning("Failed to seek to %d ms", position_ms)


def play_track(
    player,
    state: PlayerState,
    config: Config,
    seek_allowed: bool,
    notify: Optional[Callable[[str, str], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    player.set_state(PipelineState.NULL)
    if state.running_status.is_error and not config.aural_notifications.filename_error:
        return

    n = state.effective_channel()
    rt = state.channels[n]
    if n == cfg.DING_CHANNEL and not rt.tracks:
        return
    if not 0 <= rt.cursor < len(rt.tracks):
        raise PlaybackError(
            f"On channel {n} Index to tracks out of bounds; "
            f"it is {rt.cursor} and the list has {len(rt.tracks)} elements")

    uri = rt.current_uri()
    log.info("channel %d track %d: %s", n, rt.cursor, uri)
    player.set_uri(uri)

    pause_ms = rt.record.pause_before_play_ms
    if pause_ms:
        player.set_state(PipelineState.PAUSED)
        if notify:
            notify("Filling buffer", f"for channel {n}")
        sleep(pause_ms / 1000)

    if player.set_state(PipelineState.PLAYING) is StateChange.FAILURE:
        raise PlaybackError(f"Failed to set the URL. Got error state change failure for {uri}")

    if seek_allowed and rt.record.source.seekable and rt.position_ms > 0:
        _restore_position(player, rt.position_ms, sleep)


def next_track(player, state: PlayerState, config: Config, **kw) -> None:
    rt = state.runtime()
    if not rt.tracks:
        return
    rt.cursor = (rt.cursor + 1) % len(rt.tracks)
    rt.position_ms, rt.duration_ms = 0, None
    play_track(player, state, config, seek_allowed=False, **kw)


def previous_track(player, state: PlayerState, config: Config, **kw) -> None:
    """Back to the start of the track, or to the previous one if already near it."""
    rt = state.runtime()
    if not rt.tracks:
        return
    if rt.position_ms >= config.goto_previous_track_time_delta * 1000:
        if not player.seek_ms(0):
            log.warning("Failed to seek to the start of the track")
        rt.position_ms = 0
        return
    rt.cursor = (rt.cursor - 1) % len(rt.tracks)
    rt.position_ms, rt.duration_ms = 0, None
    play_track(player, state, config, seek_allowed=False, **kw)
