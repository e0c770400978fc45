#!/usr/bin/env python3
"""
app.py – the radio's event loop and state machine.

RadioApp owns the single PlayerState. Actions arrive from events.py
(keypad, GStreamer bus, web, ticker); each one is dispatched on
act["type"], may call the mount manager / resolver / player, and is
always followed by a screen refresh. Web clients get DataChanged
notifications through the Broadcaster.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Optional

import cd_drive
import config
import overlays
import playback
import podcasts
from channel_resolver import ChannelResolver
from errors import ChannelError, LcdError, NotFound, ParseError, PlaybackError
from events import STREAM_CLOSED, EventManager
from mount_manager import MountManager
from player_state import (ChannelRecord, NetworkData, PipelineState, PlayerState,
                          Podcast, RunStatus, SourceKind)
from playlist_builder import file_uri
from telemetry import PingScheduler, TelemetryCache, host_from_url
from web_remote import Broadcaster

log = logging.getLogger(__name__)


def clamp_volume(v: int) -> int:
    return max(config.VOLUME_MIN, min(config.VOLUME_MAX, v))


# ── main application ───────────────────────────────────────────────────────
class RadioApp:
    def __init__(
        self,
        cfg: config.Config,
        player,
        events: EventManager,
        mounts: MountManager,
        resolver: ChannelResolver,
        lcd=None,
        notifier: Optional[Broadcaster] = None,
        ping: Optional[PingScheduler] = None,
        health: Optional[TelemetryCache] = None,
        eject: Callable[[str], None] = cd_drive.eject,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.player = player
        self.events = events
        self.mounts = mounts
        self.resolver = resolver
        self.lcd = lcd
        self.notifier = notifier or Broadcaster()
        self.ping = ping or PingScheduler(cfg.max_number_of_remote_pings)
        self.health = health or TelemetryCache()
        self._eject = eject
        self._clock = clock
        self._sleep = sleep
        self.screen = None

        self.state = PlayerState(volume=clamp_volume(cfg.initial_volume))
        try:
            self.state.podcast_subs = podcasts.load_subscriptions(cfg.podcast_data_file)
        except (OSError, ValueError, KeyError) as e:
            log.error("could not read podcast file %s: %s", cfg.podcast_data_file, e)

        self._handlers: dict[str, Callable[[dict], None]] = {
            # keypad
            "play_pause":     self._on_play_pause,
            "volume_up":      lambda act: self._change_volume(+1),
            "volume_down":    lambda act: self._change_volume(-1),
            "previous_track": self._on_previous_track,
            "next_track":     self._on_next_track,
            "play_station":   self._on_play_station,
            "eject":          self._on_eject,
            "debug_status":   lambda act: log.info("status\n%s", self.state.report()),
            "debug_newline":  lambda act: log.info(""),
            "debug_mounts":   lambda act: log.info("mounts\n%s", self.mounts.listing()),
            "debug_config":   lambda act: log.info("config %s", self.cfg),
            # bus
            "tag":            self._on_tag,
            "state_changed":  self._on_state_changed,
            "eos":            self._on_eos,
            "error":          lambda act: self._show_long_message(act["text"]),
            "buffering":      self._on_buffering,
            # web
            "seek":           self._on_seek,
            "add_podcast":    self._on_add_podcast,
            "delete_podcast": self._on_delete_podcast,
            "podcast_index":  self._on_podcast_index,
            "play_url":       self._on_play_url,
            "status_report":  lambda act: act["reply"].put(self.state.report()),
            "snapshot":       lambda act: act["reply"].put(self.snapshot()),
            # ticker
            "tick":           self._on_tick,
        }

    # ── lifecycle ---------------------------------------------------------
    def start(self, network: Optional[NetworkData] = None) -> None:
        """Push the initial volume, play the startup sound and draw the first screen."""
        st = self.state
        if network is not None:
            st.network = network
        self.health.refresh(st.telemetry, self._clock(), force=True)
        self.player.set_volume(st.volume)
        startup = self.cfg.aural_notifications.filename_startup
        if startup:
            self._load_ding(startup)
            try:
                playback.play_track(self.player, st, self.cfg, seek_allowed=False)
            except PlaybackError as e:
                log.error("startup sound: %s", e)
        self.render()

    def run(self) -> None:
        try:
            while True:
                act = self.events.wait()
                if act["type"] == STREAM_CLOSED:
                    log.info("%s closed, shutting down", act["source"].name)
                    self.shutdown()
                    return
                self.handle(act)
        finally:
            self.player.close()

    def shutdown(self) -> None:
        self.mounts.unmount_all()
        self.state.running_status = RunStatus.SHUTTING_DOWN
        self.render()

    # ── dispatch ----------------------------------------------------------
    def handle(self, act: dict) -> None:
        handler = self._handlers.get(act["type"])
        if handler is None:
            log.warning("unknown action %r", act)
            return
        try:
            handler(act)
        except ChannelError as e:
            log.error("channel %d: %s", self.state.current_channel, e)
            self._show_long_message(e.lcd_message(), ding=True)
        except PlaybackError as e:
            log.error("%s", e)
            self._show_long_message(str(e))
        self.render()

    def render(self) -> None:
        self.screen = overlays.compose(self.state, self.cfg, self._clock())
        if self.lcd is not None:
            try:
                self.lcd.write_buffer(self.screen)
            except LcdError as e:
                log.error("%s", e)

    def snapshot(self) -> dict:
        return {
            "volume": self.state.volume,
            "podcasts": [dataclasses.asdict(p) for p in self.state.podcast_subs],
            "podcast_index": self.state.podcast_index,
        }

    # ── helpers -----------------------------------------------------------
    def _notify(self, line1: str, line2: str) -> None:
        if self.lcd is not None:
            try:
                self.lcd.write_buffer(overlays.message_screen(line1, line2))
            except LcdError as e:
                log.error("%s", e)

    def _play(self, seek_allowed: bool) -> None:
        playback.play_track(self.player, self.state, self.cfg, seek_allowed,
                            notify=self._notify, sleep=self._sleep)

    def _load_ding(self, filename: str) -> None:
        rt = self.state.channels[config.DING_CHANNEL]
        rt.install(ChannelRecord(organisation="ding", tracks=[file_uri(filename)]))
        rt.cursor, rt.position_ms = 0, 0

    def _play_error_ding(self) -> None:
        err = self.cfg.aural_notifications.filename_error
        if not err:
            return
        self._load_ding(err)
        try:
            self._play(seek_allowed=False)
        except PlaybackError as e:
            log.error("error sound: %s", e)

    def _show_long_message(self, text: str, ding: bool = False) -> None:
        self.state.all4.update_if_changed(text, self._clock())
        self.state.running_status = RunStatus.LONG_MESSAGE
        if ding:
            self._play_error_ding()

    def _refresh_line2(self) -> None:
        self.state.line2.update_if_changed(overlays.line2_text(self.state), self._clock())

    def _resume_user_channel(self) -> bool:
        """Leave an error screen if the user channel still has tracks."""
        st = self.state
        if not st.runtime().tracks:
            return False
        if st.running_status.is_error:
            st.running_status = RunStatus.RUNNING_NORMALLY
        return True

    def _activate(self, n: int) -> None:
        """Bookkeeping common to every successful channel change."""
        st = self.state
        rt = st.channels[n]
        st.running_status = RunStatus.RUNNING_NORMALLY
        st.toml_error = None
        st.buffering_percent = 0
        rt.ping_target = host_from_url(rt.tracks[0]) if rt.record.source is SourceKind.URL_LIST else ""
        st.ping = self.ping.reset(rt.ping_target)
        self._refresh_line2()

    def _broadcast_podcasts(self) -> None:
        self.notifier.publish({"kind": "podcasts",
                               "podcasts": [dataclasses.asdict(p) for p in self.state.podcast_subs]})

    def _save_podcasts(self) -> None:
        try:
            podcasts.save_subscriptions(self.cfg.podcast_data_file, self.state.podcast_subs)
        except OSError as e:
            log.error("could not save podcasts: %s", e)
        self._broadcast_podcasts()

    # ── keypad ------------------------------------------------------------
    def _on_play_pause(self, act: dict) -> None:
        if self.state.pipeline_state is PipelineState.PLAYING:
            self.player.set_state(PipelineState.PAUSED)
        else:
            self.player.set_state(PipelineState.PLAYING)

    def _change_volume(self, direction: int) -> None:
        st = self.state
        st.volume = clamp_volume(st.volume + direction * self.cfg.volume_offset)
        self.player.set_volume(st.volume)
        self.notifier.publish({"kind": "volume", "volume": st.volume})

    def _on_previous_track(self, act: dict) -> None:
        if self._resume_user_channel():
            playback.previous_track(self.player, self.state, self.cfg,
                                    notify=self._notify, sleep=self._sleep)
            self.state.line34.clear()
            self._refresh_line2()

    def _on_next_track(self, act: dict) -> None:
        if self._resume_user_channel():
            playback.next_track(self.player, self.state, self.cfg,
                                notify=self._notify, sleep=self._sleep)
            self.state.line34.clear()
            self._refresh_line2()

    def _on_play_station(self, act: dict) -> None:
        n = int(act["channel"])
        st = self.state

        if n == st.current_channel:
            if st.running_status is RunStatus.NO_CHANNEL:
                st.running_status = RunStatus.NO_CHANNEL_REPEATED
                return
            if st.running_status is RunStatus.RUNNING_NORMALLY and st.runtime().tracks:
                return

        st.reset_lines()
        st.toml_error = None
        st.previous_channel, st.current_channel = st.current_channel, n

        rt = st.channels[n]
        usb = self.mounts.usb
        target = self.mounts.binding_for_channel(n) or rt.record.media
        if usb is not None and usb.is_mounted and target is not usb:
            self.mounts.unmount(usb)

        try:
            if rt.tracks and rt.record.media is not None:
                # keep the album picked last time so cursor and position survive
                self.mounts.mount(rt.record.media)
            else:
                rt.install(self.resolver.resolve(n))
        except NotFound:
            self._channel_not_found(n)
            return
        except ParseError as e:
            self.player.set_state(PipelineState.NULL)
            st.running_status = RunStatus.RUNNING_NORMALLY
            st.toml_error = e.first_line()
            st.line1.update_if_changed(st.toml_error, self._clock())
            return

        self._activate(n)
        self._play(seek_allowed=True)

    def _channel_not_found(self, n: int) -> None:
        st = self.state
        repeated = st.previous_channel == n and st.running_status in (
            RunStatus.NO_CHANNEL, RunStatus.NO_CHANNEL_REPEATED)
        st.running_status = RunStatus.NO_CHANNEL_REPEATED if repeated else RunStatus.NO_CHANNEL
        log.info("no station %d (%s)", n, st.running_status.value)
        self._play_error_ding()

    def _on_eject(self, act: dict) -> None:
        try:
            self._eject(self.cfg.cd_device)
        except OSError as e:
            log.error("eject %s failed: %s", self.cfg.cd_device, e)

    # ── bus ---------------------------------------------------------------
    def _on_tag(self, act: dict) -> None:
        st = self.state
        rt = st.channels[st.effective_channel()]
        if "title" in act:
            st.line34.update_if_changed(act["title"], self._clock())
        if "organization" in act:
            org = config.NAME_CORRECTIONS.get(act["organization"], act["organization"])
            if org != rt.record.organisation:
                rt.record.organisation = org
                if not st.running_status.is_error:
                    self._refresh_line2()
        if "artist" in act:
            rt.artist = act["artist"]
            if st.current_channel == config.PODCAST_CHANNEL:
                self._refresh_line2()

    def _on_state_changed(self, act: dict) -> None:
        self.state.pipeline_state = act["state"]
        self.notifier.publish({"kind": "volume", "volume": self.state.volume})

    def _on_eos(self, act: dict) -> None:
        st = self.state
        if st.effective_channel() != st.current_channel:
            return
        if len(st.runtime().tracks) > 1:
            playback.next_track(self.player, st, self.cfg, notify=self._notify, sleep=self._sleep)
            st.line34.clear()
            self._refresh_line2()

    def _on_buffering(self, act: dict) -> None:
        self.state.buffering_percent = max(0, min(100, int(act["percent"])))

    # ── web ---------------------------------------------------------------
    def _on_seek(self, act: dict) -> None:
        ms = max(0, int(act["ms"]))
        if self.player.seek_ms(ms):
            self.state.channels[self.state.effective_channel()].position_ms = ms
        else:
            log.warning("Failed to seek to %d ms", ms)

    def _on_add_podcast(self, act: dict) -> None:
        self.state.podcast_subs.append(Podcast(title=act["title"], url=act["url"]))
        self._save_podcasts()

    def _on_delete_podcast(self, act: dict) -> None:
        i = int(act["index"])
        subs = self.state.podcast_subs
        if not 0 <= i < len(subs):
            log.warning("no podcast %d to delete", i)
            return
        del subs[i]
        if self.state.podcast_index >= len(subs):
            self.state.podcast_index = -1
        self._save_podcasts()

    def _on_podcast_index(self, act: dict) -> None:
        self.state.podcast_index = int(act["index"])

    def _on_play_url(self, act: dict) -> None:
        st = self.state
        n = config.PODCAST_CHANNEL
        url = act["url"]
        st.reset_lines()
        rt = st.channels[n]
        rt.install(ChannelRecord(organisation=host_from_url(url), source=SourceKind.URL_LIST,
                                 tracks=[url]))
        rt.cursor, rt.position_ms, rt.duration_ms = 0, 0, None
        st.previous_channel, st.current_channel = st.current_channel, n
        self._activate(n)
        try:
            self._play(seek_allowed=True)
        except PlaybackError as e:
            raise PlaybackError(f"When playing a track on channel {n} got {e}") from e

    # ── ticker ------------------------------------------------------------
    def _on_tick(self, act: dict) -> None:
        st = self.state
        now = act.get("now", self._clock())
        rt = st.channels[st.effective_channel()]

        pos = self.player.query_position_ms()
        if pos is not None:
            rt.position_ms = pos
            dur = self.player.query_duration_ms()
            if dur is not None:
                rt.duration_ms = dur
            self.notifier.publish({"kind": "position", "position_ms": rt.position_ms,
                                   "duration_ms": rt.duration_ms})

        throttled_before = st.telemetry.throttled
        if self.health.refresh(st.telemetry, now) and st.telemetry.throttled != throttled_before \
                and st.running_status is RunStatus.RUNNING_NORMALLY:
            self._refresh_line2()

        allowed = (st.runtime().record.source is SourceKind.URL_LIST
                   or st.running_status is RunStatus.STARTING_UP)
        st.ping = self.ping.tick(st.network.gateway_ip_address, allowed)

        scroll = self.cfg.scroll
        width = config.LCD_WIDTH
        line34_cells = 2 * width
        if st.runtime().record.source is SourceKind.URL_LIST:
            line34_cells -= config.BUFFER_CHAR_COUNT
        st.line1.tick(now, width, scroll)
        st.line2.tick(now, width, scroll)
        st.line34.tick(now, line34_cells, scroll)
        st.all4.tick(now, config.LCD_CELLS, scroll)
