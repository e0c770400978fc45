"""
overlays.py

Composes the 20×4 LCD screen for each RunStatus from the PlayerState.
"""

from __future__ import annotations

import datetime

import config
from config import (BUFFER_CHAR_COUNT, LCD_WIDTH, LINE1_DATA_CHAR_COUNT,
                    VOLUME_CHAR_COUNT)
from lcd import TextBuffer, encode
from player_state import PipelineState, PlayerState, RunStatus, SourceKind
from timing import date_text, fmt_ms

GLYPH_TEST = "\x00\x01\x02\x03\x04\x05\x06\x07 ñäöüÆÇç"


# ── helpers ────────────────────────────────────────────────────────────────
def volume_text(state: PlayerState) -> str:
    ps = state.pipeline_state
    if ps in (PipelineState.PLAYING, PipelineState.NULL):
        return f"Vol {state.volume}"
    if ps is PipelineState.PAUSED:
        return "Paused"
    if ps is PipelineState.READY:
        return "Ready"
    return "Void"


def _first_fitting(candidates: list[str], width: int) -> str:
    for c in candidates:
        if len(c) <= width:
            return c
    return candidates[-1][:width]


def temperature_text(state: PlayerState) -> str:
    return f"CPU Temp {state.telemetry.cpu_temperature}C"


def _line1_running(state: PlayerState, cfg: config.Config) -> str:
    n = state.current_channel
    rt = state.runtime()
    src = rt.record.source
    initial_ms = cfg.time_initial_message_displayed_after_channel_change * 1000

    if rt.position_ms < initial_ms:
        if src is SourceKind.CD:
            return "Playing CD"
        if src is SourceKind.LOCAL_USB:
            return f"USB {n}"
        if src is SourceKind.REMOTE_CIFS:
            return f"Share {n}"
        if n == config.PODCAST_CHANNEL:
            return "Podcast"
        return f"Station {n}"

    if src.seekable:
        t, p, d = rt.cursor + 1, fmt_ms(rt.position_ms), fmt_ms(rt.duration_ms)
        return _first_fitting([f"{t}: {p} of {d}", f"{t}:{p} of {d}", f"{p} of {d}",
                               f"{p}/{d}", p], LINE1_DATA_CHAR_COUNT)

    ping = state.ping
    exhausted = ping.remote_pings >= cfg.max_number_of_remote_pings
    if ping.pings_sent and not (exhausted and ping.pings_sent % 2 == 0):
        return ping.text(short=True)
    return temperature_text(state)


def line2_text(state: PlayerState) -> str:
    """Second-line text for the current channel, throttle warning appended."""
    n = state.current_channel
    rt = state.runtime()
    rec = rt.record
    if rec.source is SourceKind.CD:
        text = f"CD track {rt.cursor + 1} of {rec.real_track_count}"
    elif rec.source in (SourceKind.LOCAL_USB, SourceKind.REMOTE_CIFS):
        text = f"{rec.organisation} ({rt.cursor + 1} of {rec.real_track_count})"
    elif n == config.PODCAST_CHANNEL and rt.artist:
        text = rt.artist
    else:
        text = rec.organisation
    if state.telemetry.throttled:
        text = f"{text} {state.telemetry.throttled}"
    return text


def _buffer_bar(buf: TextBuffer, line: int, percent: int) -> None:
    percent = max(0, min(100, percent))
    col = min(percent // 5, LCD_WIDTH - 1)
    glyph = 4 if percent == 100 else percent % 5
    buf.write(line, col, bytes([glyph]), 1)


# ── screens ────────────────────────────────────────────────────────────────
def _running_normally(buf: TextBuffer, state: PlayerState, cfg: config.Config,
                      wall: datetime.datetime) -> None:
    buf.write_text(0, 0, _line1_running(state, cfg), LINE1_DATA_CHAR_COUNT)
    buf.write_right(0, volume_text(state), VOLUME_CHAR_COUNT)
    buf.write(1, 0, state.line2.visible(), LCD_WIDTH)

    line34 = state.line34
    if state.runtime().record.source is SourceKind.URL_LIST:
        if len(line34) <= LCD_WIDTH:
            if len(line34):
                buf.write(2, 0, line34.visible(), LCD_WIDTH)
            else:
                buf.write_text(2, 0, date_text(wall), LCD_WIDTH)
            _buffer_bar(buf, 3, state.buffering_percent)
        else:
            buf.write(2, 0, line34.visible(), 2 * LCD_WIDTH - BUFFER_CHAR_COUNT)
            buf.write_right(3, f"{state.buffering_percent}", BUFFER_CHAR_COUNT)
    else:
        if len(line34) <= LCD_WIDTH:
            buf.write(2, 0, line34.visible(), LCD_WIDTH)
            buf.write_text(3, 0, date_text(wall), LCD_WIDTH)
        else:
            buf.write(2, 0, line34.visible(), 2 * LCD_WIDTH)


def _no_channel(buf: TextBuffer, state: PlayerState, wall: datetime.datetime) -> None:
    buf.write_text(0, 0, f"No station {state.current_channel}", LINE1_DATA_CHAR_COUNT)
    buf.write_right(0, volume_text(state), VOLUME_CHAR_COUNT)
    ip = state.network.local_ip_address
    buf.write_text(1, 0, f"IP {ip}" if ip else "No network", LCD_WIDTH)
    buf.write_text(2, 0, date_text(wall), LCD_WIDTH)
    wifi = state.telemetry.wifi_strength
    buf.write_text(3, 0, f"{temperature_text(state)} WiFi{wifi}", LCD_WIDTH)


def _no_channel_repeated(buf: TextBuffer, state: PlayerState, now: float,
                         wall: datetime.datetime) -> None:
    net = state.network
    if int(now // config.NO_CHANNEL_REPEATED_FLIP) % 2 == 0:
        buf.write_text(0, 0, config.BUILD_TIME.strftime("%d %b %y %H:%M:%S"), LCD_WIDTH)
        buf.write_text(1, 0, net.ssid or "No SSID", LCD_WIDTH)
    else:
        buf.write_text(0, 0, f"local{net.local_ip_address}", LCD_WIDTH)
        buf.write_text(1, 0, f"G'way{net.gateway_ip_address}", LCD_WIDTH)
    throttle = state.telemetry.throttled or "NotThrottled"
    buf.write_text(2, 0, f"{throttle}{wall:%H:%M:%S}", LCD_WIDTH)
    buf.write_text(3, 0, GLYPH_TEST, LCD_WIDTH)


def _starting_up(buf: TextBuffer, state: PlayerState, wall: datetime.datetime) -> None:
    net = state.network
    buf.write_text(0, 0, f"{config.APP_NAME} {config.VERSION}", LINE1_DATA_CHAR_COUNT)
    buf.write_right(0, volume_text(state), VOLUME_CHAR_COUNT)
    if net.is_valid:
        second = state.ping.text(short=True) if state.ping.pings_sent else f"IP {net.local_ip_address}"
    else:
        second = "Waiting for network"
    buf.write_text(1, 0, second, LCD_WIDTH)
    buf.write_text(2, 0, date_text(wall), LCD_WIDTH)
    buf.write_text(3, 0, f"{temperature_text(state)} WiFi{state.telemetry.wifi_strength}", LCD_WIDTH)


def _shutting_down(buf: TextBuffer) -> None:
    buf.write_text(0, 0, "Ending screen driver", LCD_WIDTH)
    buf.write_text(2, 0, "Computer not shut", LCD_WIDTH)
    buf.write_text(3, 0, "down", LCD_WIDTH)


# ── main entry point ───────────────────────────────────────────────────────
def compose(state: PlayerState, cfg: config.Config, now: float,
            wall: datetime.datetime | None = None) -> TextBuffer:
    """Build the 80-cell screen for the current state."""
    wall = wall or datetime.datetime.now()
    buf = TextBuffer()
    status = state.running_status

    if status is RunStatus.SHUTTING_DOWN:
        _shutting_down(buf)
    elif status is RunStatus.LONG_MESSAGE:
        buf.write_lines(0, config.LCD_LINES, state.all4.visible())
    elif status is RunStatus.NO_CHANNEL:
        _no_channel(buf, state, wall)
    elif status is RunStatus.NO_CHANNEL_REPEATED:
        _no_channel_repeated(buf, state, now, wall)
    elif status is RunStatus.STARTING_UP:
        _starting_up(buf, state, wall)
    else:
        _running_normally(buf, state, cfg, wall)

    if state.toml_error and status is not RunStatus.SHUTTING_DOWN:
        buf.write(0, 0, state.line1.visible().ljust(LCD_WIDTH, b" "), LCD_WIDTH)
    return buf


def message_screen(line1: str, line2: str = "") -> TextBuffer:
    buf = TextBuffer()
    buf.write(0, 0, encode(line1), LCD_WIDTH)
    buf.write(1, 0, encode(line2), LCD_WIDTH)
    return buf
