"""Tests for the per-status LCD screens."""

import datetime

import config
import overlays
from config import Config
from player_state import (ChannelRecord, NetworkData, PipelineState, PlayerState, RunStatus,
                          SourceKind)

WALL = datetime.datetime(2024, 3, 9, 14, 5, 7)


def _running(source=SourceKind.URL_LIST, tracks=("http://example/x",), channel=4, **rec):
    state = PlayerState(current_channel=channel, running_status=RunStatus.RUNNING_NORMALLY,
                        pipeline_state=PipelineState.PLAYING, volume=70)
    state.runtime().install(ChannelRecord(source=source, tracks=list(tracks), **rec))
    return state


class TestText:
    def test_volume_text(self):
        state = PlayerState(volume=85, pipeline_state=PipelineState.PLAYING)
        assert overlays.volume_text(state) == "Vol 85"
        state.pipeline_state = PipelineState.PAUSED
        assert overlays.volume_text(state) == "Paused"

    def test_line2_cd(self):
        state = _running(SourceKind.CD, ["cdda://1", "cdda://2", "cdda://3"], channel=0,
                         organisation="CD")
        state.runtime().cursor = 1
        assert overlays.line2_text(state) == "CD track 2 of 3"

    def test_line2_usb_ignores_ding(self):
        state = _running(SourceKind.LOCAL_USB, ["a", "b", "ding"], channel=50,
                         organisation="Artist/Album", last_track_is_ding=True)
        assert overlays.line2_text(state) == "Artist/Album (1 of 2)"

    def test_line2_stream_with_throttle(self):
        state = _running(organisation="Example FM")
        state.telemetry.throttled = "0x50005"
        assert overlays.line2_text(state) == "Example FM 0x50005"


class TestCompose:
    def test_running_normally_initial_message(self):
        buf = overlays.compose(_running(), Config(), 0.0, WALL)
        assert buf.line(0).startswith(b"Station 4")
        assert buf.line(0).endswith(b"Vol 70")

    def test_running_shows_date_when_no_title(self):
        buf = overlays.compose(_running(), Config(), 0.0, WALL)
        assert buf.line(2).startswith(b"09 Mar 24 14:05:07")

    def test_position_after_initial_message(self):
        state = _running(SourceKind.LOCAL_USB, ["a", "b"], channel=50, organisation="Al")
        rt = state.runtime()
        rt.position_ms, rt.duration_ms = 65_000, 200_000
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(0).startswith(b"1:05 of 3:20")

    def test_long_title_uses_two_lines(self):
        state = _running(SourceKind.LOCAL_USB, ["a"], channel=50)
        state.line34.update_if_changed("t" * 35, 0.0)
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(2) == b"t" * 20
        assert buf.line(3).startswith(b"t" * 15)

    def test_no_channel(self):
        state = PlayerState(current_channel=99, running_status=RunStatus.NO_CHANNEL)
        state.network = NetworkData(True, "HomeNet", "192.168.1.20", "192.168.1.1")
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(0).startswith(b"No station 99")
        assert buf.line(1).startswith(b"IP 192.168.1.20")

    def test_no_channel_repeated_flips_views(self):
        state = PlayerState(current_channel=99, running_status=RunStatus.NO_CHANNEL_REPEATED)
        state.network = NetworkData(True, "HomeNet", "192.168.1.20", "192.168.1.1")
        first = overlays.compose(state, Config(), 0.0, WALL)
        second = overlays.compose(state, Config(), config.NO_CHANNEL_REPEATED_FLIP, WALL)
        assert first.line(1).startswith(b"HomeNet")
        assert second.line(1).startswith(b"G'way192.168.1.1")
        assert first.line(2).startswith(b"NotThrottled14:05:07")

    def test_long_message(self):
        state = PlayerState(running_status=RunStatus.LONG_MESSAGE)
        state.all4.update_if_changed("x" * 45, 0.0)
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(0) == b"x" * 20
        assert buf.line(2).startswith(b"xxxxx ")

    def test_toml_error_overrides_first_line(self):
        state = _running()
        state.toml_error = "4, expected value"
        state.line1.update_if_changed(state.toml_error, 0.0)
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(0) == b"4, expected value   "

    def test_shutting_down(self):
        buf = overlays.compose(PlayerState(running_status=RunStatus.SHUTTING_DOWN), Config(), 0.0, WALL)
        assert buf.line(0).startswith(b"Ending screen driver")

    def test_buffer_bar(self):
        state = _running()
        state.buffering_percent = 52
        buf = overlays.compose(state, Config(), 0.0, WALL)
        assert buf.line(3)[10] == 2

    def test_message_screen(self):
        buf = overlays.message_screen("Filling buffer", "for channel 4")
        assert buf.line(1).startswith(b"for channel 4")
