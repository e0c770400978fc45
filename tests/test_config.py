"""Tests for loading and validating the TOML config."""

import pytest

from config import Config, load_config
from errors import ConfigError
from timing import fmt_ms, parse_duration


def _write(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults_from_empty_file(self, tmp_path):
        cfg = load_config(_write(tmp_path, ""))
        assert cfg.initial_volume == 70
        assert cfg.input_timeout == 3.0
        assert cfg.usb is None
        assert cfg.cd_channel_number is None

    def test_humantime_durations(self, tmp_path):
        cfg = load_config(_write(tmp_path, """
input_timeout = "2s"
goto_previous_track_time_delta = "1500ms"
buffering_duration = "1m"
"""))
        assert cfg.input_timeout == 2.0
        assert cfg.goto_previous_track_time_delta == 1.5
        assert cfg.buffering_duration == 60.0

    def test_scroll_and_media_sections(self, tmp_path):
        (tmp_path / "mnt").mkdir()
        cfg = load_config(_write(tmp_path, f"""
cd_channel_number = 0

[scroll]
max_scroll = 10
min_scroll = 4
scroll_period_ms = 1000

[usb]
channel_number = 50
device = "/dev/sda1"
mount_folder = "{tmp_path / 'mnt'}"
"""))
        assert cfg.scroll.min_scroll == 4
        assert cfg.cd_channel_number == 0
        assert cfg.usb.channel_number == 50
        assert cfg.media_channels() == {50: cfg.usb}

    def test_podcast_file_is_relative_to_config(self, tmp_path):
        cfg = load_config(_write(tmp_path, 'podcast_data_file = "subs.toml"'))
        assert cfg.podcast_data_file == str(tmp_path / "subs.toml")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Could not read config file"):
            load_config(tmp_path / "nope.toml")

    def test_bad_toml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "volume_offset = = 3"))

    def test_bad_number(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, 'volume_offset = "loud"'))

    def test_bad_duration(self, tmp_path):
        with pytest.raises(ConfigError, match="input_timeout"):
            load_config(_write(tmp_path, 'input_timeout = "3 fortnights"'))

    def test_media_section_missing_key(self, tmp_path):
        with pytest.raises(ConfigError, match="mount_folder"):
            load_config(_write(tmp_path, '[usb]\nchannel_number = 50\ndevice = "/dev/sda1"\n'))


class TestValidate:
    def test_missing_sound_file(self, tmp_path):
        text = f'[aural_notifications]\nfilename_error = "{tmp_path / "err.wav"}"\n'
        with pytest.raises(ConfigError) as exc:
            load_config(_write(tmp_path, text))
        assert str(exc.value) == (
            f"Error file {tmp_path / 'err.wav'} specified in TOML file but not found")

    def test_present_sound_file(self, tmp_path):
        (tmp_path / "start.wav").write_bytes(b"")
        text = f'[aural_notifications]\nfilename_startup = "{tmp_path / "start.wav"}"\n'
        cfg = load_config(_write(tmp_path, text))
        assert cfg.aural_notifications.filename_startup.endswith("start.wav")

    def test_validate_can_be_skipped(self, tmp_path):
        text = '[aural_notifications]\nfilename_error = "/nowhere/err.wav"\n'
        cfg = load_config(_write(tmp_path, text), validate=False)
        assert cfg.aural_notifications.filename_error == "/nowhere/err.wav"

    def test_volume_out_of_range(self):
        with pytest.raises(ConfigError, match="initial_volume"):
            Config(initial_volume=150).validate()


class TestTiming:
    def test_parse_duration(self):
        assert parse_duration("1600ms") == 1.6
        assert parse_duration("2m 30s") == 150.0
        assert parse_duration(5) == 5.0

    def test_parse_duration_rejects_junk(self):
        for bad in ("", "abc", "3 parsecs", True):
            with pytest.raises(ValueError):
                parse_duration(bad)

    def test_fmt_ms(self):
        assert fmt_ms(None) == "?"
        assert fmt_ms(65_000) == "1:05"
        assert fmt_ms(3_725_000) == "1:02:05"
