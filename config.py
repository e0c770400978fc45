# config.py
"""
Configuration for the keypad radio.

Fixed knobs live here as module constants; the per-installation settings
come from a TOML file loaded by `load_config()` into the dataclasses below.
"""

from __future__ import annotations

import datetime
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from errors import ConfigError
from timing import parse_duration

APP_NAME = "rradio"
VERSION  = "1.0.0"
BUILD_TIME = datetime.datetime.fromtimestamp(os.path.getmtime(__file__))

# ── Volume (dB relative to VOLUME_ZERO_DB) ─────────────────────────────────

VOLUME_MIN     = 0
VOLUME_MAX     = 120
VOLUME_ZERO_DB = 100

# ── Channel slots ──────────────────────────────────────────────────────────

MAX_USER_CHANNEL = 99
PODCAST_CHANNEL  = 100
DING_CHANNEL     = 101
NUM_CHANNELS     = 102

AUDIO_EXTENSIONS = ("mp3", "wav", "ogg", "flac")

# ── Event loop ─────────────────────────────────────────────────────────────

TICK_PERIOD       = 0.300      # seconds between ticker events
WEB_QUEUE_SIZE    = 64         # bounded web → event-loop channel
WEB_REPLY_TIMEOUT = 2.0
SEEK_POLL_COUNT   = 100        # position polls before a restoring seek
SEEK_POLL_PERIOD  = 0.050

# ── LCD geometry ───────────────────────────────────────────────────────────

LCD_WIDTH   = 20
LCD_LINES   = 4
LCD_CELLS   = LCD_WIDTH * LCD_LINES
VOLUME_CHAR_COUNT     = 7
LINE1_DATA_CHAR_COUNT = LCD_WIDTH - VOLUME_CHAR_COUNT
BUFFER_CHAR_COUNT     = 3
MIN_SCROLL_TAIL       = 10     # shorter suffixes wrap back to offset 0
NO_CHANNEL_REPEATED_FLIP = 4.0 # seconds per diagnostic view

# ── Telemetry ──────────────────────────────────────────────────────────────

PING_INTERVAL        = 2.0
PING_TIMEOUT         = 3
TELEMETRY_REFRESH    = 5.0
NETWORK_RETRIES      = 40
NETWORK_RETRY_SLEEP  = 0.050
WIFI_INTERFACE       = "wlan0"

# ── Tag clean-up ───────────────────────────────────────────────────────────

NAME_CORRECTIONS = {
    "LaPremiere": "La Première",
}

DEFAULT_CONFIG_FILE = "config.toml"


# ── Dataclasses ────────────────────────────────────────────────────────────
@dataclass
class ScrollConfig:
    max_scroll: int = 14
    min_scroll: int = 6
    scroll_period_ms: int = 1600


@dataclass
class AuralNotifications:
    filename_startup: Optional[str] = None
    filename_error: Optional[str] = None
    filename_sound_at_end_of_playlist: Optional[str] = None


@dataclass
class AuthenticationData:
    username: str
    password: str


@dataclass
class MediaDetails:
    """A mountable source, the USB stick or the Samba share."""

    channel_number: int
    device: str
    mount_folder: str
    authentication_data: Optional[AuthenticationData] = None
    version: Optional[str] = None


@dataclass
class Config:
    stations_directory: str = "/boot/playlists3"
    input_timeout: float = 3.0
    volume_offset: int = 5
    initial_volume: int = 70
    buffering_duration: Optional[float] = None
    goto_previous_track_time_delta: float = 2.0
    time_initial_message_displayed_after_channel_change: float = 6.0
    max_number_of_remote_pings: int = 20
    scroll: ScrollConfig = field(default_factory=ScrollConfig)
    aural_notifications: AuralNotifications = field(default_factory=AuralNotifications)
    cd_channel_number: Optional[int] = None
    usb: Optional[MediaDetails] = None
    samba: Optional[MediaDetails] = None
    web_port: int = 8080
    podcast_data_file: str = "podcasts.toml"
    log_level: str = "INFO"
    log_file: str = "runtime.log"
    lcd_device: str = "/dev/lcd"
    cd_device: str = "/dev/cdrom"

    def validate(self) -> None:
        """
        Raises:
            ConfigError: a sound file is missing or the mount folders clash
        """
        aural = self.aural_notifications
        for label, fn in (("Startup", aural.filename_startup),
                          ("Error", aural.filename_error),
                          ("End of playlist", aural.filename_sound_at_end_of_playlist)):
            if fn and not os.path.isfile(fn):
                raise ConfigError(f"{label} file {fn} specified in TOML file but not found")

        if self.usb and self.samba and \
                os.path.normpath(self.usb.mount_folder) == os.path.normpath(self.samba.mount_folder):
            raise ConfigError(
                f"USB and Samba share the mount folder {self.usb.mount_folder}")
        for media in (self.usb, self.samba):
            if media and not os.path.isdir(media.mount_folder):
                raise ConfigError(f"Mount folder {media.mount_folder} not found")

        if not VOLUME_MIN <= self.initial_volume <= VOLUME_MAX:
            raise ConfigError(
                f"initial_volume {self.initial_volume} outside {VOLUME_MIN}..{VOLUME_MAX}")
        if self.scroll.min_scroll < 1 or self.scroll.max_scroll < self.scroll.min_scroll:
            raise ConfigError("scroll needs 1 <= min_scroll <= max_scroll")

    def media_channels(self) -> dict[int, MediaDetails]:
        return {m.channel_number: m for m in (self.usb, self.samba) if m}


# ── Loading ────────────────────────────────────────────────────────────────
def _duration(data: dict, key: str, default):
    if key not in data:
        return default
    try:
        return parse_duration(data[key])
    except ValueError as e:
        raise ConfigError(f"{key}: {e}") from e


def _media(data: Optional[dict]) -> Optional[MediaDetails]:
    if data is None:
        return None
    auth = data.get("authentication_data")
    try:
        return MediaDetails(
            channel_number=int(data["channel_number"]),
            device=str(data["device"]),
            mount_folder=str(data["mount_folder"]),
            authentication_data=AuthenticationData(
                username=str(auth["username"]), password=str(auth["password"]),
            ) if auth else None,
            version=data.get("version"),
        )
    except KeyError as e:
        raise ConfigError(f"media section is missing {e.args[0]}") from e


def default_config_path() -> Path:
    return Path(__file__).resolve().parent / DEFAULT_CONFIG_FILE


def load_config(path: str | Path | None = None, validate: bool = True) -> Config:
    """Parse the TOML config at *path*; raise ConfigError on any problem."""
    path = Path(path) if path else default_config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}; got error {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e

    try:
        cfg = _from_dict(data, path)
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"{path}: {e}") from e

    if validate:
        cfg.validate()
    return cfg


def _from_dict(data: dict, path: Path) -> Config:
    cfg = Config()
    cfg.stations_directory = data.get("stations_directory", cfg.stations_directory)
    cfg.input_timeout = _duration(data, "input_timeout", cfg.input_timeout)
    cfg.volume_offset = int(data.get("volume_offset", cfg.volume_offset))
    cfg.initial_volume = int(data.get("initial_volume", cfg.initial_volume))
    cfg.buffering_duration = _duration(data, "buffering_duration", None)
    cfg.goto_previous_track_time_delta = _duration(
        data, "goto_previous_track_time_delta", cfg.goto_previous_track_time_delta)
    cfg.time_initial_message_displayed_after_channel_change = _duration(
        data, "time_initial_message_displayed_after_channel_change",
        cfg.time_initial_message_displayed_after_channel_change)
    cfg.max_number_of_remote_pings = int(
        data.get("max_number_of_remote_pings", cfg.max_number_of_remote_pings))

    if "scroll" in data:
        s = data["scroll"]
        cfg.scroll = ScrollConfig(
            max_scroll=int(s.get("max_scroll", cfg.scroll.max_scroll)),
            min_scroll=int(s.get("min_scroll", cfg.scroll.min_scroll)),
            scroll_period_ms=int(s.get("scroll_period_ms", cfg.scroll.scroll_period_ms)),
        )
    if "aural_notifications" in data:
        a = data["aural_notifications"]
        cfg.aural_notifications = AuralNotifications(
            filename_startup=a.get("filename_startup"),
            filename_error=a.get("filename_error"),
            filename_sound_at_end_of_playlist=a.get("filename_sound_at_end_of_playlist"),
        )

    if "cd_channel_number" in data:
        cfg.cd_channel_number = int(data["cd_channel_number"])
    cfg.usb = _media(data.get("usb"))
    cfg.samba = _media(data.get("samba"))

    cfg.web_port = int(data.get("web_port", cfg.web_port))
    cfg.podcast_data_file = str(path.parent / data.get("podcast_data_file", cfg.podcast_data_file))
    for key in ("log_level", "log_file", "lcd_device", "cd_device"):
        if key in data:
            setattr(cfg, key, str(data[key]))
    return cfg
