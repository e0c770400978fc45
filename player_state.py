"""
player_state.py – the data the event loop owns.

Only app.RadioApp mutates a PlayerState; everything else receives it to read.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

import config
from lcd import ScrollLine

if TYPE_CHECKING:
    from mount_manager import MediaBinding


class SourceKind(enum.Enum):
    URL_LIST    = "UrlList"
    CD          = "Cd"
    LOCAL_USB   = "LocalUsb"
    REMOTE_CIFS = "RemoteCifs"
    UNKNOWN     = "Unknown"

    @property
    def seekable(self) -> bool:
        return self in (SourceKind.CD, SourceKind.LOCAL_USB, SourceKind.REMOTE_CIFS)


class RunStatus(enum.Enum):
    STARTING_UP          = "StartingUp"
    RUNNING_NORMALLY     = "RunningNormally"
    NO_CHANNEL           = "NoChannel"
    NO_CHANNEL_REPEATED  = "NoChannelRepeated"
    LONG_MESSAGE         = "LongMessageOnAll4Lines"
    SHUTTING_DOWN        = "ShuttingDown"

    @property
    def is_error(self) -> bool:
        return self in (RunStatus.NO_CHANNEL, RunStatus.NO_CHANNEL_REPEATED,
                        RunStatus.LONG_MESSAGE)


class PipelineState(enum.Enum):
    NULL         = "Null"
    READY        = "Ready"
    PAUSED       = "Paused"
    PLAYING      = "Playing"
    VOID_PENDING = "VoidPending"


class StateChange(enum.Enum):
    SUCCESS    = "success"
    ASYNC      = "async"
    NO_PREROLL = "no_preroll"
    FAILURE    = "failure"


# ── channels ───────────────────────────────────────────────────────────────
@dataclass
class ChannelRecord:
    organisation: str = ""
    source: SourceKind = SourceKind.UNKNOWN
    tracks: List[str] = field(default_factory=list)
    last_track_is_ding: bool = False
    pause_before_play_ms: Optional[int] = None
    media: Optional["MediaBinding"] = None

    @property
    def real_track_count(self) -> int:
        return len(self.tracks) - (1 if self.last_track_is_ding else 0)


@dataclass
class ChannelRuntime:
    record: ChannelRecord = field(default_factory=ChannelRecord)
    cursor: int = 0
    position_ms: int = 0
    duration_ms: Optional[int] = None
    artist: str = ""
    ping_target: str = ""

    @property
    def tracks(self) -> List[str]:
        return self.record.tracks

    def install(self, record: ChannelRecord) -> None:
        """Adopt a freshly resolved record, keeping cursor/position if the list is unchanged."""
        if record.tracks != self.record.tracks:
            self.cursor = 0
            self.position_ms = 0
            self.duration_ms = None
        self.record = record
        self.artist = ""
        if self.tracks and not 0 <= self.cursor < len(self.tracks):
            self.cursor = 0

    def current_uri(self) -> str:
        return self.tracks[self.cursor]


# ── telemetry snapshots ────────────────────────────────────────────────────
@dataclass
class NetworkData:
    is_valid: bool = False
    ssid: str = ""
    local_ip_address: str = ""
    gateway_ip_address: str = ""


class PingOutcome(enum.Enum):
    NOT_SENT          = "PingNotSent"
    SENT              = "PingSent"
    RESPONSE_RECEIVED = "PingResponseReceived"
    TIMED_OUT         = "TimedOut"


class PingDestination(enum.Enum):
    LOCAL   = "local"
    REMOTE  = "remote"
    NOTHING = "nothing"


@dataclass
class PingData:
    outcome: PingOutcome = PingOutcome.NOT_SENT
    time_ms: Optional[float] = None
    destination: PingDestination = PingDestination.NOTHING
    pings_sent: int = 0
    remote_pings: int = 0

    def text(self, short: bool = False) -> str:
        if self.destination is PingDestination.LOCAL:
            dest = "LocPing" if short else "Local ping "
        elif self.destination is PingDestination.REMOTE:
            dest = "RemPing" if short else "Remote Ping "
        else:
            return "No ping yet"
        if self.outcome is PingOutcome.RESPONSE_RECEIVED and self.time_ms is not None:
            fmt = ".1f" if self.time_ms < 100 else ".0f"
            return f"{dest}{self.time_ms:{fmt}}ms"
        if self.outcome is PingOutcome.TIMED_OUT:
            return f"{dest}NoReply"
        return f"{dest}sent"


@dataclass
class TelemetrySnapshot:
    cpu_temperature: int = 0
    wifi_strength: str = ""
    throttled: str = ""


@dataclass
class Podcast:
    title: str
    url: str


# ── the singleton ──────────────────────────────────────────────────────────
@dataclass
class PlayerState:
    current_channel: int = config.DING_CHANNEL
    previous_channel: int = config.DING_CHANNEL
    volume: int = 70
    pipeline_state: PipelineState = PipelineState.NULL
    buffering_percent: int = 0
    running_status: RunStatus = RunStatus.STARTING_UP
    channels: List[ChannelRuntime] = field(
        default_factory=lambda: [ChannelRuntime() for _ in range(config.NUM_CHANNELS)])
    line1: ScrollLine = field(default_factory=lambda: ScrollLine(1))
    line2: ScrollLine = field(default_factory=lambda: ScrollLine(1))
    line34: ScrollLine = field(default_factory=lambda: ScrollLine(2))
    all4: ScrollLine = field(default_factory=lambda: ScrollLine(4))
    toml_error: Optional[str] = None
    channel_changed_at: float = 0.0
    network: NetworkData = field(default_factory=NetworkData)
    ping: PingData = field(default_factory=PingData)
    telemetry: TelemetrySnapshot = field(default_factory=TelemetrySnapshot)
    podcast_subs: List[Podcast] = field(default_factory=list)
    podcast_index: int = -1

    def effective_channel(self) -> int:
        """The ding slot stands in for the user channel while an error is shown."""
        if self.running_status.is_error:
            return config.DING_CHANNEL
        return self.current_channel

    def runtime(self, n: int | None = None) -> ChannelRuntime:
        return self.channels[self.current_channel if n is None else n]

    def reset_lines(self) -> None:
        for line in (self.line1, self.line2, self.line34, self.all4):
            line.clear()

    def report(self) -> str:
        rt = self.runtime()
        rec = rt.record
        return "\n".join([
            f"running_status      {self.running_status.value}",
            f"current_channel     {self.current_channel}",
            f"previous_channel    {self.previous_channel}",
            f"pipeline_state      {self.pipeline_state.value}",
            f"volume              {self.volume}",
            f"buffering_percent   {self.buffering_percent}",
            f"organisation        {rec.organisation}",
            f"source              {rec.source.value}",
            f"tracks              {len(rec.tracks)} (ding={rec.last_track_is_ding})",
            f"cursor              {rt.cursor}",
            f"position_ms         {rt.position_ms}",
            f"duration_ms         {rt.duration_ms}",
            f"artist              {rt.artist}",
            f"ping_target         {rt.ping_target}",
            f"line1               {self.line1.text}",
            f"line2               {self.line2.text}",
            f"line34              {self.line34.text}",
            f"toml_error          {self.toml_error or ''}",
            f"network             {self.network}",
            f"ping                {self.ping.text()}",
            f"podcasts            {len(self.podcast_subs)} (index {self.podcast_index})",
        ])
