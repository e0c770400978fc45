# =========  audio_player.py  =========
"""
GStreamer playbin wrapper for the radio.

Public API
----------
set_uri(uri)
set_state(PipelineState)   → StateChange
query_position_ms() / query_duration_ms()   → int | None
seek_ms(ms)                → bool
set_volume(volume)         volume in VOLUME_MIN..VOLUME_MAX, 100 = 0 dB
close()

Bus messages are turned into plain action dicts and posted on the
EventManager's BUS source from the GLib main-loop thread:
    {"type": "tag", "title"|"organization"|"artist": str, ...}
    {"type": "state_changed", "state": PipelineState}
    {"type": "buffering", "percent": int}
    {"type": "eos"}
    {"type": "error", "text": str}
"""

from __future__ import annotations

import logging
import threading

import gi
gi.require_version("Gst", "1.0")
gi.require_version("GstAudio", "1.0")
from gi.repository import GLib, Gst, GstAudio

import config
from events import EventManager, Source
from player_state import PipelineState, StateChange

log = logging.getLogger(__name__)

# GstPlayFlags bits
_PLAY_FLAG_VIDEO = 1 << 0
_PLAY_FLAG_TEXT  = 1 << 2

_TO_GST = {
    PipelineState.NULL:         Gst.State.NULL,
    PipelineState.READY:        Gst.State.READY,
    PipelineState.PAUSED:       Gst.State.PAUSED,
    PipelineState.PLAYING:      Gst.State.PLAYING,
    PipelineState.VOID_PENDING: Gst.State.VOID_PENDING,
}
_FROM_GST = {v: k for k, v in _TO_GST.items()}

_RESULTS = {
    Gst.StateChangeReturn.SUCCESS:    StateChange.SUCCESS,
    Gst.StateChangeReturn.ASYNC:      StateChange.ASYNC,
    Gst.StateChangeReturn.NO_PREROLL: StateChange.NO_PREROLL,
    Gst.StateChangeReturn.FAILURE:    StateChange.FAILURE,
}

_TAG_NAMES = ("title", "organization", "artist")


def fault_text(err: GLib.Error, debug: str | None) -> str:
    """Message for the LCD; for missing files show the path the pipeline gave."""
    for text in (debug or "", err.message or ""):
        idx = text.find("No such file")
        if idx >= 0:
            return text[idx:].splitlines()[0]
    return err.message or str(err)


# ────────────────────────────────────────────────────────────────────────────
class AudioPlayer:
    def __init__(self, events: EventManager, buffering_duration: float | None = None):
        Gst.init(None)
        self.events = events

        self.playbin = Gst.ElementFactory.make("playbin", "playbin")
        if self.playbin is None:
            raise RuntimeError("GStreamer playbin element is not available")
        flags = int(self.playbin.get_property("flags"))
        self.playbin.set_property("flags", flags & ~(_PLAY_FLAG_VIDEO | _PLAY_FLAG_TEXT))
        if buffering_duration is not None:
            self.playbin.set_property("buffer-duration", int(buffering_duration * Gst.SECOND))

        # bus watch in a side loop
        self._ml = GLib.MainLoop()
        bus = self.playbin.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self._on_bus_msg)
        self._ml_thread = threading.Thread(target=self._ml.run, name="gst-bus", daemon=True)
        self._ml_thread.start()

    # ── public API ──────────────────────────────────────────────────────────
    def set_uri(self, uri: str) -> None:
        self.playbin.set_property("uri", uri)

    def set_state(self, target: PipelineState) -> StateChange:
        result = _RESULTS.get(self.playbin.set_state(_TO_GST[target]), StateChange.FAILURE)
        if result is StateChange.FAILURE:
            log.error("pipeline refused state %s", target.value)
        return result

    def query_position_ms(self) -> int | None:
        ok, pos = self.playbin.query_position(Gst.Format.TIME)
        return pos // Gst.MSECOND if ok and pos >= 0 else None

    def query_duration_ms(self) -> int | None:
        ok, dur = self.playbin.query_duration(Gst.Format.TIME)
        return dur // Gst.MSECOND if ok and dur >= 0 else None

    def seek_ms(self, ms: int) -> bool:
        return self.playbin.seek_simple(
            Gst.Format.TIME,
            Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT | Gst.SeekFlags.SNAP_NEAREST,
            max(0, int(ms)) * Gst.MSECOND,
        )

    def set_volume(self, volume: int) -> None:
        volume = max(config.VOLUME_MIN, min(config.VOLUME_MAX, volume))
        linear = GstAudio.StreamVolume.convert_volume(
            GstAudio.StreamVolumeFormat.DB,
            GstAudio.StreamVolumeFormat.LINEAR,
            float(volume - config.VOLUME_ZERO_DB),
        )
        self.playbin.set_property("volume", linear)

    def close(self) -> None:
        if self.playbin is not None and \
                self.playbin.set_state(Gst.State.NULL) == Gst.StateChangeReturn.FAILURE:
            log.error("could not set the pipeline to Null on close")
        if self._ml:
            self._ml.quit()
            self._ml = None
        if self._ml_thread and threading.current_thread() is not self._ml_thread:
            self._ml_thread.join(timeout=0.5)
        self._ml_thread = None

    def __enter__(self) -> "AudioPlayer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── internals ───────────────────────────────────────────────────────────
    def _on_bus_msg(self, bus, msg):
        t = msg.type
        if t == Gst.MessageType.TAG:
            taglist = msg.parse_tag()
            act = {"type": "tag"}
            for name in _TAG_NAMES:
                ok, value = taglist.get_string(name)
                if ok and value:
                    act[name] = value
            if len(act) > 1:
                self.events.post(Source.BUS, act)
        elif t == Gst.MessageType.STATE_CHANGED:
            if msg.src == self.playbin:
                _old, new, _pending = msg.parse_state_changed()
                self.events.post(Source.BUS, {"type": "state_changed",
                                              "state": _FROM_GST.get(new, PipelineState.VOID_PENDING)})
        elif t == Gst.MessageType.BUFFERING:
            self.events.post(Source.BUS, {"type": "buffering", "percent": msg.parse_buffering()})
        elif t == Gst.MessageType.EOS:
            self.events.post(Source.BUS, {"type": "eos"})
        elif t == Gst.MessageType.ERROR:
            err, debug = msg.parse_error()
            log.error("GStreamer error: %s (%s)", err.message, debug)
            self.events.post(Source.BUS, {"type": "error", "text": fault_text(err, debug)})
        return True
