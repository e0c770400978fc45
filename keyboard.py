"""
keyboard.py – USB numeric keypad → actions on the KEYBOARD source.

The keypad is read from stdin in cbreak mode by a daemon thread. Two digits
typed within `input_timeout` of each other select a channel; a digit that
arrives later starts a new pair.
"""

from __future__ import annotations

import logging
import os
import select
import sys
import termios
import threading
import time
import tty
from typing import Callable, Optional

from events import Action, EventManager, Source

log = logging.getLogger(__name__)

CLOSE = object()       # returned by the decoder for q / Q / Backspace

_KEY_ACTIONS = {
    "\n":   {"type": "play_pause"},
    "\r":   {"type": "play_pause"},
    ".":    {"type": "eject"},
    "*":    {"type": "volume_up"},
    "/":    {"type": "volume_down"},
    "-":    {"type": "previous_track"},
    "+":    {"type": "next_track"},
    "!":    {"type": "debug_status"},
    "^":    {"type": "debug_newline"},
    "$":    {"type": "debug_mounts"},
    "£":    {"type": "debug_config"},
}
_CLOSE_KEYS = ("q", "Q", "\x7f", "\x08")


class KeypadDecoder:
    def __init__(self, input_timeout: float, clock: Callable[[], float] = time.monotonic):
        self.input_timeout = input_timeout
        self._clock = clock
        self._first_digit: Optional[int] = None
        self._first_at = 0.0

    def feed(self, ch: str) -> Action | object | None:
        if ch in _CLOSE_KEYS:
            return CLOSE
        if ch.isdigit() and len(ch) == 1 and ch.isascii():
            now = self._clock()
            if self._first_digit is not None and now - self._first_at <= self.input_timeout:
                n = self._first_digit * 10 + int(ch)
                self._first_digit = None
                return {"type": "play_station", "channel": n}
            self._first_digit, self._first_at = int(ch), now
            return None
        act = _KEY_ACTIONS.get(ch)
        if act is None:
            log.debug("ignoring key %r", ch)
            return None
        return dict(act)


def _read_loop(events: EventManager, decoder: KeypadDecoder, fd: int) -> None:
    pending = b""
    while True:
        readable, _, _ = select.select([fd], [], [], 0.5)
        if not readable:
            continue
        chunk = os.read(fd, 32)
        if not chunk:
            break
        pending += chunk
        try:
            text, pending = pending.decode("utf-8"), b""
        except UnicodeDecodeError:
            continue                     # partial multi-byte key
        for ch in text:
            act = decoder.feed(ch)
            if act is CLOSE:
                events.close(Source.KEYBOARD)
                return
            if act:
                events.post(Source.KEYBOARD, act)
    events.close(Source.KEYBOARD)


def start(events: EventManager, input_timeout: float, stream=None) -> threading.Thread:
    """Start the keypad reader; the terminal is restored when it ends."""
    stream = stream or sys.stdin
    fd = stream.fileno()
    decoder = KeypadDecoder(input_timeout)

    def _run():
        old_settings = termios.tcgetattr(fd) if os.isatty(fd) else None
        try:
            if old_settings is not None:
                tty.setcbreak(fd)
            _read_loop(events, decoder, fd)
        except OSError as e:
            log.error("keypad read failed: %s", e)
            events.close(Source.KEYBOARD)
        finally:
            if old_settings is not None:
                termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    t = threading.Thread(target=_run, name="keypad", daemon=True)
    t.start()
    return t
