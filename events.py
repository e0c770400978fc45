#!/usr/bin/env python3
"""
events.py  – central hub

• Every input (keypad thread, GStreamer bus thread, web handler threads)
  posts high-level action dicts here, tagged with its Source.
• The event loop calls `wait()`; sources are drained in fixed priority
  order keyboard → bus → web, and a ticker action is produced every
  TICK_PERIOD when nothing else is pending.
• Closing a source yields one {"type": "stream_closed"} once its backlog
  has been delivered.
"""

from __future__ import annotations

import collections
import enum
import threading
import time
from typing import Callable

import config

Action = dict      # alias for readability

STREAM_CLOSED = "stream_closed"
TICK = "tick"


class Source(enum.IntEnum):
    KEYBOARD = 0
    BUS      = 1
    WEB      = 2


class EventManager:
    def __init__(
        self,
        tick_period: float = config.TICK_PERIOD,
        web_capacity: int = config.WEB_QUEUE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queues = {s: collections.deque() for s in Source}
        self._closed: set[Source] = set()
        self._reported: set[Source] = set()
        self._cond = threading.Condition()
        self._web_capacity = web_capacity
        self._tick_period = tick_period
        self._clock = clock
        self._next_tick = clock() + tick_period

    # ── producers ──────────────────────────────────────────────────────
    def post(self, source: Source, action: Action, timeout: float | None = None) -> bool:
        """
        Any thread may call this, e.g.:
            events.post(Source.WEB, {"type": "volume_up"})
        Web posts block while the web queue is full; False on timeout.
        """
        with self._cond:
            if source is Source.WEB:
                ok = self._cond.wait_for(
                    lambda: len(self._queues[Source.WEB]) < self._web_capacity, timeout)
                if not ok:
                    return False
            self._queues[source].append(action)
            self._cond.notify_all()
        return True

    def close(self, source: Source) -> None:
        with self._cond:
            self._closed.add(source)
            self._cond.notify_all()

    # ── main-loop consumer ─────────────────────────────────────────────
    def _take(self) -> Action | None:
        for source in Source:
            q = self._queues[source]
            if q:
                act = q.popleft()
                if source is Source.WEB:
                    self._cond.notify_all()
                return act
            if source in self._closed and source not in self._reported:
                self._reported.add(source)
                return {"type": STREAM_CLOSED, "source": source}
        now = self._clock()
        if now >= self._next_tick:
            self._next_tick = now + self._tick_period
            return {"type": TICK, "now": now}
        return None

    def poll(self) -> Action | None:
        """Return the next action or None (non-blocking)."""
        with self._cond:
            return self._take()

    def wait(self, timeout: float | None = None) -> Action | None:
        """Block until an action is ready; None only if *timeout* expires."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                act = self._take()
                if act is not None:
                    return act
                delay = self._next_tick - self._clock()
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    delay = min(delay, remaining)
                self._cond.wait(max(0.0, delay))
