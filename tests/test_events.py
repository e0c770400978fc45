"""Tests for the event hub and the keypad decoder."""

import threading

from events import STREAM_CLOSED, TICK, EventManager, Source
from keyboard import CLOSE, KeypadDecoder


class Clock:
    def __init__(self, t=0.0):
        self.t = t

    def __call__(self):
        return self.t


class TestEventManager:
    def test_priority_order(self):
        em = EventManager(clock=Clock())
        em.post(Source.WEB, {"type": "volume_up"})
        em.post(Source.BUS, {"type": "eos"})
        em.post(Source.KEYBOARD, {"type": "next_track"})
        assert [em.poll()["type"] for _ in range(3)] == ["next_track", "eos", "volume_up"]
        assert em.poll() is None

    def test_fifo_within_a_source(self):
        em = EventManager(clock=Clock())
        for n in (1, 2, 3):
            em.post(Source.KEYBOARD, {"type": "play_station", "channel": n})
        assert [em.poll()["channel"] for _ in range(3)] == [1, 2, 3]

    def test_close_after_backlog(self):
        em = EventManager(clock=Clock())
        em.post(Source.KEYBOARD, {"type": "volume_up"})
        em.close(Source.KEYBOARD)
        assert em.poll()["type"] == "volume_up"
        closed = em.poll()
        assert closed == {"type": STREAM_CLOSED, "source": Source.KEYBOARD}
        assert em.poll() is None

    def test_tick(self):
        clock = Clock()
        em = EventManager(tick_period=0.3, clock=clock)
        assert em.poll() is None
        clock.t = 0.31
        act = em.poll()
        assert act["type"] == TICK
        assert act["now"] == 0.31
        assert em.poll() is None

    def test_events_beat_the_ticker(self):
        clock = Clock()
        em = EventManager(tick_period=0.3, clock=clock)
        clock.t = 1.0
        em.post(Source.BUS, {"type": "eos"})
        assert em.poll()["type"] == "eos"
        assert em.poll()["type"] == TICK

    def test_full_web_queue_times_out(self):
        em = EventManager(web_capacity=1, clock=Clock())
        assert em.post(Source.WEB, {"type": "volume_up"})
        assert not em.post(Source.WEB, {"type": "volume_up"}, timeout=0.01)

    def test_wait_wakes_on_post(self):
        em = EventManager(tick_period=60)
        t = threading.Timer(0.05, em.post, args=(Source.BUS, {"type": "eos"}))
        t.start()
        assert em.wait(timeout=5)["type"] == "eos"
        t.join()

    def test_wait_timeout(self):
        em = EventManager(tick_period=60)
        assert em.wait(timeout=0.01) is None


class TestKeypadDecoder:
    def test_two_digits_select_a_channel(self):
        dec = KeypadDecoder(3.0, Clock())
        assert dec.feed("0") is None
        assert dec.feed("5") == {"type": "play_station", "channel": 5}

    def test_slow_second_digit_starts_again(self):
        clock = Clock()
        dec = KeypadDecoder(3.0, clock)
        dec.feed("1")
        clock.t = 5.0
        assert dec.feed("2") is None
        clock.t = 6.0
        assert dec.feed("3") == {"type": "play_station", "channel": 23}

    def test_command_keys(self):
        dec = KeypadDecoder(3.0, Clock())
        assert dec.feed("*") == {"type": "volume_up"}
        assert dec.feed("/") == {"type": "volume_down"}
        assert dec.feed("\n") == {"type": "play_pause"}
        assert dec.feed(".") == {"type": "eject"}
        assert dec.feed("£") == {"type": "debug_config"}

    def test_close_keys(self):
        dec = KeypadDecoder(3.0, Clock())
        assert dec.feed("q") is CLOSE
        assert dec.feed("\x7f") is CLOSE

    def test_unknown_key(self):
        assert KeypadDecoder(3.0, Clock()).feed("z") is None
