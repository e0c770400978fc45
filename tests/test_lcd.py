"""Tests for LCD encoding, scrolling and the cell buffer."""

from config import ScrollConfig
from lcd import ScrollLine, TextBuffer, encode, frame_bytes, glyph_bytes


class TestEncode:
    def test_ascii_passes_through(self):
        assert encode("Radio 4") == b"Radio 4"

    def test_accents_use_custom_glyphs(self):
        assert encode("é") == b"\x05"
        assert encode("è") == b"\x06"
        assert encode("à") == b"\x07"

    def test_rom_characters(self):
        assert encode("ü") == b"\xf5"
        assert encode("ñ") == b"\xee"

    def test_tilde_is_remapped(self):
        """The ROM has no ASCII tilde."""
        assert encode("~") == b"\xf3"

    def test_unknown_characters_are_transliterated(self):
        assert encode("Łódź") == b"Lodz"

    def test_glyph_indices_pass_through(self):
        assert encode("\x00\x04") == b"\x00\x04"


class TestScrollLine:
    scroll = ScrollConfig(max_scroll=14, min_scroll=6, scroll_period_ms=1600)
    text = "aaaaaaa " + "b" * 30

    def test_short_text_never_scrolls(self):
        line = ScrollLine(1)
        line.update_if_changed("short", now=0.0)
        assert not line.tick(10.0, 20, self.scroll)
        assert line.visible() == b"short"

    def test_waits_for_scroll_period(self):
        line = ScrollLine(1)
        line.update_if_changed(self.text, now=0.0)
        assert not line.tick(1.0, 20, self.scroll)
        assert line.offset == 0

    def test_scrolls_to_a_space(self):
        line = ScrollLine(1)
        line.update_if_changed(self.text, now=0.0)
        assert line.tick(2.0, 20, self.scroll)
        assert line.offset == 7
        assert line.visible().startswith(b" bbbb")

    def test_step_never_exceeds_max_scroll(self):
        line = ScrollLine(1)
        line.update_if_changed("a" * 14 + " " + "b" * 30, now=0.0)
        line.tick(2.0, 20, self.scroll)
        assert self.scroll.min_scroll <= line.offset <= self.scroll.max_scroll
        assert line.offset == 14

    def test_min_scroll_without_space(self):
        line = ScrollLine(1)
        line.update_if_changed(self.text, now=0.0)
        line.tick(2.0, 20, self.scroll)
        line.tick(4.0, 20, self.scroll)
        assert line.offset == 13

    def test_wraps_when_tail_is_short(self):
        line = ScrollLine(1)
        line.update_if_changed(self.text, now=0.0)
        offsets = []
        for k in range(1, 6):
            line.tick(2.0 * k, 20, self.scroll)
            offsets.append(line.offset)
        assert offsets == [7, 13, 19, 25, 0]

    def test_update_with_same_text_keeps_offset(self):
        line = ScrollLine(1)
        line.update_if_changed(self.text, now=0.0)
        line.tick(2.0, 20, self.scroll)
        assert not line.update_if_changed(self.text, now=3.0)
        assert line.offset == 7

    def test_clear(self):
        line = ScrollLine(2, "something")
        line.clear()
        assert len(line) == 0


class TestTextBuffer:
    def test_starts_blank(self):
        buf = TextBuffer()
        assert len(buf) == 80
        assert buf.line(3) == b" " * 20

    def test_write_is_clipped(self):
        buf = TextBuffer()
        buf.write(0, 0, b"x" * 30, 13)
        assert buf.line(0) == b"x" * 13 + b" " * 7

    def test_write_runs_onto_next_line(self):
        buf = TextBuffer()
        buf.write(2, 0, b"y" * 25)
        assert buf.line(2) == b"y" * 20
        assert buf.line(3).startswith(b"yyyyy ")

    def test_write_right(self):
        buf = TextBuffer()
        buf.write_right(0, "Vol 70", 7)
        assert buf.line(0).endswith(b" Vol 70")

    def test_frame_bytes(self):
        buf = TextBuffer()
        frame = frame_bytes(buf)
        assert frame.startswith(b"\x1b[Lx0y0;")
        assert b"\x1b[Lx0y3;" in frame
        assert len(frame) == 4 * (8 + 20)

    def test_glyph_bytes_define_eight_glyphs(self):
        assert glyph_bytes().count(b"\x1b[LG") == 8
