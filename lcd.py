"""
lcd.py  – 20×4 character LCD: text encoding, scroll lines, cell buffer, device.

Public API
----------
encode(text)                 → bytes in the LCD's code page
ScrollLine(num_lines)        .update_if_changed(text, now) / .tick(now, cells, scroll)
TextBuffer()                 80-cell buffer written by overlays.py
frame_bytes(buffer)          → escape-coded byte stream for one refresh
LcdDevice.open(path)         .write_buffer(buffer) / .show_message(text) / .close()
"""

from __future__ import annotations

import errno
import logging
import os
import time

import psutil
from unidecode import unidecode

import config
from config import LCD_CELLS, LCD_LINES, LCD_WIDTH
from errors import LcdError

log = logging.getLogger(__name__)

ESC = b"\x1b"
INIT_SEQUENCE = ESC + b"[LI" + ESC + b"[Lb" + ESC + b"[Lc"

# ── custom glyphs ──────────────────────────────────────────────────────────
# 0..4 are the buffer-bar columns, 5..7 accented letters the ROM lacks.
GLYPHS: list[list[int]] = [
    [0x10] * 7 + [0x1F],
    [0x08] * 7 + [0x1F],
    [0x04] * 7 + [0x1F],
    [0x02] * 7 + [0x1F],
    [0x01] * 7 + [0x1F],
    [0x02, 0x04, 0x0E, 0x11, 0x1F, 0x10, 0x0E, 0x00],   # é
    [0x08, 0x04, 0x0E, 0x11, 0x1F, 0x10, 0x0E, 0x00],   # è
    [0x08, 0x04, 0x0E, 0x01, 0x0F, 0x11, 0x0F, 0x00],   # à
]

_SPECIAL: dict[str, int] = {
    "é": 0x05, "è": 0x06, "à": 0x07,
    "ä": 0xE1, "ñ": 0xEE, "ö": 0xEF, "ü": 0xF5,
    "π": 0xE4, "µ": 0xF7, "~": 0xF3, "\x80": 0xFF,
    "\n": 0xCD, "\r": 0xCF,
}
_GLYPH_INDICES = range(len(GLYPHS))


# ── encoding ───────────────────────────────────────────────────────────────
def _printable(ch: str) -> bool:
    return " " <= ch < "~"


def encode(text: str) -> bytes:
    """Map *text* onto the LCD code page; unknown characters are transliterated."""
    out = bytearray()
    for ch in text:
        if _printable(ch) or ord(ch) in _GLYPH_INDICES:
            out.append(ord(ch))
        elif ch in _SPECIAL:
            out.append(_SPECIAL[ch])
        else:
            for sub in unidecode(ch):
                if _printable(sub):
                    out.append(ord(sub))
                elif sub == "~":
                    out.append(_SPECIAL["~"])
    return bytes(out)


# ── scroll line ────────────────────────────────────────────────────────────
class ScrollLine:
    """Encoded text bound to 1, 2 or 4 display lines, scrolled word-wise."""

    def __init__(self, num_lines: int = 1, text: str = ""):
        self.num_lines = num_lines
        self.text = ""
        self.data = b""
        self.offset = 0
        self.last_scroll = 0.0
        if text:
            self.update_if_changed(text)

    def update_if_changed(self, text: str, now: float | None = None) -> bool:
        data = encode(text)
        if data == self.data:
            return False
        self.text, self.data = text, data
        self.offset = 0
        self.last_scroll = time.monotonic() if now is None else now
        return True

    def clear(self) -> None:
        self.update_if_changed("")

    def tick(self, now: float, visible_cells: int, scroll: config.ScrollConfig) -> bool:
        """Advance the scroll offset once it is due; True when it moved."""
        if len(self.data) <= visible_cells:
            return False
        if (now - self.last_scroll) * 1000 < scroll.scroll_period_ms:
            return False

        step = scroll.min_scroll
        for i in range(scroll.min_scroll, scroll.max_scroll + 1):
            j = self.offset + i
            if j >= len(self.data):
                break
            if self.data[j] == 0x20:
                step = i
                break

        self.offset += step
        if len(self.data) - self.offset < config.MIN_SCROLL_TAIL:
            self.offset = 0
        self.last_scroll = now
        return True

    def visible(self) -> bytes:
        return self.data[self.offset:]

    def __len__(self) -> int:
        return len(self.data)


# ── 80-cell buffer ─────────────────────────────────────────────────────────
class TextBuffer:
    def __init__(self):
        self.cells = bytearray(b" " * LCD_CELLS)

    def clear(self) -> None:
        self.cells[:] = b" " * LCD_CELLS

    def write(self, line: int, col: int, data: bytes, max_cells: int | None = None) -> None:
        """Write *data* starting at (line, col), clipped to *max_cells* and the screen."""
        start = line * LCD_WIDTH + col
        limit = LCD_CELLS - start
        if max_cells is not None:
            limit = min(limit, max_cells)
        chunk = data[:max(0, limit)]
        self.cells[start:start + len(chunk)] = chunk

    def write_text(self, line: int, col: int, text: str, max_cells: int | None = None) -> None:
        self.write(line, col, encode(text), max_cells)

    def write_lines(self, first_line: int, num_lines: int, data: bytes) -> None:
        self.write(first_line, 0, data, num_lines * LCD_WIDTH)

    def write_right(self, line: int, text: str, width: int) -> None:
        """Right-align *text* in the last *width* cells of *line*."""
        data = encode(text)[-width:].rjust(width, b" ")
        self.write(line, LCD_WIDTH - width, data, width)

    def line(self, n: int) -> bytes:
        return bytes(self.cells[n * LCD_WIDTH:(n + 1) * LCD_WIDTH])

    def __len__(self) -> int:
        return len(self.cells)


def frame_bytes(buffer: TextBuffer) -> bytes:
    out = bytearray()
    for n in range(LCD_LINES):
        out += ESC + f"[Lx0y{n};".encode("ascii") + buffer.line(n)
    return bytes(out)


def glyph_bytes() -> bytes:
    out = bytearray()
    for n, rows in enumerate(GLYPHS):
        out += ESC + f"[LG{n:x}{''.join(f'{r:02x}' for r in rows)};".encode("ascii")
    return bytes(out)


# ── device ─────────────────────────────────────────────────────────────────
def _terminate_stale_instances() -> None:
    """Stop an older copy of this program that still holds the LCD."""
    me = os.getpid()
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmd = " ".join(proc.info.get("cmdline") or [])
        if proc.info["pid"] != me and config.APP_NAME in cmd:
            log.warning("terminating stale instance pid=%s", proc.info["pid"])
            try:
                proc.terminate()
                proc.wait(timeout=3)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.TimeoutExpired) as e:
                log.warning("could not stop pid=%s: %s", proc.info["pid"], e)


class LcdDevice:
    def __init__(self, fd: int):
        self._fd = fd

    @classmethod
    def open(cls, path: str = "/dev/lcd") -> "LcdDevice":
        try:
            fd = os.open(path, os.O_WRONLY)
        except OSError as e:
            if e.errno != errno.EBUSY:
                raise LcdError(f"Could not open {path}: {e}") from e
            _terminate_stale_instances()
            try:
                fd = os.open(path, os.O_WRONLY)
            except OSError as e2:
                raise LcdError(f"Could not open {path}: {e2}") from e2
        dev = cls(fd)
        dev._write(INIT_SEQUENCE + glyph_bytes())
        return dev

    def _write(self, data: bytes) -> None:
        try:
            os.write(self._fd, data)
        except OSError as e:
            raise LcdError(f"LCD write failed: {e}") from e

    def write_buffer(self, buffer: TextBuffer) -> None:
        self._write(frame_bytes(buffer))

    def show_message(self, text: str) -> None:
        """Fill all four lines with *text*; used for fatal startup errors."""
        buf = TextBuffer()
        buf.write_lines(0, LCD_LINES, encode(text))
        self.write_buffer(buf)

    def close(self) -> None:
        if self._fd >= 0:
            os.close(self._fd)
            self._fd = -1
