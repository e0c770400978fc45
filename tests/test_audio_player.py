"""Tests for the GStreamer wrapper; skipped where PyGObject or Gst are missing."""

from types import SimpleNamespace

import pytest

gi = pytest.importorskip("gi")
try:
    gi.require_version("Gst", "1.0")
    gi.require_version("GstAudio", "1.0")
except ValueError:
    pytest.skip("GStreamer introspection data not installed", allow_module_level=True)

from audio_player import fault_text  # noqa: E402


class TestFaultText:
    def test_missing_file_line_from_debug(self):
        err = SimpleNamespace(message="Resource not found.")
        debug = "gstfilesrc.c(532): No such file \"/music/a.mp3\"\nmore detail"
        assert fault_text(err, debug) == 'No such file "/music/a.mp3"'

    def test_plain_message(self):
        err = SimpleNamespace(message="Internal data stream error.")
        assert fault_text(err, None) == "Internal data stream error."
