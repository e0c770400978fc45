"""
errors.py  – exception types shared by the resolver, mount manager and player.

Every ChannelError knows how to render itself as a single LCD message.
"""

from __future__ import annotations


class ConfigError(Exception):
    """Global config file missing, unparseable or inconsistent."""


class LcdError(Exception):
    """The character LCD could not be opened or written."""


class PlaybackError(Exception):
    """The media pipeline refused a request."""


# ── channel errors ─────────────────────────────────────────────────────────
class ChannelError(Exception):
    def lcd_message(self) -> str:
        return Exception.__str__(self)

    def __str__(self) -> str:
        return self.lcd_message()


class NotFound(ChannelError):
    def lcd_message(self) -> str:
        return "Channel not found"


class FolderReadError(ChannelError):
    def __init__(self, path: str, msg: str):
        super().__init__(path, msg)
        self.path, self.msg = path, msg

    def lcd_message(self) -> str:
        return f"Could not read channels folder {self.path}; got error {self.msg}"


class EntryReadError(ChannelError):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def lcd_message(self) -> str:
        return f"Error reading channel folder entry {self.msg}"


class FileReadError(ChannelError):
    def __init__(self, path: str, msg: str):
        super().__init__(path, msg)
        self.path, self.msg = path, msg

    def lcd_message(self) -> str:
        return f"Could not read channel file {self.path}; got error {self.msg}"


class ParseError(ChannelError):
    def __init__(self, channel: int, msg: str):
        super().__init__(channel, msg)
        self.channel, self.msg = channel, msg

    def lcd_message(self) -> str:
        return f"{self.channel}, {self.msg}"

    def first_line(self) -> str:
        """The TOML error collapsed onto one scrollable line."""
        text = self.lcd_message()
        for ch in "\r\n|^":
            text = text.replace(ch, " ")
        return " ".join(text.split())


class AlbumNotFound(ChannelError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def lcd_message(self) -> str:
        return f"Could not find album {self.name}"


class NoUsbConfigured(ChannelError):
    def lcd_message(self) -> str:
        return "No USB device but one was requested"


class NoDevice(ChannelError):
    def lcd_message(self) -> str:
        return "No USB device found"


class NoSuchDeviceOrAddress(ChannelError):
    def __init__(self, device: str):
        super().__init__(device)
        self.device = device

    def lcd_message(self) -> str:
        return f"No such device or address {self.device}"


class MountFailed(ChannelError):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def lcd_message(self) -> str:
        return f"When trying to mount a USB device got error {self.msg}"


class UnmountFailed(ChannelError):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def lcd_message(self) -> str:
        return f"Failed to unmount {self.msg}"


class UsbReadError(ChannelError):
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def lcd_message(self) -> str:
        return f"When trying to read USB memory stick got error {self.msg}"


class CdOpenFailed(ChannelError):
    def __init__(self, errno: int | None):
        super().__init__(errno)
        self.errno = errno

    def lcd_message(self) -> str:
        if self.errno == 2:
            return "No CD drive"
        if self.errno == 123:
            return "No CD in drive"
        return f"CD Open error {self.errno}"


class CdStatusFailed(ChannelError):
    _MESSAGES = {
        0: "No info on CD in drive",
        1: "no CD in drive.",
        2: "CD drive tray open",
        3: "CD drive not ready",
    }

    def __init__(self, code: int):
        super().__init__(code)
        self.code = code

    def lcd_message(self) -> str:
        if self.code in self._MESSAGES:
            return self._MESSAGES[self.code]
        if 101 <= self.code <= 104:
            return "Data CD no audio"
        return f"unexpected CD error {self.code}"


class CdTocFailed(ChannelError):
    def __init__(self, code: int):
        super().__init__(code)
        self.code = code

    def lcd_message(self) -> str:
        return f"When getting number of CD tracks, got error {self.code}"


class EmptyTrackList(ChannelError):
    def lcd_message(self) -> str:
        return "No tracks found"


class NoFilesFound(ChannelError):
    def lcd_message(self) -> str:
        return "No audio files found"
