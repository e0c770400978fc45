"""Shared fakes for the radio tests; nothing here touches GStreamer or the LCD."""

import pytest

from config import Config, MediaDetails
from player_state import PingData, StateChange


class FakePlayer:
    """Records what the event loop asks of the pipeline."""

    def __init__(self):
        self.calls = []
        self.uri = None
        self.position = None
        self.duration = None
        self.seeks = []
        self.volume = None
        self.fail_play = False
        self.closed = False

    def set_uri(self, uri):
        self.uri = uri
        self.calls.append(("uri", uri))

    def set_state(self, target):
        self.calls.append(("state", target))
        if self.fail_play and target.value == "Playing":
            return StateChange.FAILURE
        return StateChange.ASYNC

    def query_position_ms(self):
        return self.position

    def query_duration_ms(self):
        return self.duration

    def seek_ms(self, ms):
        self.seeks.append(ms)
        return True

    def set_volume(self, volume):
        self.volume = volume

    def close(self):
        self.closed = True


class FakeLcd:
    def __init__(self):
        self.frames = []

    def write_buffer(self, buf):
        self.frames.append(buf)


class FakePing:
    def __init__(self):
        self.targets = []
        self.data = PingData()

    def reset(self, target):
        self.targets.append(target)
        self.data = PingData()
        return self.data

    def tick(self, gateway, allowed):
        return self.data


class FakeHealth:
    def refresh(self, snap, now, force=False):
        return False


class FakeMountCalls:
    """mount/umount stand-ins for MountManager."""

    def __init__(self):
        self.log = []
        self.mount_error = None
        self.umount_error = None

    def mount(self, source, target, fs_type, flags, data):
        self.log.append(("mount", source, target, fs_type, data))
        if self.mount_error is not None:
            raise self.mount_error

    def umount(self, target, flags):
        self.log.append(("umount", target))
        if self.umount_error is not None:
            raise self.umount_error


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def fake_mounts():
    return FakeMountCalls()


@pytest.fixture
def stations_dir(tmp_path):
    d = tmp_path / "stations"
    d.mkdir()
    return d


@pytest.fixture
def usb_tree(tmp_path):
    """A stick with one album of three tracks and one cover image."""
    album = tmp_path / "usb" / "Artist" / "Album"
    album.mkdir(parents=True)
    for name in ("02 b.mp3", "1 a.mp3", "10 c.flac", "cover.jpg"):
        (album / name).write_bytes(b"")
    return tmp_path / "usb"


@pytest.fixture
def cfg(tmp_path, stations_dir, usb_tree):
    share = tmp_path / "share"
    share.mkdir()
    return Config(
        stations_directory=str(stations_dir),
        cd_channel_number=0,
        usb=MediaDetails(channel_number=50, device="/dev/sda1", mount_folder=str(usb_tree)),
        samba=MediaDetails(channel_number=60, device="//nas/music", mount_folder=str(share)),
        podcast_data_file=str(tmp_path / "podcasts.toml"),
    )
