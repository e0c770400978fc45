"""Tests for album discovery and channel resolution."""

import random

import pytest

import playlist_builder
from channel_manager import ChannelManager
from channel_resolver import ChannelResolver
from errors import (AlbumNotFound, EmptyTrackList, NoFilesFound, NotFound, NoUsbConfigured,
                    ParseError)
from mount_manager import MountManager
from player_state import SourceKind


def _resolver(cfg, fake_mounts, toc=(1, 3)):
    mounts = MountManager(cfg.usb, cfg.samba, fake_mounts.mount, fake_mounts.umount)
    catalog = ChannelManager(cfg.stations_directory)
    return ChannelResolver(cfg, catalog, mounts, rng=random.Random(1),
                           read_toc=lambda device: toc)


class TestPlaylistBuilder:
    def test_find_albums(self, usb_tree):
        (usb_tree / "Empty Artist" / "No Audio").mkdir(parents=True)
        assert playlist_builder.find_albums(str(usb_tree)) == ["Artist/Album"]

    def test_tracks_in_natural_order(self, usb_tree):
        tracks = playlist_builder.album_tracks(str(usb_tree), "Artist/Album")
        assert [t.rsplit("/", 1)[1] for t in tracks] == ["1%20a.mp3", "02%20b.mp3", "10%20c.flac"]
        assert all(t.startswith("file:///") for t in tracks)

    def test_unknown_album(self, usb_tree):
        with pytest.raises(AlbumNotFound):
            playlist_builder.album_tracks(str(usb_tree), "Nobody/Nothing")

    def test_album_without_audio(self, usb_tree):
        (usb_tree / "Artist" / "Art").mkdir()
        (usb_tree / "Artist" / "Art" / "front.png").write_bytes(b"")
        with pytest.raises(EmptyTrackList):
            playlist_builder.album_tracks(str(usb_tree), "Artist/Art")

    def test_random_album_on_empty_stick(self, tmp_path):
        with pytest.raises(NoFilesFound):
            playlist_builder.pick_random_album(str(tmp_path))


class TestResolveCd:
    def test_cd_tracks(self, cfg, fake_mounts):
        rec = _resolver(cfg, fake_mounts).resolve(0)
        assert rec.source is SourceKind.CD
        assert rec.organisation == "CD"
        assert rec.tracks == ["cdda://1", "cdda://2", "cdda://3"]
        assert rec.real_track_count == 3

    def test_empty_toc(self, cfg, fake_mounts):
        with pytest.raises(EmptyTrackList):
            _resolver(cfg, fake_mounts, toc=(0, 0)).resolve(0)

    def test_end_of_playlist_ding(self, cfg, fake_mounts, tmp_path):
        ding = tmp_path / "end.wav"
        ding.write_bytes(b"")
        cfg.aural_notifications.filename_sound_at_end_of_playlist = str(ding)
        rec = _resolver(cfg, fake_mounts).resolve(0)
        assert rec.last_track_is_ding
        assert rec.tracks[-1].endswith("end.wav")
        assert rec.real_track_count == 3


class TestResolveMedia:
    def test_usb_channel_mounts_and_picks_album(self, cfg, fake_mounts):
        r = _resolver(cfg, fake_mounts)
        rec = r.resolve(50)
        assert r.mounts.usb.is_mounted
        assert rec.source is SourceKind.LOCAL_USB
        assert rec.organisation == "Artist/Album"
        assert len(rec.tracks) == 3
        assert rec.media is r.mounts.usb

    def test_samba_channel(self, cfg, fake_mounts, tmp_path):
        album = tmp_path / "share" / "Band" / "Live"
        album.mkdir(parents=True)
        (album / "01.ogg").write_bytes(b"")
        rec = _resolver(cfg, fake_mounts).resolve(60)
        assert rec.source is SourceKind.REMOTE_CIFS
        assert rec.tracks[0].endswith("01.ogg")


class TestResolveFile:
    def test_url_list(self, cfg, fake_mounts, stations_dir):
        (stations_dir / "04 radio.toml").write_text(
            'organisation = "Example FM"\nstation_url = ["http://example/x"]\n'
            "pause_before_playing_ms = 250\n")
        rec = _resolver(cfg, fake_mounts).resolve(4)
        assert rec.source is SourceKind.URL_LIST
        assert rec.tracks == ["http://example/x"]
        assert rec.organisation == "Example FM"
        assert rec.pause_before_play_ms == 250

    def test_no_urls(self, cfg, fake_mounts, stations_dir):
        (stations_dir / "04 radio.toml").write_text('organisation = "Nothing"\n')
        with pytest.raises(ParseError, match="no URLs"):
            _resolver(cfg, fake_mounts).resolve(4)

    def test_not_found(self, cfg, fake_mounts):
        with pytest.raises(NotFound):
            _resolver(cfg, fake_mounts).resolve(99)

    def test_playlist_of_albums(self, cfg, fake_mounts, stations_dir):
        (stations_dir / "05 albums.toml").write_text(
            'playlist_device = "usb"\nstation_url = ["Artist/Album"]\n')
        r = _resolver(cfg, fake_mounts)
        rec = r.resolve(5)
        assert rec.source is SourceKind.LOCAL_USB
        assert rec.organisation == "Artist/Album"
        assert rec.media is r.mounts.usb
        assert r.mounts.usb.is_mounted

    def test_playlist_of_albums_without_usb(self, cfg, fake_mounts, stations_dir):
        cfg.usb = None
        (stations_dir / "05 albums.toml").write_text(
            'playlist_device = "usb"\nstation_url = ["Artist/Album"]\n')
        with pytest.raises(NoUsbConfigured):
            _resolver(cfg, fake_mounts).resolve(5)

    def test_playlist_of_albums_needs_albums(self, cfg, fake_mounts, stations_dir):
        (stations_dir / "05 albums.toml").write_text('playlist_device = "usb"\nstation_url = []\n')
        with pytest.raises(ParseError, match="no albums listed"):
            _resolver(cfg, fake_mounts).resolve(5)
