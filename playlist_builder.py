"""
playlist_builder.py – turns a mounted music tree into a playable track list.

Layout expected on the stick or share:  <artist>/<album>/<track files>.
"""
from __future__ import annotations

import os
import random
import re
import typing as _t
from pathlib import Path

from config import AUDIO_EXTENSIONS
from errors import AlbumNotFound, EmptyTrackList, NoFilesFound, UsbReadError


# ---------- natural sort --------------------------------------------------
def _nat_key(s: str) -> list[_t.Union[int, str]]:
    return [int(t) if t.isdigit() else t.lower()
            for t in re.split(r"(\d+)", s)]


def _is_audio(name: str) -> bool:
    return os.path.splitext(name)[1][1:].lower() in AUDIO_EXTENSIONS


def _sorted_entries(path: str) -> list[os.DirEntry]:
    with os.scandir(path) as it:
        return sorted(it, key=lambda e: _nat_key(e.name))


def file_uri(path: str) -> str:
    return Path(path).absolute().as_uri()


# ---------- album discovery ----------------------------------------------
def _has_audio(album_dir: str) -> bool:
    return any(e.is_file() and _is_audio(e.name) for e in _sorted_entries(album_dir))


def find_albums(mount_point: str) -> list[str]:
    """Album directories (relative to *mount_point*) holding at least one audio file."""
    albums = []
    try:
        for artist in _sorted_entries(mount_point):
            if not artist.is_dir():
                continue
            for album in _sorted_entries(artist.path):
                if album.is_dir() and _has_audio(album.path):
                    albums.append(os.path.relpath(album.path, mount_point))
    except OSError as e:
        raise UsbReadError(str(e)) from e
    return albums


def album_tracks(mount_point: str, album: str) -> list[str]:
    """file:// URIs for the audio files of *album*, in natural order."""
    path = os.path.join(mount_point, album)
    if not os.path.isdir(path):
        raise AlbumNotFound(album)
    try:
        tracks = [file_uri(e.path) for e in _sorted_entries(path)
                  if e.is_file() and _is_audio(e.name)]
    except OSError as e:
        raise UsbReadError(str(e)) from e
    if not tracks:
        raise EmptyTrackList()
    return tracks


def pick_random_album(mount_point: str, rng: random.Random | None = None) -> tuple[str, list[str]]:
    """Uniformly choose one album below *mount_point*; return (album, tracks)."""
    albums = find_albums(mount_point)
    if not albums:
        raise NoFilesFound()
    album = (rng or random).choice(albums)
    return album, album_tracks(mount_point, album)
