"""
cd_drive.py – audio-CD queries via the Linux CD-ROM ioctls.
"""

from __future__ import annotations

import fcntl
import logging
import os
import struct
from typing import Callable

from errors import CdOpenFailed, CdStatusFailed, CdTocFailed

log = logging.getLogger(__name__)

CDROMREADTOCHDR    = 0x5305
CDROMEJECT         = 0x5309
CDROM_DRIVE_STATUS = 0x5326
CDROM_DISC_STATUS  = 0x5327

CDS_DISC_OK = 4
CDS_AUDIO   = 100
CDS_MIXED   = 105

_TOC_HEADER = struct.Struct("BB")      # cdth_trk0, cdth_trk1


def read_toc(device: str = "/dev/cdrom",
             ioctl: Callable = fcntl.ioctl,
             open_fn: Callable = os.open) -> tuple[int, int]:
    """Return (first_track, last_track) of the audio CD in *device*."""
    try:
        fd = open_fn(device, os.O_RDONLY | os.O_NONBLOCK)
    except OSError as e:
        raise CdOpenFailed(e.errno) from e

    try:
        try:
            status = ioctl(fd, CDROM_DRIVE_STATUS, 0)
        except OSError as e:
            raise CdStatusFailed(-(e.errno or 0)) from e
        if status != CDS_DISC_OK:
            raise CdStatusFailed(status)

        try:
            disc = ioctl(fd, CDROM_DISC_STATUS, 0)
        except OSError as e:
            raise CdStatusFailed(-(e.errno or 0)) from e
        if disc == CDS_MIXED:
            log.info("mixed-mode CD in %s, playing the audio tracks", device)
        elif disc != CDS_AUDIO:
            raise CdStatusFailed(disc)

        try:
            header = ioctl(fd, CDROMREADTOCHDR, bytes(_TOC_HEADER.size))
        except OSError as e:
            raise CdTocFailed(e.errno or 0) from e
        return _TOC_HEADER.unpack(header[:_TOC_HEADER.size])
    finally:
        os.close(fd)


def track_uris(first: int, last: int) -> list[str]:
    if first == 0 or last < first:
        return []
    return [f"cdda://{k}" for k in range(first, last + 1)]


def eject(device: str = "/dev/cdrom", ioctl: Callable = fcntl.ioctl) -> None:
    """Open the tray. Raises OSError; the caller only logs it."""
    fd = os.open(device, os.O_RDONLY | os.O_NONBLOCK)
    try:
        ioctl(fd, CDROMEJECT, 0)
    finally:
        os.close(fd)
    log.info("ejected %s", device)
