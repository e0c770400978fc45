"""
mount_manager.py – mounts the USB stick (vfat) and the Samba share (cifs).

The two bindings are mutually exclusive: mounting one first unmounts the
other. `is_mounted` is only ever changed here, and only on success.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import errno
import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from config import MediaDetails
from errors import (ChannelError, MountFailed, NoDevice, NoSuchDeviceOrAddress,
                    UnmountFailed)
from player_state import SourceKind

log = logging.getLogger(__name__)

MS_RDONLY  = 1
MS_NOATIME = 1024
MNT_DETACH = 2


@dataclass(eq=False)
class MediaBinding:
    device: str
    mount_point: str
    fs_type: str                         # "vfat" | "cifs"
    auth: Optional[Tuple[str, str]] = None
    version: Optional[str] = None
    is_mounted: bool = False

    @classmethod
    def from_details(cls, details: MediaDetails, fs_type: str) -> "MediaBinding":
        auth = details.authentication_data
        return cls(
            device=details.device,
            mount_point=details.mount_folder,
            fs_type=fs_type,
            auth=(auth.username, auth.password) if auth else None,
            version=details.version,
        )

    def mount_data(self) -> str:
        if self.fs_type == "vfat":
            return "iocharset=utf8,utf8"
        parts = []
        if self.auth:
            parts.append(f"user={self.auth[0]},pass={self.auth[1]}")
        if self.version:
            parts.append(f"vers={self.version}")
        parts.append("iocharset=utf8")
        return ",".join(parts)


# ── libc wrappers ──────────────────────────────────────────────────────────
_libc = None


def _get_libc():
    global _libc
    if _libc is None:
        _libc = ctypes.CDLL(ctypes.util.find_library("c"), use_errno=True)
    return _libc


def sys_mount(source: str, target: str, fs_type: str, flags: int, data: str) -> None:
    libc = _get_libc()
    rc = libc.mount(source.encode(), target.encode(), fs_type.encode(),
                    ctypes.c_ulong(flags), data.encode())
    if rc != 0:
        e = ctypes.get_errno()
        raise OSError(e, os.strerror(e))


def sys_umount(target: str, flags: int) -> None:
    libc = _get_libc()
    if libc.umount2(target.encode(), ctypes.c_int(flags)) != 0:
        e = ctypes.get_errno()
        raise OSError(e, os.strerror(e))


# ── manager ────────────────────────────────────────────────────────────────
class MountManager:
    def __init__(
        self,
        usb: Optional[MediaDetails] = None,
        samba: Optional[MediaDetails] = None,
        mount_fn: Callable[[str, str, str, int, str], None] = sys_mount,
        umount_fn: Callable[[str, int], None] = sys_umount,
    ) -> None:
        self._mount_fn, self._umount_fn = mount_fn, umount_fn
        self.usb   = MediaBinding.from_details(usb, "vfat") if usb else None
        self.samba = MediaBinding.from_details(samba, "cifs") if samba else None
        self._by_channel: Dict[int, MediaBinding] = {}
        if usb:
            self._by_channel[usb.channel_number] = self.usb
        if samba:
            self._by_channel[samba.channel_number] = self.samba

    @property
    def bindings(self) -> list[MediaBinding]:
        return [b for b in (self.usb, self.samba) if b]

    def binding_for_channel(self, n: int) -> Optional[MediaBinding]:
        return self._by_channel.get(n)

    def source_kind(self, binding: MediaBinding) -> SourceKind:
        return SourceKind.LOCAL_USB if binding.fs_type == "vfat" else SourceKind.REMOTE_CIFS

    # ------------------------------------------------------------------ ops
    def mount(self, binding: MediaBinding) -> None:
        """Mount *binding* read-only; raises a ChannelError on failure."""
        if binding.is_mounted:
            return
        for other in self.bindings:
            if other is not binding and other.is_mounted:
                self.unmount(other)

        data = binding.mount_data()
        log.info("mounting %s on %s (%s)", binding.device, binding.mount_point, binding.fs_type)
        try:
            self._mount_fn(binding.device, binding.mount_point, binding.fs_type,
                           MS_RDONLY | MS_NOATIME, data)
        except OSError as e:
            if e.errno == errno.EBUSY:
                log.info("%s already mounted", binding.mount_point)
                binding.is_mounted = True
                return
            if e.errno == errno.ENOENT:
                raise NoDevice() from e
            if e.errno == errno.ENXIO:
                raise NoSuchDeviceOrAddress(binding.device) from e
            if e.errno is not None:
                raise MountFailed(f"Got Operating System error {e.errno} ") from e
            raise MountFailed(type(e).__name__) from e
        binding.is_mounted = True

    def unmount(self, binding: MediaBinding) -> None:
        """Detach-unmount *binding*; raises UnmountFailed and leaves the flag alone on error."""
        if not binding.is_mounted:
            return
        log.info("unmounting %s", binding.mount_point)
        try:
            self._umount_fn(binding.mount_point, MNT_DETACH)
        except OSError as e:
            raise UnmountFailed(f"{binding.mount_point}: {e}") from e
        binding.is_mounted = False

    def unmount_all(self) -> list[ChannelError]:
        """Unmount everything, returning the failures rather than stopping at the first."""
        failures: list[ChannelError] = []
        for binding in self.bindings:
            try:
                self.unmount(binding)
            except ChannelError as e:
                log.error("%s", e)
                failures.append(e)
        return failures

    def listing(self) -> str:
        """Contents of every mount folder, for the `$` debug key."""
        out = []
        for binding in self.bindings:
            try:
                names = sorted(os.listdir(binding.mount_point))
            except OSError as e:
                names = [f"<{e}>"]
            out.append(f"{binding.mount_point} (mounted={binding.is_mounted}): {', '.join(names)}")
        return "\n".join(out)
