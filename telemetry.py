"""
telemetry.py – network and health readings shown on the LCD.

Public API
----------
host_from_url(url)                  → host part of a station URL
parse_ping_time(output)             → float ms or None
PingScheduler(max_remote)           .reset(remote_target) / .tick(gateway, allowed)
get_network_data() / discover_network()
bring_up_wifi(mounts)
cpu_temperature() / throttled() / wifi_strength()
TelemetryCache                      .refresh(snapshot, now)
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import time
import tomllib
from typing import Callable, Optional

import psutil

import config
from errors import ChannelError
from player_state import (NetworkData, PingData, PingDestination, PingOutcome,
                          TelemetrySnapshot)

log = logging.getLogger(__name__)

_MDEV_RE = re.compile(r"mdev = ([\d.]+)/([\d.]+)/([\d.]+)/([\d.]+)")


# ── helpers ────────────────────────────────────────────────────────────────
def _run(cmd: list[str], timeout: float = 10) -> str:
    """stdout of *cmd*, or "" when it cannot be run."""
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout).stdout
    except (OSError, subprocess.TimeoutExpired) as e:
        log.warning("%s failed: %s", cmd[0], e)
        return ""


def host_from_url(url: str) -> str:
    """`http://example.com:8000/live` → `example.com`."""
    rest = url.split("://", 1)[1] if "://" in url else url
    rest = rest.split("/", 1)[0]
    rest = rest.rsplit("@", 1)[-1]
    if rest.startswith("["):
        return rest[1:].split("]", 1)[0]
    return rest.split(":", 1)[0]


def parse_ping_time(output: str) -> Optional[float]:
    m = _MDEV_RE.search(output)
    return float(m.group(3)) if m else None


# ── ping scheduler ─────────────────────────────────────────────────────────
class PingScheduler:
    """
    Alternates gateway and station-host pings, one subprocess at a time,
    at least `interval` seconds apart. After `max_remote` remote pings per
    station only the gateway is pinged.
    """

    def __init__(
        self,
        max_remote: int,
        interval: float = config.PING_INTERVAL,
        spawn: Callable[..., subprocess.Popen] = subprocess.Popen,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_remote = max_remote
        self.interval = interval
        self._spawn = spawn
        self._clock = clock
        self._proc: Optional[subprocess.Popen] = None
        self._started = 0.0
        self._last_sent: Optional[float] = None
        self.remote_target = ""
        self.data = PingData()

    def reset(self, remote_target: str) -> PingData:
        self._kill()
        self.remote_target = remote_target
        self.data = PingData()
        self._last_sent = None
        return self.data

    def _kill(self) -> None:
        if self._proc is not None:
            self._proc.kill()
            self._proc.wait()
            self._proc = None

    def _next_destination(self, gateway: str) -> tuple[PingDestination, str]:
        remote_allowed = self.remote_target and self.data.remote_pings < self.max_remote
        if remote_allowed and (self.data.pings_sent % 2 == 1 or not gateway):
            return PingDestination.REMOTE, self.remote_target
        if gateway:
            return PingDestination.LOCAL, gateway
        return PingDestination.NOTHING, ""

    def _collect(self, now: float) -> None:
        rc = self._proc.poll()
        if rc is None:
            if now - self._started > config.PING_TIMEOUT + 1:
                log.info("ping to %s overran its timeout", self.data.destination.value)
                self._kill()
                self.data.outcome, self.data.time_ms = PingOutcome.TIMED_OUT, None
            return
        out, _ = self._proc.communicate()
        self._proc = None
        t = parse_ping_time(out or "")
        if rc == 0 and t is not None:
            self.data.outcome, self.data.time_ms = PingOutcome.RESPONSE_RECEIVED, t
        else:
            self.data.outcome, self.data.time_ms = PingOutcome.TIMED_OUT, None

    def tick(self, gateway: str, allowed: bool) -> PingData:
        now = self._clock()
        if self._proc is not None:
            self._collect(now)
            return self.data
        if not allowed:
            return self.data
        if self._last_sent is not None and now - self._last_sent < self.interval:
            return self.data

        dest, target = self._next_destination(gateway)
        if dest is PingDestination.NOTHING:
            return self.data
        try:
            self._proc = self._spawn(
                ["/bin/ping", target, "-c", "1", "-W", str(config.PING_TIMEOUT)],
                stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True)
        except OSError as e:
            log.warning("could not start ping: %s", e)
            return self.data
        self._started = self._last_sent = now
        self.data.destination = dest
        self.data.outcome = PingOutcome.SENT
        self.data.pings_sent += 1
        if dest is PingDestination.REMOTE:
            self.data.remote_pings += 1
        return self.data


# ── network manager ────────────────────────────────────────────────────────
def parse_nmcli_show(output: str) -> NetworkData:
    fields: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return NetworkData(
        is_valid="100 (" in fields.get("GENERAL.STATE", ""),
        ssid=fields.get("GENERAL.CONNECTION", ""),
        local_ip_address=fields.get("IP4.ADDRESS[1]", "").split("/")[0],
        gateway_ip_address=fields.get("IP4.GATEWAY", ""),
    )


def get_network_data(interface: str = config.WIFI_INTERFACE) -> NetworkData:
    return parse_nmcli_show(_run(["nmcli", "device", "show", interface]))


def discover_network(retries: int = config.NETWORK_RETRIES,
                     sleep: float = config.NETWORK_RETRY_SLEEP,
                     fetch: Callable[[], NetworkData] = get_network_data) -> NetworkData:
    data = NetworkData()
    for _ in range(retries):
        data = fetch()
        if data.is_valid and data.local_ip_address:
            return data
        time.sleep(sleep)
    log.warning("no network after %d attempts", retries)
    return data


def wifi_disconnected(interface: str = config.WIFI_INTERFACE) -> bool:
    for line in _run(["nmcli", "-t", "-f", "DEVICE,STATE", "device"]).splitlines():
        dev, _, st = line.partition(":")
        if dev == interface:
            return st.startswith("disconnected")
    return False


def connect_wifi(ssid: str, password: str) -> bool:
    out = _run(["nmcli", "device", "wifi", "connect", ssid, "password", password], timeout=45)
    ok = "successfully activated with " in out
    log.info("wifi connect to %s: %s", ssid, "ok" if ok else out.strip())
    return ok


def bring_up_wifi(mounts) -> bool:
    """Join the network named in pass.toml on the USB stick, if wlan0 is down."""
    if not wifi_disconnected() or mounts.usb is None:
        return False
    usb = mounts.usb
    try:
        mounts.mount(usb)
        try:
            with open(os.path.join(usb.mount_point, "pass.toml"), "rb") as f:
                creds = tomllib.load(f)
        finally:
            mounts.unmount(usb)
    except (ChannelError, OSError, tomllib.TOMLDecodeError) as e:
        log.error("wifi credentials unavailable: %s", e)
        return False
    if "ssid" not in creds or "password" not in creds:
        log.error("pass.toml needs ssid and password")
        return False
    return connect_wifi(str(creds["ssid"]), str(creds["password"]))


# ── health readings ────────────────────────────────────────────────────────
def cpu_temperature() -> int:
    """Degrees C; negative when no sensor could be read."""
    sensors = getattr(psutil, "sensors_temperatures", None)
    if sensors:
        try:
            temps = sensors()
        except OSError:
            temps = {}
        entries = temps.get("cpu_thermal") or next(iter(temps.values()), [])
        if entries:
            return int(entries[0].current)
    try:
        with open("/sys/class/thermal/thermal_zone0/temp") as f:
            return int(f.read().strip()) // 1000
    except OSError:
        return -1
    except ValueError:
        return -2


def throttled() -> str:
    """'' when the Pi is not throttled, else vcgencmd's value."""
    out = _run(["vcgencmd", "get_throttled"]).strip()
    if not out or out == "throttled=0x0":
        return ""
    return out.partition("=")[2] or out


def wifi_strength(interface: str = config.WIFI_INTERFACE,
                  path: str = "/proc/net/wireless") -> str:
    try:
        with open(path) as f:
            for line in f:
                if line.strip().startswith(interface + ":"):
                    cols = line.split()
                    return cols[3].rstrip(".") + "dBm"
    except (OSError, IndexError) as e:
        log.debug("no wifi level from %s: %s", path, e)
    return ""


class TelemetryCache:
    def __init__(self, period: float = config.TELEMETRY_REFRESH):
        self.period = period
        self._last: Optional[float] = None

    def refresh(self, snap: TelemetrySnapshot, now: float, force: bool = False) -> bool:
        if not force and self._last is not None and now - self._last < self.period:
            return False
        self._last = now
        snap.cpu_temperature = cpu_temperature()
        snap.throttled = throttled()
        snap.wifi_strength = wifi_strength()
        return True
