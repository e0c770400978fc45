#!/usr/bin/env python3
"""
web_remote.py  –  web UI + diagnostics + remote control + podcasts

Endpoints
---------
/               → HTML page (volume, play/pause, podcasts, episodes, seek)
/status         → text player-state report
/snapshot       → JSON {volume, podcasts} for a freshly opened page
/events         → server-sent events stream of DataChanged notifications
/diag, /data    → JSON object of diagnostic metrics
/action?cmd=…   → volume_up | volume_down | play_pause | seek&ms= |
                  add_podcast&url= | delete_podcast&index= |
                  podcast_index&index= | episode&url= | play_url&url=
/log            → contents of the log file (if present)

Handlers never touch the PlayerState: they post actions on the WEB source
and, where an answer is needed, wait on a reply queue filled by the loop.
"""

from __future__ import annotations

import http.server
import json
import logging
import os
import platform
import queue
import socketserver
import threading
import time
import traceback
import urllib.parse
from typing import Any, Optional

import psutil
import requests

import config
import podcasts
import telemetry
from events import EventManager, Source

log = logging.getLogger(__name__)


# ── diagnostics (/diag) ────────────────────────────────────────────────────
def _fmt_duration(secs: float) -> str:
    d, rem = divmod(int(secs), 86400)
    h, rem = divmod(rem, 3600)
    m, s   = divmod(rem, 60)
    return f"{d}d {h:02}:{m:02}:{s:02}"


class Diagnostics:
    """Host readings for the web page, refreshed at most once per *interval*."""

    def __init__(self, interval: float = 1.0, clock=time.monotonic):
        self.interval = interval
        self._clock = clock
        self._started = clock()
        self._refreshed: Optional[float] = None
        self._lock = threading.Lock()
        self.data: dict[str, Any] = {
            "python_version":  platform.python_version(),
            "last_http_crash": "",
        }

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            if self._refreshed is None or now - self._refreshed >= self.interval:
                self._refreshed = now
                self.data.update(self._read(now))
            return dict(self.data)

    def record_crash(self, text: str) -> None:
        with self._lock:
            self.data["last_http_crash"] = text

    def _read(self, now: float) -> dict[str, Any]:
        cores = [round(p, 1) for p in psutil.cpu_percent(percpu=True)]
        vm = psutil.virtual_memory()
        try:
            load = ", ".join(f"{x:.2f}" for x in os.getloadavg())
        except OSError:
            load = "N/A"
        return {
            "cpu_percent":     round(sum(cores) / len(cores), 1) if cores else 0.0,
            "cpu_per_core":    cores,
            "cpu_temperature": telemetry.cpu_temperature(),
            "throttled":       telemetry.throttled() or "no",
            "mem":             f"{vm.used >> 20} of {vm.total >> 20} MB",
            "disk_root":       f"{psutil.disk_usage('/').percent}%",
            "radio_uptime":    _fmt_duration(now - self._started),
            "machine_uptime":  _fmt_duration(time.time() - psutil.boot_time()),
            "load_avg":        load,
        }


diagnostics = Diagnostics()


# ── DataChanged fan-out ────────────────────────────────────────────────────
class Broadcaster:
    """Multi-consumer notify channel; a slow client loses messages, never blocks."""

    def __init__(self, depth: int = 32):
        self._depth = depth
        self._lock = threading.Lock()
        self._subs: list[queue.Queue] = []

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._depth)
        with self._lock:
            self._subs.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subs:
                self._subs.remove(q)

    def publish(self, data: dict) -> None:
        with self._lock:
            subs = list(self._subs)
        for q in subs:
            try:
                q.put_nowait(data)
            except queue.Full:
                log.debug("dropping %s for a slow web client", data.get("kind"))


# ── the bridge between HTTP threads and the event loop ─────────────────────
class WebRemote:
    def __init__(self, events: EventManager, notifier: Broadcaster,
                 log_file: str = "runtime.log",
                 session: Optional[requests.Session] = None):
        self.events = events
        self.notifier = notifier
        self.log_file = log_file
        self.session = session or requests.Session()

    def post(self, action: dict) -> bool:
        return self.events.post(Source.WEB, action, timeout=config.WEB_REPLY_TIMEOUT)

    def request(self, action: dict) -> Any:
        """Post *action* with a reply queue and wait for the loop's answer."""
        reply: queue.Queue = queue.Queue(maxsize=1)
        if not self.post(dict(action, reply=reply)):
            return None
        try:
            return reply.get(timeout=config.WEB_REPLY_TIMEOUT)
        except queue.Empty:
            return None

    # ------------------------------------------------------------ podcasts
    def add_podcast(self, url: str) -> str:
        """Subscribe to an RSS feed, or play *url* directly when it is not one."""
        body = podcasts.fetch(url, self.session, limit=podcasts.SNIFF_BYTES)
        if podcasts.looks_like_rss(body):
            title = podcasts.feed_title(body) or url
            self.post({"type": "add_podcast", "title": title, "url": url})
            return f"subscribed to {title}"
        self.post({"type": "play_url", "url": url})
        return "playing"

    def select_podcast(self, index: int) -> list[dict]:
        snap = self.request({"type": "snapshot"}) or {}
        subs = snap.get("podcasts", [])
        if not 0 <= index < len(subs):
            raise IndexError(f"no podcast {index}")
        self.post({"type": "podcast_index", "index": index})
        episodes = podcasts.episodes_as_dicts(
            podcasts.parse_episodes(podcasts.fetch(subs[index]["url"], self.session)))
        self.notifier.publish({"kind": "episodes", "episodes": episodes})
        return episodes


# ── reusable threaded HTTP server ──────────────────────────────────────────
class ReusableTCPServer(socketserver.ThreadingMixIn, http.server.HTTPServer):
    daemon_threads      = True
    allow_reuse_address = True


# ── request handler ────────────────────────────────────────────────────────
class RemoteHandler(http.server.BaseHTTPRequestHandler):
    def log_message(self, fmt, *args):
        log.debug("web %s - %s", self.address_string(), fmt % args)

    @property
    def remote(self) -> WebRemote:
        return self.server.remote             # type: ignore[attr-defined]

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        route = self._ROUTES.get(parsed.path)
        if route is None:
            return self.send_error(404, "Not found")
        return route(self, parsed.query)

    # ── routes ───────────────────────────────────────────────────────────
    def _page(self, _query: str):
        self._send(HTML_PAGE.encode("utf-8"), "text/html; charset=utf-8")

    def _status(self, _query: str):
        self._serve_text(self.remote.request({"type": "status_report"}))

    def _snapshot(self, _query: str):
        self._serve_json(self.remote.request({"type": "snapshot"}))

    def _diag(self, _query: str):
        self._serve_json(diagnostics.snapshot())

    def _log(self, _query: str):
        try:
            with open(self.remote.log_file, "rb") as f:
                body = f.read()
        except OSError:
            return self.send_error(404, "Log file not found")
        self._send(body, "text/plain; charset=utf-8")

    # ── response helpers ─────────────────────────────────────────────────
    def _send(self, body: bytes, content_type: str):
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _serve_json(self, obj: Any):
        if obj is None:
            return self.send_error(503, "Player busy")
        self._send(json.dumps(obj).encode("utf-8"), "application/json")

    def _serve_text(self, text: Optional[str]):
        if text is None:
            return self.send_error(503, "Player busy")
        self._send(text.encode("utf-8"), "text/plain; charset=utf-8")

    def _serve_events(self, _query: str = ""):
        q = self.remote.notifier.subscribe()
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-cache")
        self.end_headers()
        try:
            while True:
                try:
                    data = q.get(timeout=15)
                    self.wfile.write(f"data: {json.dumps(data)}\n\n".encode("utf-8"))
                except queue.Empty:
                    self.wfile.write(b": keepalive\n\n")
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            pass                               # client went away
        finally:
            self.remote.notifier.unsubscribe(q)

    def _serve_action(self, query: str):
        qs = urllib.parse.parse_qs(query)
        cmd = qs.get("cmd", [""])[0]

        def arg(name: str) -> str:
            return qs.get(name, [""])[0]

        if cmd in ("volume_up", "volume_down", "play_pause"):
            ok = self.remote.post({"type": cmd})

        elif cmd == "seek":
            try:
                ms = int(float(arg("ms")))
            except ValueError:
                return self.send_error(400, "Invalid ms value")
            ok = self.remote.post({"type": "seek", "ms": ms})

        elif cmd == "delete_podcast":
            try:
                index = int(arg("index"))
            except ValueError:
                return self.send_error(400, "Invalid index")
            ok = self.remote.post({"type": "delete_podcast", "index": index})

        elif cmd in ("episode", "play_url"):
            if not arg("url"):
                return self.send_error(400, "Missing url")
            ok = self.remote.post({"type": "play_url", "url": arg("url")})

        elif cmd == "add_podcast":
            if not arg("url"):
                return self.send_error(400, "Missing url")
            try:
                return self._serve_text(self.remote.add_podcast(arg("url")))
            except requests.RequestException as e:
                log.warning("could not fetch %s: %s", arg("url"), e)
                return self.send_error(502, f"Could not fetch {arg('url')}")

        elif cmd == "podcast_index":
            try:
                return self._serve_json(self.remote.select_podcast(int(arg("index"))))
            except ValueError:
                return self.send_error(400, "Invalid index")
            except IndexError as e:
                return self.send_error(404, str(e))
            except requests.RequestException as e:
                log.warning("could not fetch feed: %s", e)
                return self.send_error(502, "Could not fetch feed")

        else:
            return self.send_error(400, "Unknown cmd")

        if not ok:
            return self.send_error(503, "Player busy")
        self.send_response(204)
        self.end_headers()

    _ROUTES = {
        "/":         _page,
        "/status":   _status,
        "/snapshot": _snapshot,
        "/events":   _serve_events,
        "/diag":     _diag,
        "/data":     _diag,
        "/log":      _log,
        "/action":   _serve_action,
    }


# ── simple HTML UI ─────────────────────────────────────────────────────────
HTML_PAGE = """
<!doctype html><html><head><meta charset="utf-8">
<title>Radio Remote</title>
<style>
 body{background:#101810;color:#9f9;font-family:monospace;margin:1em 2em;}
 h2,h3{color:#cfc;margin:0.6em 0 0.3em;}
 button{margin:3px;padding:5px 10px;border:1px solid #9f9;border-radius:3px;background:#101810;color:#9f9;}
 table td{padding:1px 6px;}
 #diag{font-size:90%;}
</style></head><body>
<h2>Radio Remote</h2>
<button onclick="act('volume_down')">Vol −</button>
<span id="volume">?</span>
<button onclick="act('volume_up')">Vol +</button>
<button onclick="act('play_pause')">Play / Pause</button>
<a href="/log">View log</a> <a href="/status">Status</a>

<div><h3>Position</h3>
<input id="seek" type="range" min="0" max="0" value="0" style="width:60%"
       onchange="act('seek&ms='+this.value)"> <span id="pos"></span></div>

<div><h3>Podcasts</h3>
<select id="podcasts" onchange="pick(this.selectedIndex)"></select>
<button onclick="del()">Delete</button><br>
<input id="url" size="60" placeholder="RSS feed or stream URL">
<button onclick="add()">Add / Play</button></div>

<div><h3>Episodes</h3><table id="episodes"></table></div>
<div><h3>Diagnostics</h3><pre id="diag"></pre></div>

<script>
 function act(cmd){ return fetch('/action?cmd=' + cmd); }
 function fmt(ms){ let s=Math.floor(ms/1000); return Math.floor(s/60)+':'+String(s%60).padStart(2,'0'); }
 function setPodcasts(list){
   let sel = document.getElementById('podcasts'); sel.innerHTML = '';
   for (let p of list){ let o = document.createElement('option'); o.textContent = p.title; sel.appendChild(o); }
   sel.selectedIndex = -1;
 }
 function setEpisodes(list){
   let t = document.getElementById('episodes'); t.innerHTML = '';
   for (let e of list){
     let r = t.insertRow();
     r.insertCell().textContent = e.date;
     r.insertCell().textContent = e.subtitle;
     let b = document.createElement('button'); b.textContent = 'Play';
     b.onclick = () => act('episode&url=' + encodeURIComponent(e.url));
     r.insertCell().appendChild(b);
   }
 }
 function pick(i){ fetch('/action?cmd=podcast_index&index=' + i); }
 function del(){
   let i = document.getElementById('podcasts').selectedIndex;
   if (i >= 0) act('delete_podcast&index=' + i);
 }
 function add(){
   let u = document.getElementById('url').value;
   if (u) act('add_podcast&url=' + encodeURIComponent(u));
 }
 let es = new EventSource('/events');
 es.onmessage = (m) => {
   let d = JSON.parse(m.data);
   if (d.kind === 'volume') document.getElementById('volume').textContent = d.volume;
   if (d.kind === 'podcasts') setPodcasts(d.podcasts);
   if (d.kind === 'episodes') setEpisodes(d.episodes);
   if (d.kind === 'position'){
     let s = document.getElementById('seek');
     s.max = d.duration_ms || 0; s.value = d.position_ms || 0;
     document.getElementById('pos').textContent = fmt(d.position_ms||0) + ' / ' + fmt(d.duration_ms||0);
   }
 };
 fetch('/snapshot').then(r => r.json()).then(s => {
   document.getElementById('volume').textContent = s.volume; setPodcasts(s.podcasts);
 });
 async function refreshDiag(){
   try {
     const dg = await (await fetch('/diag')).json();
     document.getElementById('diag').textContent =
       Object.keys(dg).map(k => k.padEnd(18) + dg[k]).join('\\n');
   } catch(e){ console.warn('diag', e); }
 }
 refreshDiag();
 setInterval(refreshDiag, 3000);
</script>
</body></html>
"""


# ── server bootstrap with auto-restart ────────────────────────────────────
def start(remote: WebRemote, port: int = 8080) -> threading.Thread:
    def _serve_loop():
        while True:
            try:
                with ReusableTCPServer(("", port), RemoteHandler) as httpd:
                    httpd.remote = remote
                    httpd.serve_forever()
            except Exception:
                diagnostics.record_crash(traceback.format_exc())
                log.exception("web server crashed, restarting")
                time.sleep(1)

    t = threading.Thread(target=_serve_loop, name="web", daemon=True)
    t.start()
    log.info("Web UI & diagnostics listening on port %d", port)
    return t
