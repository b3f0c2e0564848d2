# Dashboard UI + logging

import json
import threading
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from rich.align import Align
from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

VERSION = "v0.2.0"

LEVELS = ("DEBUG", "INFO", "SUCCESS", "WARN", "ERROR", "CLICK")

COLORS = {
    "border": "#334155",
    "muted": "#64748b",
    "text": "#e2e8f0",
    "text_dim": "#94a3b8",
    "heading": "#38bdf8",
    "debug": "#64748b",
    "info": "#3b82f6",
    "success": "#10b981",
    "warn": "#f59e0b",
    "error": "#ef4444",
    "click": "#a855f7",
    "idle": "#64748b",
    "active": "#10b981",
}

HEADER = "▓▓▓ NEEDLEBOT ▓▓▓"


class Stats:
    # Session counters. Lifetime click/match totals survive restarts.
    STATS_FILE = "logs/stats.json"

    def __init__(self, stats_file: Optional[str] = None) -> None:
        self._file = Path(stats_file or self.STATS_FILE)
        self._lock = threading.Lock()
        self._start = datetime.now()
        self._paused = timedelta(0)
        self._pause_start: Optional[datetime] = None
        self.cycles = 0
        self.matches = 0
        self.misses = 0
        self.clicks = 0
        self.frames = 0
        self.errors = 0
        self.counter = ""
        self._total_clicks = 0
        self._total_frames = 0

    def pause(self) -> None:
        with self._lock:
            if not self._pause_start:
                self._pause_start = datetime.now()

    def resume(self) -> None:
        with self._lock:
            if self._pause_start:
                self._paused += datetime.now() - self._pause_start
                self._pause_start = None

    def inc_cycles(self) -> None:
        with self._lock: self.cycles += 1

    def inc_matches(self) -> None:
        with self._lock: self.matches += 1

    def inc_misses(self) -> None:
        with self._lock: self.misses += 1

    def inc_clicks(self) -> None:
        with self._lock:
            self.clicks += 1
            self._total_clicks += 1

    def inc_frames(self) -> None:
        with self._lock:
            self.frames += 1
            self._total_frames += 1

    def inc_errors(self) -> None:
        with self._lock: self.errors += 1

    def set_counter(self, value: str) -> None:
        with self._lock: self.counter = value

    def save(self) -> None:
        with self._lock:
            data = {
                "total_clicks": self._total_clicks,
                "total_frames": self._total_frames,
                "last_save": datetime.now().isoformat()
            }
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            self._file.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            pass  # stats are nice-to-have

    def load(self) -> None:
        try:
            data = json.loads(self._file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return
        with self._lock:
            self._total_clicks = int(data.get("total_clicks", 0))
            self._total_frames = int(data.get("total_frames", 0))

    def get(self) -> dict:
        """Returns dict with keys: runtime, cycles, matches, misses, clicks,
        frames, errors, hit_rate, counter, total_clicks, total_frames."""
        with self._lock:
            now = datetime.now()
            current_pause = now - self._pause_start if self._pause_start else timedelta(0)
            active = (now - self._start) - (self._paused + current_pause)
            total_sec = max(0, int(active.total_seconds()))
            h, rem = divmod(total_sec, 3600)
            m, s = divmod(rem, 60)
            hit_rate = (self.matches / self.cycles * 100) if self.cycles > 0 else 0.0
            return {
                "runtime": f"{h:02d}:{m:02d}:{s:02d}",
                "cycles": self.cycles,
                "matches": self.matches,
                "misses": self.misses,
                "clicks": self.clicks,
                "frames": self.frames,
                "errors": self.errors,
                "hit_rate": hit_rate,
                "counter": self.counter,
                "total_clicks": self._total_clicks,
                "total_frames": self._total_frames,
            }


class LogBuffer:
    def __init__(self, max_lines: int = 50) -> None:
        self._lines = deque(maxlen=max_lines)
        self._lock = threading.Lock()

    def add(self, message: str, level: str = "INFO") -> None:
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        with self._lock:
            self._lines.append((timestamp, level, message))

    def get_all(self):
        with self._lock: return list(self._lines)


class Dashboard:
    STATUS_IDLE = "idle"
    STATUS_RESOLVING = "resolving"
    STATUS_RUNNING = "running"
    STATUS_PAUSED = "paused"
    STATUS_ERROR = "error"

    def __init__(
        self, refresh_ms: int = 100, stop_key: str = "f10", pause_key: str = "f9",
        stats: Optional[Stats] = None, console: Optional[Console] = None
    ) -> None:
        self._live: Optional[Live] = None
        self._refresh_ms = max(10, refresh_ms)
        self._stop_key = stop_key.upper()
        self._pause_key = pause_key.upper()
        self._console = console or Console()
        self._stats = stats or Stats()
        self._log = LogBuffer()
        self._status = self.STATUS_IDLE
        self._detail = ""
        self._session_lines = []
        self._lock = threading.Lock()

    @property
    def stats(self) -> Stats: return self._stats

    def log(self, message: str, level: str = "INFO") -> None:
        self._log.add(message, level)
        if not self._live:
            # Not rendering yet (or already stopped) - print straight through
            c = COLORS.get(level.lower(), COLORS["info"])
            self._console.print(Text.assemble((f"[{level:^7}]", f"bold {c}"), f" {message}"))

    def lines(self):
        return self._log.get_all()

    def set_status(self, status: str, detail: str = "") -> None:
        with self._lock:
            self._status = status
            self._detail = detail

    def set_session(self, lines) -> None:
        with self._lock: self._session_lines = list(lines)

    def start(self) -> None:
        self._live = Live(
            self._render(), console=self._console,
            refresh_per_second=1000 // self._refresh_ms,
            screen=False, transient=False
        )
        self._live.start()

    def update(self) -> None:
        if self._live: self._live.update(self._render())

    def stop(self) -> None:
        if self._live:
            self._live.stop()
            self._live = None

    def _render(self):
        layout = Layout()
        layout.split(
            Layout(name="header", size=3),
            Layout(name="middle", size=11),
            Layout(name="log", ratio=1, minimum_size=5),
            Layout(name="footer", size=3)
        )
        layout["middle"].split_row(
            Layout(name="stats", ratio=1),
            Layout(name="session", ratio=1)
        )
        layout["header"].update(self._render_header())
        layout["stats"].update(self._render_stats())
        layout["session"].update(self._render_session())
        layout["log"].update(self._render_log())
        layout["footer"].update(self._render_footer())
        return layout

    def _render_header(self):
        badges = {
            self.STATUS_IDLE: (" ● Idle ", COLORS["idle"]),
            self.STATUS_RESOLVING: (" ◎ Resolving anchors ", COLORS["warn"]),
            self.STATUS_RUNNING: (" ⚡ Running ", COLORS["active"]),
            self.STATUS_PAUSED: (" ❚❚ Paused ", COLORS["muted"]),
            self.STATUS_ERROR: (" ✖ Failed ", COLORS["error"]),
        }
        label, color = badges.get(self._status, (f" ● {self._status} ", COLORS["muted"]))
        t = Text()
        t.append(HEADER, style=f"bold {COLORS['heading']}")
        t.append(f"  {VERSION}  │", style=COLORS["text_dim"])
        t.append(label, style=f"bold {color}")
        if self._detail:
            t.append(f"  {self._detail}", style=COLORS["text_dim"])
        return Panel(Align.center(t), border_style=COLORS["border"])

    def _render_stats(self):
        data = self._stats.get()
        table = Table.grid(padding=(0, 2), expand=True)
        table.add_column("L", justify="right", style=COLORS["muted"])
        table.add_column("V", justify="left", style=f"bold {COLORS['text']}")
        table.add_row("Runtime", data["runtime"])
        table.add_row("Lookups", str(data["cycles"]))
        table.add_row("Matches", str(data["matches"]))
        table.add_row("Misses", str(data["misses"]))
        table.add_row("Clicks", str(data["clicks"]))
        table.add_row("Frames", str(data["frames"]))
        if data["counter"]:
            table.add_row("Coins", Text(data["counter"], style=f"bold {COLORS['success']}"))
        if data["errors"] > 0:
            table.add_row("Errors", Text(str(data["errors"]), style=f"bold {COLORS['error']}"))
        return Panel(table, title=f"[{COLORS['heading']}]Live Stats[/]", border_style=COLORS["border"])

    def _render_session(self):
        with self._lock:
            lines = list(self._session_lines)
        body = Group(*[Text(line, style=COLORS["text"]) for line in lines]) if lines \
            else Align.center(Text("No anchors yet", style=COLORS["muted"]))
        return Panel(body, title=f"[{COLORS['heading']}]Session[/]", border_style=COLORS["border"])

    def _render_log(self):
        visible = self._log.get_all()[-max(3, self._console.size.height - 20):]
        if not visible:
            return Panel(Align.center(Text("Waiting...", style=COLORS["muted"])),
                         title=f"[{COLORS['heading']}]Event Log[/]", border_style=COLORS["border"])
        text = Text()
        for ts, lvl, msg in visible:
            text.append(f" {ts} ", style=COLORS["text_dim"])
            text.append(f"[{lvl:^7}]", style=f"bold {COLORS.get(lvl.lower(), COLORS['info'])}")
            text.append(f" {msg}\n", style=COLORS["text"])
        return Panel(Align(text, vertical="bottom"), title=f"[{COLORS['heading']}]Event Log[/]",
                     border_style=COLORS["border"])

    def _render_footer(self):
        f = Text()
        f.append(f"  {self._pause_key} Pause/Resume  ", style=COLORS["muted"])
        f.append(f"{self._stop_key} Stop  ", style=COLORS["muted"])
        return Panel(Align.center(f), border_style=COLORS["border"])


def make_logger(dash: Dashboard, verbose: bool = False) -> Callable[[str, str], None]:
    # DEBUG (misses, needle loads) only shows up when verbose is on
    def log(msg: str, level: str = "INFO") -> None:
        if level == "DEBUG" and not verbose:
            return
        dash.log(msg, level)
        dash.update()
    return log
