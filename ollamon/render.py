"""Frame renderer — fixed single-screen layout drawn with ANSI escapes.

render() is a pure Frame → lines function. draw() adds the cursor handling:
the first frame clears the screen, later frames home the cursor and overwrite
in place (each line clears its own tail, the frame clears below itself), so
the screen never blanks between refreshes.
"""

from __future__ import annotations

import math
import re
import sys
from datetime import datetime, timezone

from ollamon.models import (
    DeviceSnapshot,
    Frame,
    InstalledModelRecord,
    LoadedModelRecord,
    ServiceSnapshot,
)

# ---- ANSI ----

CSI = "\033["
RESET = f"{CSI}0m"
BOLD = f"{CSI}1m"
UNDERLINE = f"{CSI}4m"
RED = f"{CSI}31m"
GREEN = f"{CSI}32m"
YELLOW = f"{CSI}33m"
GREY = f"{CSI}90m"
TITLE = f"{CSI}1;37;44m"      # bold white on blue
GPU_HEADER = f"{CSI}1;36m"
RUNNING_HEADER = f"{CSI}1;35m"
CATALOG_HEADER = f"{CSI}1;34m"
ERROR_HEADER = f"{CSI}1;31m"

CLEAR_SCREEN = f"{CSI}2J{CSI}H"
CURSOR_HOME = f"{CSI}H"
CLEAR_EOL = f"{CSI}K"
CLEAR_EOS = f"{CSI}J"

# ---- layout ----

GAUGE_WIDTH = 30
RUNNING_NAME_MAX = 29
CATALOG_NAME_MAX = 34
CATALOG_LIMIT = 10
RUNNING_COLUMNS = (("MODEL", 30), ("SIZE", 12), ("PARAMS", 12), ("QUANT", 10), ("EXPIRES", 12))
CATALOG_COLUMNS = (("MODEL", 35), ("SIZE", 12))

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]

_ISO_PREFIX = re.compile(r"\s*([+-]?\d+)-([+-]?\d+)-([+-]?\d+)T\s*([+-]?\d+):\s*([+-]?\d+):\s*([+-]?\d+)")


def format_bytes(size: int) -> str:
    """1536 → '1.5 KB'. Divides by 1024 while the value is still ≥ 1024."""
    value = float(size)
    unit = 0
    while value >= 1024.0 and unit < len(SIZE_UNITS) - 1:
        value /= 1024.0
        unit += 1
    return f"{value:.1f} {SIZE_UNITS[unit]}"


def format_countdown(expires_at: str, now: datetime | None = None) -> str:
    """Time left until an ISO-8601 UTC timestamp, e.g. '4m 12s'.

    Only the YYYY-MM-DDTHH:MM:SS prefix is read; fractional seconds and any
    zone suffix are ignored and the value is taken as UTC.
    """
    if not expires_at:
        return "N/A"
    match = _ISO_PREFIX.match(expires_at)
    if not match:
        return expires_at
    try:
        expires = datetime(*(int(g) for g in match.groups()), tzinfo=timezone.utc)
    except ValueError:
        return expires_at

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    diff = (expires - now).total_seconds()
    if diff <= 0:
        return "Expired"

    minutes = int(diff // 60)
    seconds = int(diff) % 60
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def gauge_fill(percent: float, width: int = 20) -> int:
    # half cells round up
    return max(0, min(width, math.floor(percent / 100.0 * width + 0.5)))


def gauge(percent: float, width: int = 20) -> str:
    """'[|||||     ]' with width cells between the brackets."""
    filled = gauge_fill(percent, width)
    return "[" + "|" * filled + " " * (width - filled) + "]"


def threshold_color(value: float, high: float, mid: float) -> str:
    if value > high:
        return RED
    if value > mid:
        return YELLOW
    return GREEN


def _row(columns, values) -> str:
    return "".join(str(v).ljust(w) for (_, w), v in zip(columns, values))


def _header(columns) -> str:
    return "".join(title.ljust(w) for title, w in columns)


class Renderer:
    """Turns a Frame into terminal output.

    The only state is whether the screen has been cleared yet.
    """

    def __init__(self, refresh_s: int = 1, clear: bool = True, width: int = 80):
        self.refresh_s = refresh_s
        self.clear = clear
        self.width = width
        self._first = True

    # ---- sections ----

    def title_lines(self, frame: Frame) -> list[str]:
        stamp = frame.captured_at.strftime("%Y-%m-%d %H:%M:%S")
        label = " OLLAMA MONITOR"
        pad = max(1, self.width - len(label) - len(stamp) - 1)
        return [f"{TITLE}{label}{' ' * pad}{stamp} {RESET}", ""]

    def gpu_lines(self, devices: tuple[DeviceSnapshot, ...]) -> list[str]:
        lines = [f"{GPU_HEADER}=== GPU Status ==={RESET}"]
        if not any(d.available for d in devices):
            lines.append(f"{YELLOW}  GPU monitoring unavailable (no telemetry backend){RESET}")
            return lines

        for dev in devices:
            if not dev.available:
                lines.append(f"  {BOLD}GPU {dev.index}:{RESET} {dev.name} (unavailable)")
                continue
            lines.append(f"  {BOLD}GPU {dev.index}:{RESET} {dev.name}")

            vram = clamp_percent(dev.vram_usage_percent)
            color = threshold_color(vram, 90, 70)
            lines.append(
                f"  {BOLD}VRAM:{RESET} {color}{gauge(vram, GAUGE_WIDTH)} {vram:.1f}% "
                f"({dev.used_vram_gb:.2f}/{dev.total_vram_gb:.2f} GB){RESET}"
            )

            util = clamp_percent(dev.utilization_percent)
            color = threshold_color(util, 90, 50)
            lines.append(f"  {BOLD}Util:{RESET} {color}{gauge(util, GAUGE_WIDTH)} {util:.0f}%{RESET}")

            color = threshold_color(dev.temperature_c, 80, 60)
            lines.append(
                f"  {BOLD}Temp:{RESET} {color}{dev.temperature_c} C{RESET}  "
                f"{BOLD}Power:{RESET} {dev.power_watts} W"
            )
        return lines

    def service_lines(self, service: ServiceSnapshot, now: datetime) -> list[str]:
        if not service.reachable:
            return [
                "",
                f"{ERROR_HEADER}=== Ollama Status ==={RESET}",
                f"  {RED}Cannot connect to Ollama server{RESET}",
                f"  {GREY}Make sure Ollama is running (ollama serve){RESET}",
            ]
        return self.running_lines(service.loaded, now)

    def running_lines(self, models: tuple[LoadedModelRecord, ...], now: datetime) -> list[str]:
        lines = ["", f"{RUNNING_HEADER}=== Running Models ==={RESET}"]
        if not models:
            lines.append(f"  {YELLOW}No models currently loaded{RESET}")
            return lines

        lines.append(f"  {UNDERLINE}{_header(RUNNING_COLUMNS)}{RESET}")
        name_width = RUNNING_COLUMNS[0][1]
        for m in models:
            rest = _row(RUNNING_COLUMNS[1:], (
                format_bytes(m.size_bytes),
                m.parameter_size,
                m.quantization_level,
                format_countdown(m.expires_at, now),
            ))
            name = truncate(m.name, RUNNING_NAME_MAX).ljust(name_width)
            lines.append(f"  {GREEN}{name}{RESET}{rest}")
        return lines

    def catalog_lines(self, models: tuple[InstalledModelRecord, ...]) -> list[str]:
        lines = ["", f"{CATALOG_HEADER}=== Available Models ({len(models)}) ==={RESET}"]
        if not models:
            lines.append(f"  {YELLOW}No models installed{RESET}")
            return lines

        lines.append(f"  {UNDERLINE}{_header(CATALOG_COLUMNS)}{RESET}")
        for m in models[:CATALOG_LIMIT]:
            lines.append("  " + _row(CATALOG_COLUMNS, (truncate(m.name, CATALOG_NAME_MAX),
                                                       format_bytes(m.size_bytes))))
        if len(models) > CATALOG_LIMIT:
            lines.append(f"  {GREY}... and {len(models) - CATALOG_LIMIT} more{RESET}")
        return lines

    def footer_lines(self) -> list[str]:
        return ["", f"{GREY}Press Ctrl+C to exit | Refreshing every {self.refresh_s}s{RESET}"]

    # ---- output ----

    def render(self, frame: Frame) -> list[str]:
        now = frame.captured_at.astimezone(timezone.utc)
        return [
            *self.title_lines(frame),
            *self.gpu_lines(frame.devices),
            *self.service_lines(frame.service, now),
            *self.catalog_lines(frame.catalog),
            *self.footer_lines(),
        ]

    def compose(self, frame: Frame) -> str:
        """Full output for one frame, including cursor control."""
        lines = self.render(frame)
        if not self.clear:
            return "\n".join(lines) + "\n"

        prefix = CLEAR_SCREEN if self._first else CURSOR_HOME
        self._first = False
        return prefix + "".join(line + CLEAR_EOL + "\n" for line in lines) + CLEAR_EOS

    def draw(self, frame: Frame, stream=None) -> None:
        stream = stream or sys.stdout
        stream.write(self.compose(frame))
        stream.flush()
