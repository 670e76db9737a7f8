"""Tests for the frame renderer and its formatting helpers."""

import io
import re
from datetime import datetime, timedelta, timezone

import pytest

from ollamon.models import (
    DeviceSnapshot,
    Frame,
    InstalledModelRecord,
    LoadedModelRecord,
    ServiceSnapshot,
)
from ollamon.render import (
    CLEAR_EOS,
    CLEAR_SCREEN,
    CURSOR_HOME,
    GREEN,
    RED,
    YELLOW,
    Renderer,
    clamp_percent,
    format_bytes,
    format_countdown,
    gauge,
    gauge_fill,
    threshold_color,
    truncate,
)

ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
NOW = datetime(2024, 1, 15, 10, 28, 30, tzinfo=timezone.utc)


def plain(lines):
    return [ANSI_RE.sub("", line) for line in lines]


def gpu(**kw):
    base = dict(available=True, index=0, name="RTX 4090", total_vram_gb=24.0,
                used_vram_gb=6.0, free_vram_gb=18.0, utilization_percent=37.0,
                temperature_c=55, power_watts=120)
    base.update(kw)
    return DeviceSnapshot(**base)


def frame(devices=(), service=None, catalog=()):
    return Frame(devices=tuple(devices),
                 service=service or ServiceSnapshot.unreachable(),
                 catalog=tuple(catalog),
                 captured_at=NOW)


class TestFormatBytes:
    @pytest.mark.parametrize("size, expected", [
        (0, "0.0 B"),
        (512, "512.0 B"),
        (1023, "1023.0 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (1073741824, "1.0 GB"),
        (5137025024, "4.8 GB"),
        (3 * 1024**4, "3.0 TB"),
        (2048 * 1024**4, "2048.0 TB"),
    ])
    def test_units(self, size, expected):
        assert format_bytes(size) == expected


class TestGauge:
    def test_default_width(self):
        assert gauge(50) == "[" + "|" * 10 + " " * 10 + "]"

    def test_clamped_high(self):
        assert gauge_fill(150) == 20
        assert gauge(150, 30) == "[" + "|" * 30 + "]"

    def test_clamped_low(self):
        assert gauge_fill(-5) == 0
        assert gauge(-5, 10) == "[" + " " * 10 + "]"

    def test_rounds(self):
        assert gauge_fill(26, 10) == 3
        assert gauge_fill(24, 10) == 2

    @pytest.mark.parametrize("percent, width, expected", [
        (15, 30, 5),
        (12.5, 20, 3),
        (25, 10, 3),
        (5, 10, 1),
    ])
    def test_half_cell_rounds_up(self, percent, width, expected):
        assert gauge_fill(percent, width) == expected

    def test_clamp_percent(self):
        assert clamp_percent(120.0) == 100.0
        assert clamp_percent(-1.0) == 0.0
        assert clamp_percent(42.5) == 42.5


class TestCountdown:
    def test_minutes_and_seconds(self):
        assert format_countdown("2024-01-15T10:30:00", NOW) == "1m 30s"

    def test_seconds_only(self):
        assert format_countdown("2024-01-15T10:29:15.123Z", NOW) == "45s"

    def test_zone_suffix_ignored(self):
        assert format_countdown("2024-01-15T10:33:30.83753-07:00", NOW) == "5m 0s"

    def test_expired(self):
        assert format_countdown("2024-01-15T10:00:00Z", NOW) == "Expired"

    def test_exactly_now_is_expired(self):
        assert format_countdown("2024-01-15T10:28:30", NOW) == "Expired"

    def test_empty(self):
        assert format_countdown("", NOW) == "N/A"

    def test_garbage_passes_through(self):
        assert format_countdown("soon-ish", NOW) == "soon-ish"

    def test_impossible_date_passes_through(self):
        assert format_countdown("2024-13-45T99:00:00Z", NOW) == "2024-13-45T99:00:00Z"

    def test_naive_now_is_utc(self):
        assert format_countdown("2024-01-15T10:30:00", NOW.replace(tzinfo=None)) == "1m 30s"

    def test_default_now_far_future(self):
        assert format_countdown("2999-01-01T00:00:00Z").endswith("s")


class TestTruncate:
    def test_long_name(self):
        name = "x" * 40
        out = truncate(name, 29)
        assert len(out) == 29
        assert out.endswith("...")
        assert out[:26] == name[:26]

    def test_short_name_untouched(self):
        assert truncate("llama3:8b", 29) == "llama3:8b"

    def test_exact_length_untouched(self):
        assert truncate("y" * 29, 29) == "y" * 29


class TestThresholdColor:
    def test_bands(self):
        assert threshold_color(95, 90, 70) == RED
        assert threshold_color(90, 90, 70) == YELLOW
        assert threshold_color(71, 90, 70) == YELLOW
        assert threshold_color(70, 90, 70) == GREEN


class TestRenderer:
    def test_unreachable_and_no_gpu(self):
        lines = plain(Renderer().render(frame()))
        text = "\n".join(lines)
        assert "OLLAMA MONITOR" in lines[0]
        assert "2024-01-15" in lines[0]
        assert "GPU monitoring unavailable" in text
        assert "Cannot connect to Ollama server" in text
        assert "Make sure Ollama is running (ollama serve)" in text
        assert "No models currently loaded" not in text
        assert "Available Models (0)" in text
        assert "No models installed" in text

    def test_reachable_but_empty(self):
        text = "\n".join(plain(Renderer().render(frame(service=ServiceSnapshot.reachable_with([])))))
        assert "No models currently loaded" in text
        assert "Cannot connect" not in text

    def test_title_right_aligned(self):
        line = plain(Renderer(width=80).render(frame()))[0]
        assert len(line) == 80
        assert line.rstrip().endswith(NOW.strftime("%Y-%m-%d %H:%M:%S"))

    def test_gpu_block(self):
        lines = plain(Renderer().render(frame(devices=[gpu()])))
        text = "\n".join(lines)
        assert "GPU 0: RTX 4090" in text
        vram = next(l for l in lines if "VRAM:" in l)
        assert "25.0% (6.00/24.00 GB)" in vram
        assert vram.count("|") == 8  # round(25% of 30)
        util = next(l for l in lines if "Util:" in l)
        assert util.endswith("37%")
        assert "55 C" in text
        assert "Power: 120 W" in text

    def test_gpu_colors(self):
        raw = Renderer().gpu_lines((gpu(used_vram_gb=23.0, utilization_percent=60.0, temperature_c=85),))
        vram = next(l for l in raw if "VRAM" in l)
        util = next(l for l in raw if "Util" in l)
        temp = next(l for l in raw if "Temp" in l)
        assert RED in vram
        assert YELLOW in util
        assert RED in temp

    def test_overfull_utilization_is_clamped(self):
        lines = plain(Renderer().render(frame(devices=[gpu(utilization_percent=140.0)])))
        util = next(l for l in lines if "Util:" in l)
        assert util.endswith("100%")
        assert util.count("|") == 30

    def test_fallback_device_zero_usage(self):
        dev = DeviceSnapshot(available=True, index=0, name="AMD GPU", total_vram_gb=16.0, free_vram_gb=16.0)
        text = "\n".join(plain(Renderer().render(frame(devices=[dev]))))
        assert "0.0% (0.00/16.00 GB)" in text
        assert "unavailable" not in text

    def test_unavailable_entry_alongside_available(self):
        devs = [gpu(), DeviceSnapshot(available=False, index=1, name="lost")]
        text = "\n".join(plain(Renderer().render(frame(devices=devs))))
        assert "GPU 1: lost (unavailable)" in text

    def test_running_table(self):
        model = LoadedModelRecord(
            name="a-very-long-model-name-that-goes-on-and-on:latest",
            size_bytes=5137025024, parameter_size="8.0B", quantization_level="Q4_0",
            expires_at="2024-01-15T10:30:00Z")
        lines = plain(Renderer().render(frame(service=ServiceSnapshot.reachable_with([model]))))
        header = next(l for l in lines if l.strip().startswith("MODEL") and "EXPIRES" in l)
        assert header.startswith("  MODEL")
        row = next(l for l in lines if "Q4_0" in l)
        assert row[2:32] == (model.name[:26] + "...").ljust(30)
        assert "4.8 GB" in row
        assert "8.0B" in row
        assert row.rstrip().endswith("1m 30s")

    def test_catalog_limit(self):
        catalog = [InstalledModelRecord(name=f"model-{i}", size_bytes=1024 * i) for i in range(13)]
        lines = plain(Renderer().render(frame(catalog=catalog)))
        text = "\n".join(lines)
        assert "Available Models (13)" in text
        assert "model-9" in text
        assert "model-10" not in text
        assert "... and 3 more" in text

    def test_catalog_exactly_ten_has_no_more_line(self):
        catalog = [InstalledModelRecord(name=f"m{i}") for i in range(10)]
        text = "\n".join(plain(Renderer().render(frame(catalog=catalog))))
        assert "more" not in text

    def test_catalog_name_truncated(self):
        catalog = [InstalledModelRecord(name="n" * 50, size_bytes=1536)]
        row = next(l for l in plain(Renderer().render(frame(catalog=catalog))) if "1.5 KB" in l)
        assert row[2:37] == ("n" * 31 + "...").ljust(35)

    def test_footer(self):
        lines = plain(Renderer(refresh_s=5).render(frame()))
        assert lines[-1] == "Press Ctrl+C to exit | Refreshing every 5s"

    def test_render_is_deterministic(self):
        f = frame(devices=[gpu()], service=ServiceSnapshot.reachable_with([]))
        r = Renderer()
        assert r.render(f) == r.render(f)


class TestDraw:
    def test_first_frame_clears_then_homes(self):
        r = Renderer()
        out = io.StringIO()
        r.draw(frame(), out)
        first = out.getvalue()
        assert first.startswith(CLEAR_SCREEN)
        assert first.endswith(CLEAR_EOS)

        out = io.StringIO()
        r.draw(frame(), out)
        second = out.getvalue()
        assert second.startswith(CURSOR_HOME)
        assert CLEAR_SCREEN not in second

    def test_no_clear_has_no_cursor_control(self):
        out = io.StringIO()
        r = Renderer(clear=False)
        r.draw(frame(), out)
        r.draw(frame(), out)
        text = out.getvalue()
        assert CURSOR_HOME not in text
        assert CLEAR_EOS not in text
        assert text.count("OLLAMA MONITOR") == 2


def test_countdown_handles_future_relative_to_now():
    later = (NOW + timedelta(minutes=10, seconds=5)).strftime("%Y-%m-%dT%H:%M:%S")
    assert format_countdown(later, NOW) == "10m 5s"
