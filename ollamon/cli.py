"""Command-line entry point: parse flags, wire the pieces, run the loop."""

from __future__ import annotations

import logging
import signal
import sys
from argparse import ArgumentParser, Namespace
from datetime import datetime

from ollamon.client import DEFAULT_TIMEOUT_S, DEFAULT_URL, ModelServiceClient
from ollamon.gpu import TelemetrySource
from ollamon.loop import RefreshLoop
from ollamon.models import Frame
from ollamon.render import RESET, YELLOW, Renderer
from ollamon.terminal import enable_vt, set_cursor, set_title

log = logging.getLogger(__name__)

STARTUP_PAUSE_S = 2.0
WINDOW_TITLE = "Ollama Monitor"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# flags that take a value, by every spelling
VALUE_FLAGS = {
    "-r": "--refresh", "--refresh": "--refresh",
    "-u": "--url", "--url": "--url",
    "-n": "--count", "--count": "--count",
    "--timeout": "--timeout",
    "--log-file": "--log-file",
}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="ollamon",
        allow_abbrev=False,
        description="Ollama Monitor - a top-like monitor for Ollama",
    )
    parser.add_argument("-r", "--refresh", type=int, default=1, metavar="SEC",
                        help="Set refresh rate in seconds (default: 1)")
    parser.add_argument("-u", "--url", default=DEFAULT_URL,
                        help=f"Ollama server URL (default: {DEFAULT_URL})")
    parser.add_argument("-1", "--once", action="store_true",
                        help="Run once and exit (for testing)")
    parser.add_argument("-n", "--count", type=int, default=None, metavar="NUM",
                        help="Run N times then exit")
    parser.add_argument("--no-clear", action="store_true",
                        help="Don't clear screen (for piped output)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, metavar="SEC",
                        help=f"HTTP timeout per request phase (default: {DEFAULT_TIMEOUT_S:g})")
    parser.add_argument("--log-file", default=None, metavar="PATH",
                        help="Write debug logs to PATH")
    return parser


def attach_values(argv: list[str]) -> list[str]:
    """Glue each value flag to the token after it as '--flag=value'.

    The next token is always the value, even when it looks like an option
    ('-r -5'), and a value flag with nothing after it is dropped.
    """
    out = []
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in VALUE_FLAGS:
            if i + 1 < len(argv):
                out.append(f"{VALUE_FLAGS[arg]}={argv[i + 1]}")
            else:
                log.debug("ignoring %s without a value", arg)
            i += 2
            continue
        out.append(arg)
        i += 1
    return out


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse flags; unknown ones are ignored, numeric ones clamped to >= 1."""
    if argv is None:
        argv = sys.argv[1:]
    args, unknown = build_parser().parse_known_args(attach_values(argv))
    if unknown:
        log.debug("ignoring unknown arguments: %s", unknown)

    args.refresh = max(1, args.refresh)
    if args.count is not None:
        args.count = max(1, args.count)
    if args.once:
        args.count = 1
    args.timeout = max(0.1, args.timeout)
    return args


def build_frame(telemetry: TelemetrySource, client: ModelServiceClient) -> Frame:
    """One poll: GPU snapshot, /api/ps, /api/tags, in that order."""
    devices = tuple(telemetry.snapshot())
    service = client.poll()
    catalog = tuple(client.fetch_catalog())
    return Frame(devices=devices, service=service, catalog=catalog,
                 captured_at=datetime.now().astimezone())


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.log_file:
        logging.basicConfig(filename=args.log_file, level=logging.DEBUG, format=LOG_FORMAT)

    enable_vt()
    set_title(WINDOW_TITLE)

    client = ModelServiceClient(args.url, timeout=args.timeout)
    telemetry = TelemetrySource().open()
    renderer = Renderer(refresh_s=args.refresh, clear=not args.no_clear)
    loop = RefreshLoop(
        poll=lambda: build_frame(telemetry, client),
        draw=renderer.draw,
        interval=args.refresh,
        count=args.count,
    )

    def on_signal(signum, frame):
        loop.stop()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    try:
        if not client.probe():
            print(f"{YELLOW}Warning: Cannot connect to Ollama server at {args.url}{RESET}",
                  file=sys.stderr)
            print("Make sure Ollama is running. Will keep trying...", file=sys.stderr)
            loop.wait(STARTUP_PAUSE_S)

        if renderer.clear:
            set_cursor(False)
        loop.run()
    finally:
        telemetry.close()
        client.close()
        if renderer.clear:
            set_cursor(True)
        if args.count is None:
            print(f"\n{RESET}Exiting...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
