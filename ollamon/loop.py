"""RefreshLoop — poll, draw, wait, repeat.

The wait is cut into short slices and the stop flag is checked between
slices, so stop() (typically from a SIGINT handler) takes effect within one
slice instead of after a whole refresh period. Calls already in flight are
allowed to finish.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable

from ollamon.models import Frame

log = logging.getLogger(__name__)

SLICE_S = 0.1


class LoopState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    RENDERING = "rendering"
    WAITING = "waiting"
    STOPPED = "stopped"


class RefreshLoop:
    """Drives poll → draw → wait.

    count=None runs until stop(); count=N stops after N frames (no trailing
    wait after the last one).
    """

    def __init__(self, poll: Callable[[], Frame], draw: Callable[[Frame], None],
                 interval: float, count: int | None = None, slice_s: float = SLICE_S):
        self._poll = poll
        self._draw = draw
        self.interval_s = interval
        self.count = count
        self.slice_s = slice_s
        self.state = LoopState.IDLE
        self.iterations = 0
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request shutdown. Safe from signal handlers and other threads."""
        self._stop.set()

    def wait(self, seconds: float) -> bool:
        """Sleep in slices; return True if stop() was requested."""
        deadline = time.monotonic() + seconds
        while not self._stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(self.slice_s, remaining))
        return True

    def run(self) -> int:
        """Blocking main loop. Returns the number of frames drawn."""
        try:
            while not self._stop.is_set():
                self.state = LoopState.POLLING
                frame = self._poll()
                if self._stop.is_set():
                    break

                self.state = LoopState.RENDERING
                self._draw(frame)
                self.iterations += 1

                if self.count is not None and self.iterations >= self.count:
                    break

                self.state = LoopState.WAITING
                if self.wait(self.interval_s):
                    break
        finally:
            self.state = LoopState.STOPPED
            log.debug("refresh loop stopped after %d frames", self.iterations)
        return self.iterations
