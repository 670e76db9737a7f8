"""ollamon — top-like terminal monitor for a local Ollama server and its GPUs.

Telemetry backends are TelemetryBackend subclasses that register themselves
in REGISTRY, in priority order, when ollamon.gpu is imported.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ollamon.gpu import TelemetryBackend

__version__ = "1.0.0"

# Output goes to the terminal frame; logging is opt-in via --log-file.
logging.getLogger(__name__).addHandler(logging.NullHandler())

REGISTRY: dict[str, type[TelemetryBackend]] = {}


def register(cls: type[TelemetryBackend]) -> type[TelemetryBackend]:
    """Decorator that adds a telemetry backend class to the global registry."""
    REGISTRY[cls.name] = cls
    return cls


class OllamonError(Exception):
    """Base class for errors raised inside ollamon."""


class TelemetryUnavailable(OllamonError):
    """A telemetry backend cannot be used on this system."""
