"""Terminal setup/teardown around the refresh loop."""

from __future__ import annotations

import os
import sys

STD_OUTPUT_HANDLE = -11
ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004


def enable_vt() -> bool:
    """Make a Windows console interpret ANSI escapes. No-op elsewhere."""
    if os.name != "nt":
        return True
    import ctypes
    kernel32 = ctypes.windll.kernel32
    handle = kernel32.GetStdHandle(STD_OUTPUT_HANDLE)
    mode = ctypes.c_uint()
    if not kernel32.GetConsoleMode(handle, ctypes.byref(mode)):
        return False
    return bool(kernel32.SetConsoleMode(handle, mode.value | ENABLE_VIRTUAL_TERMINAL_PROCESSING))


def set_title(title: str, stream=None) -> None:
    stream = stream or sys.stdout
    if not stream.isatty():
        return
    stream.write(f"\033]0;{title}\007")
    stream.flush()


def set_cursor(visible: bool, stream=None) -> None:
    stream = stream or sys.stdout
    stream.write("\033[?25h" if visible else "\033[?25l")
    stream.flush()
