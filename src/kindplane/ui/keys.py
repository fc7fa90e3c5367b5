"""Key input for the interactive dashboard.

Puts the controlling terminal in cbreak mode and delivers decoded key
names through the running event loop, so the dashboard never blocks on
stdin. Ctrl+C still raises SIGINT in cbreak mode and is handled by the
command's signal handler.
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Callable
from typing import TextIO

ESCAPE_SEQUENCES = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\x1b[H": "home",
    "\x1b[F": "end",
    "\x1b[5~": "pgup",
    "\x1b[6~": "pgdown",
}

CONTROL_KEYS = {
    "\x03": "ctrl+c",
    "\x04": "ctrl+d",
    "\x15": "ctrl+u",
    "\r": "enter",
    "\n": "enter",
}


def parse_keys(data: str) -> list[str]:
    """Split raw terminal input into key names."""
    keys: list[str] = []
    i = 0
    while i < len(data):
        if data[i] == "\x1b":
            for sequence, name in ESCAPE_SEQUENCES.items():
                if data.startswith(sequence, i):
                    keys.append(name)
                    i += len(sequence)
                    break
            else:
                keys.append("esc")
                i += 1
            continue
        keys.append(CONTROL_KEYS.get(data[i], data[i]))
        i += 1
    return keys


class TerminalKeys:
    """Cbreak-mode key reader bound to the running event loop."""

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stdin
        self._fd: int | None = None
        self._saved_attrs: list | None = None
        self._on_key: Callable[[str], None] | None = None

    def start(self, on_key: Callable[[str], None]) -> bool:
        """Begin delivering keys to ``on_key``.

        Returns:
            False when stdin is not a POSIX terminal; no keys will arrive.
        """
        if os.name != "posix" or not self.stream.isatty():
            return False

        import termios
        import tty

        fd = self.stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._fd = fd
        self._on_key = on_key
        asyncio.get_running_loop().add_reader(fd, self._on_readable)
        return True

    def stop(self) -> None:
        if self._fd is None:
            return

        import termios

        asyncio.get_running_loop().remove_reader(self._fd)
        if self._saved_attrs is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
        self._fd = None
        self._saved_attrs = None

    def _on_readable(self) -> None:
        if self._fd is None or self._on_key is None:
            return
        raw = os.read(self._fd, 64)
        if not raw:
            # EOF or hangup: the fd stays readable forever
            self.stop()
            return
        for key in parse_keys(raw.decode(errors="ignore")):
            self._on_key(key)
