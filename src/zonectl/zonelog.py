"""Per-zone output buffering so parallel zones never interleave."""

from __future__ import annotations

import sys
import threading
from typing import TextIO

_FLUSH_LOCK = threading.Lock()


class ZoneLog:
    """Collects the lines printed for one zone and writes them in one go."""

    def __init__(self, zone: str, stream: TextIO | None = None):
        self.zone = zone
        self.stream = stream
        self.lines: list[str] = []

    def print(self, msg: str = "") -> None:
        self.lines.extend(msg.split("\n"))

    def flush(self) -> None:
        """Write every buffered line under the shared lock and clear the buffer."""
        if not self.lines:
            return
        stream = self.stream or sys.stdout
        with _FLUSH_LOCK:
            stream.write("\n".join(self.lines) + "\n")
            stream.flush()
        self.lines = []
