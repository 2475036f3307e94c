"""Kernel logger writing colourised records to one or several output streams."""

from __future__ import annotations

import enum
import threading
import time
from typing import Callable, List, Optional, Protocol

FOREGROUND_CYAN = "\x1b[36m"
FOREGROUND_MAGENTA = "\x1b[35m"
FOREGROUND_DEFAULT = "\x1b[39m"
FOREGROUND_BRIGHT_WHITE = "\x1b[97m"
FOREGROUND_BRIGHT_GREEN = "\x1b[92m"
FOREGROUND_BRIGHT_BLUE = "\x1b[94m"
FOREGROUND_BRIGHT_YELLOW = "\x1b[93m"
FOREGROUND_BRIGHT_RED = "\x1b[91m"


class OutputStream(Protocol):
    """Anything that accepts text."""

    def write(self, text: str) -> object:
        ...


class Level(enum.IntEnum):
    """Severity of a record; lower values are more severe."""

    ERROR = 1
    WARN = 2
    INFO = 3
    DEBUG = 4
    TRACE = 5


_COLORS = {
    Level.TRACE: FOREGROUND_BRIGHT_WHITE,
    Level.DEBUG: FOREGROUND_BRIGHT_GREEN,
    Level.INFO: FOREGROUND_BRIGHT_BLUE,
    Level.WARN: FOREGROUND_BRIGHT_YELLOW,
    Level.ERROR: FOREGROUND_BRIGHT_RED,
}

_TOKENS = {
    Level.TRACE: "TRC",
    Level.DEBUG: "DBG",
    Level.INFO: "INF",
    Level.WARN: "WRN",
    Level.ERROR: "ERR",
}


def ansi_color(level: Level) -> str:
    """Escape sequence used to colour records of `level`."""
    return _COLORS[Level(level)]


def level_token(level: Level) -> str:
    """Three-letter token shown for `level`."""
    return _TOKENS[Level(level)]


class Logger:
    """Dispatches log records to registered streams, or to a serial port when there are none."""

    def __init__(
        self,
        level: Level = Level.INFO,
        serial: Optional[OutputStream] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.level = Level(level)
        self.serial = serial
        self._streams: List[OutputStream] = []
        self._lock = threading.RLock()
        if clock is None:
            start = time.monotonic()

            def clock() -> int:
                return int((time.monotonic() - start) * 1000)

        self._clock = clock

    def register(self, stream: OutputStream) -> None:
        """Add `stream` to the outputs."""
        with self._lock:
            self._streams.append(stream)

    def remove(self, stream: OutputStream) -> None:
        """Remove every registration of this very `stream` object."""
        with self._lock:
            self._streams = [s for s in self._streams if s is not stream]

    def enabled(self, level: Level) -> bool:
        """True if records of `level` pass the logger's level."""
        return Level(level) <= self.level

    def log(
        self,
        level: Level,
        message: str,
        file: Optional[str] = None,
        line: Optional[int] = None,
    ) -> Optional[str]:
        """Write a record and return its text, or None if `level` is filtered out."""
        if not self.enabled(level):
            return None
        level = Level(level)
        file_name = (file or "unknown").split("/")[-1] or "unknown"
        line_no = line if line is not None else 0

        with self._lock:
            streams = list(self._streams)

        if not streams:
            text = (
                f"{FOREGROUND_CYAN}[0.000]{ansi_color(level)}[{level_token(level)}]"
                f"{FOREGROUND_MAGENTA}[{file_name}] {FOREGROUND_DEFAULT}{message}\n"
            )
            if self.serial is not None:
                self.serial.write(text)
            return text

        systime = self._clock()
        seconds, fraction = divmod(systime, 1000)
        text = (
            f"{FOREGROUND_CYAN}[{seconds}.{fraction:03}]"
            f"{ansi_color(level)}[{level_token(level)}]"
            f"{FOREGROUND_MAGENTA}[{file_name}@{line_no:03}]"
            f"{FOREGROUND_DEFAULT} {message}\n"
        )
        for stream in streams:
            stream.write(text)
        return text