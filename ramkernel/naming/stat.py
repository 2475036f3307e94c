"""Metadata kept for every named object."""

from __future__ import annotations

from dataclasses import dataclass

MODE_FILE = 0x1
MODE_DIR = 0x2
MODE_LINK = 0x3


@dataclass(frozen=True)
class Mode:
    """Type bits of a named object."""

    value: int = 0

    def is_directory(self) -> bool:
        return (self.value & MODE_DIR) == MODE_DIR

    def is_file(self) -> bool:
        return (self.value & MODE_FILE) == MODE_FILE

    def is_link(self) -> bool:
        return (self.value & MODE_LINK) == MODE_LINK


@dataclass
class Stat:
    """Mode, size and timestamps of a named object."""

    mode: Mode
    size: int
    created_time: int = 0
    modified_time: int = 0
    accessed_time: int = 0

    @classmethod
    def zeroed(cls) -> "Stat":
        """An empty regular-file record."""
        return cls(Mode(MODE_FILE), 0)