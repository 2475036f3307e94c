"""Interfaces and shared types of the naming service."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Optional

from ramkernel.naming.stat import Mode, Stat


class NamingError(OSError):
    """Base class of errors specific to the naming service."""


class BadObjectError(NamingError):
    """An operation was applied to an object that does not support it."""


class InvalidHandleError(NamingError):
    """A handle does not refer to an open object."""


class NoHandlesError(NamingError):
    """No free handle is left for opening another object."""


class FileType(enum.Enum):
    REGULAR = "Regular"
    DIRECTORY = "Directory"


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory listing."""

    file_type: FileType
    name: str


class OpenOptions(enum.IntFlag):
    """Options given when opening a named object."""

    CREATE = 1 << 0
    DIRECTORY = 1 << 1


class SeekOrigin(enum.Enum):
    START = "Start"
    END = "End"
    CURRENT = "Current"


class FileObject:
    """Operations on a file; unsupported operations raise BadObjectError."""

    def stat(self) -> Stat:
        raise BadObjectError("object does not support stat")

    def read(self, size: int, offset: int, options: OpenOptions) -> bytes:
        """Read up to `size` bytes starting at `offset`."""
        raise BadObjectError("object does not support read")

    def write(self, data: bytes, offset: int, options: OpenOptions) -> int:
        """Write `data` at `offset` and return the number of bytes written."""
        raise BadObjectError("object does not support write")


class DirectoryObject(abc.ABC):
    """Operations on a directory."""

    @abc.abstractmethod
    def lookup(self, name: str) -> "FileObject | DirectoryObject":
        """Entry called `name`; raises FileNotFoundError if there is none."""

    @abc.abstractmethod
    def create_file(self, name: str, mode: Mode) -> FileObject:
        """Create an empty file called `name`."""

    @abc.abstractmethod
    def create_dir(self, name: str, mode: Mode) -> "DirectoryObject":
        """Create an empty directory called `name`."""

    @abc.abstractmethod
    def stat(self) -> Stat:
        """Metadata of this directory."""

    @abc.abstractmethod
    def readdir(self, index: int) -> Optional[DirEntry]:
        """Entry number `index`, or None past the last entry."""


class FileSystem(abc.ABC):
    """A file system with a single root directory."""

    @abc.abstractmethod
    def root_dir(self) -> DirectoryObject:
        """The root directory."""