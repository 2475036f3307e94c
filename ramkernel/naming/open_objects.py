"""Table of opened named objects and the operations performed through it."""

from __future__ import annotations

import heapq
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from ramkernel.naming.lookup import lookup_named_object
from ramkernel.naming.traits import (
    BadObjectError,
    DirectoryObject,
    DirEntry,
    FileObject,
    FileSystem,
    InvalidHandleError,
    NoHandlesError,
    OpenOptions,
    SeekOrigin,
)

MAX_OPEN_OBJECTS = 0x1000

_Named = Union[FileObject, DirectoryObject]


@dataclass
class OpenedObject:
    """A named object together with its current position and open options.

    For files `pos` is the byte offset; for directories it is the number of
    the next entry to be read.
    """

    named_object: _Named
    pos: int = 0
    options: OpenOptions = OpenOptions(0)

    def as_file(self) -> FileObject:
        if not isinstance(self.named_object, FileObject):
            raise BadObjectError("handle does not refer to a file")
        return self.named_object

    def as_dir(self) -> DirectoryObject:
        if not isinstance(self.named_object, DirectoryObject):
            raise BadObjectError("handle does not refer to a directory")
        return self.named_object


class OpenObjectTable:
    """Maps handles to opened objects of one file system."""

    def __init__(self, file_system: FileSystem, capacity: int = MAX_OPEN_OBJECTS) -> None:
        if capacity < 0:
            raise ValueError(f"invalid capacity {capacity}")
        self._file_system = file_system
        self._opened: Dict[int, OpenedObject] = {}
        self._free: List[int] = list(range(capacity))
        self._lock = threading.RLock()

    def open(self, path: str, flags: OpenOptions) -> int:
        """Open the object at absolute `path` and return a new handle."""
        try:
            found = lookup_named_object(self._file_system, path)
        except OSError as exc:
            raise FileNotFoundError(f"{path!r} does not exist") from exc

        if flags & OpenOptions.DIRECTORY and not isinstance(found, DirectoryObject):
            raise NotADirectoryError(f"{path!r} is not a directory")

        with self._lock:
            if not self._free:
                raise NoHandlesError("no free handles left")
            handle = heapq.heappop(self._free)
            self._opened[handle] = OpenedObject(found, 0, flags)
        return handle

    def _lookup(self, handle: int) -> OpenedObject:
        opened = self._opened.get(handle)
        if opened is None:
            raise InvalidHandleError(f"invalid handle {handle}")
        return opened

    def write(self, handle: int, data: bytes) -> int:
        """Write `data` at the current position and advance it."""
        with self._lock:
            opened = self._lookup(handle)
            written = opened.as_file().write(data, opened.pos, opened.options)
            opened.pos += written
            return written

    def read(self, handle: int, size: int) -> bytes:
        """Read up to `size` bytes from the current position and advance it."""
        with self._lock:
            opened = self._lookup(handle)
            data = opened.as_file().read(size, opened.pos, opened.options)
            opened.pos += len(data)
            return data

    def seek(self, handle: int, offset: int, origin: SeekOrigin) -> int:
        """Move the position of a file to `offset` from `origin`; return the new position."""
        with self._lock:
            opened = self._lookup(handle)
            file = opened.as_file()
            if origin is SeekOrigin.START:
                new_pos = offset
            elif origin is SeekOrigin.END:
                new_pos = file.stat().size + offset
            else:
                new_pos = opened.pos + offset
            if new_pos < 0:
                raise ValueError(f"seek to negative position {new_pos}")
            opened.pos = new_pos
            return new_pos

    def readdir(self, handle: int) -> Optional[DirEntry]:
        """Next entry of an open directory, or None after the last one."""
        with self._lock:
            opened = self._lookup(handle)
            entry = opened.as_dir().readdir(opened.pos)
            opened.pos += 1
            return entry

    def close(self, handle: int) -> None:
        """Release `handle` so that it can be handed out again."""
        with self._lock:
            if self._opened.pop(handle, None) is None:
                raise InvalidHandleError(f"invalid handle {handle}")
            heapq.heappush(self._free, handle)