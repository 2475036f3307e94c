"""File system keeping all data in main memory."""

from __future__ import annotations

import threading
from typing import List, Optional, Tuple, Union

from ramkernel.naming.stat import Mode, Stat
from ramkernel.naming.traits import (
    DirectoryObject,
    DirEntry,
    FileObject,
    FileSystem,
    FileType,
    OpenOptions,
)

_Node = Union["TmpFile", "TmpDir"]


class TmpFile(FileObject):
    """A growable in-memory file."""

    def __init__(self) -> None:
        self._data = bytearray()
        self._mode = Mode(0)
        self._lock = threading.RLock()

    def stat(self) -> Stat:
        with self._lock:
            return Stat(self._mode, len(self._data))

    def read(self, size: int, offset: int, options: OpenOptions) -> bytes:
        if size < 0 or offset < 0:
            raise ValueError("size and offset must not be negative")
        with self._lock:
            if offset > len(self._data):
                return b""
            return bytes(self._data[offset:offset + size])

    def write(self, data: bytes, offset: int, options: OpenOptions) -> int:
        if offset < 0:
            raise ValueError("offset must not be negative")
        with self._lock:
            end = offset + len(data)
            if end > len(self._data):
                self._data.extend(bytes(end - len(self._data)))
            self._data[offset:end] = data
            return len(data)

    def __repr__(self) -> str:
        return "TmpFsFile"


class TmpDir(DirectoryObject):
    """An in-memory directory keeping its entries in creation order."""

    def __init__(self) -> None:
        self._entries: List[Tuple[str, _Node]] = []
        self._stat = Stat(Mode(0), 0)
        self._lock = threading.RLock()

    def lookup(self, name: str) -> _Node:
        with self._lock:
            for entry_name, node in self._entries:
                if entry_name == name:
                    return node
        raise FileNotFoundError(f"no entry named {name!r}")

    def _add(self, name: str, node: _Node) -> _Node:
        with self._lock:
            if any(entry_name == name for entry_name, _ in self._entries):
                raise FileExistsError(f"entry {name!r} already exists")
            self._entries.append((name, node))
        return node

    def create_file(self, name: str, mode: Mode) -> TmpFile:
        return self._add(name, TmpFile())

    def create_dir(self, name: str, mode: Mode) -> "TmpDir":
        return self._add(name, TmpDir())

    def stat(self) -> Stat:
        return self._stat

    def readdir(self, index: int) -> Optional[DirEntry]:
        if index < 0:
            return None
        with self._lock:
            if index >= len(self._entries):
                return None
            name, node = self._entries[index]
        file_type = FileType.DIRECTORY if isinstance(node, TmpDir) else FileType.REGULAR
        return DirEntry(file_type, name)

    def __repr__(self) -> str:
        return "TmpFsDir"


class TmpFs(FileSystem):
    """In-memory file system."""

    def __init__(self) -> None:
        self._root = TmpDir()

    def root_dir(self) -> TmpDir:
        return self._root