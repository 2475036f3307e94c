"""Public interface of the naming service."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

from ramkernel.naming.lookup import lookup_dir
from ramkernel.naming.open_objects import OpenObjectTable
from ramkernel.naming.stat import Mode
from ramkernel.naming.tmpfs import TmpFs
from ramkernel.naming.traits import (
    DirectoryObject,
    DirEntry,
    FileObject,
    FileSystem,
    OpenOptions,
    SeekOrigin,
)

_log = logging.getLogger(__name__)

_MAX_NAME_BYTES = 255


def _split_parent(path: str) -> Tuple[str, str]:
    components = path.split("/")
    name = components.pop()
    parent = "/" if len(components) == 1 else "/".join(components)
    return parent, name


class NamingService:
    """Named objects rooted in one file system, with a current working directory."""

    def __init__(self, file_system: Optional[FileSystem] = None) -> None:
        self._root = file_system if file_system is not None else TmpFs()
        self._table = OpenObjectTable(self._root)
        self._cwd = "/"
        self._cwd_lock = threading.Lock()
        _log.info("naming service initialized")

    def open(self, path: str, flags: OpenOptions) -> int:
        """Open `path`, creating an empty file first if CREATE is given and opening fails."""
        try:
            return self._table.open(path, flags)
        except OSError:
            if not flags & OpenOptions.CREATE:
                raise
        self.touch(path)
        return self._table.open(path, flags)

    def write(self, handle: int, data: bytes) -> int:
        """Write `data` into the object behind `handle`; return the bytes written."""
        return self._table.write(handle, data)

    def read(self, handle: int, size: int) -> bytes:
        """Read up to `size` bytes from the object behind `handle`."""
        return self._table.read(handle, size)

    def seek(self, handle: int, offset: int, origin: SeekOrigin) -> int:
        """Move the file position to `offset` from `origin`; return the new position."""
        return self._table.seek(handle, offset, origin)

    def close(self, handle: int) -> None:
        """Close the object behind `handle`."""
        self._table.close(handle)

    def mkdir(self, path: str) -> DirectoryObject:
        """Create a directory at `path`; any failure raises NotADirectoryError."""
        parent, name = _split_parent(path)
        try:
            return lookup_dir(self._root, parent).create_dir(name, Mode(0))
        except OSError as exc:
            raise NotADirectoryError(f"cannot create directory {path!r}") from exc

    def touch(self, path: str) -> FileObject:
        """Create an empty file at `path`; any failure raises NotADirectoryError."""
        parent, name = _split_parent(path)
        try:
            return lookup_dir(self._root, parent).create_file(name, Mode(0))
        except OSError as exc:
            raise NotADirectoryError(f"cannot create file {path!r}") from exc

    def readdir(self, handle: int) -> Optional[DirEntry]:
        """Next entry of the directory behind `handle`, or None when exhausted."""
        entry = self._table.readdir(handle)
        if entry is None:
            return None
        name = entry.name.encode("utf-8")[:_MAX_NAME_BYTES].decode("utf-8", "ignore")
        return DirEntry(entry.file_type, name)

    def cwd(self) -> str:
        """The current working directory."""
        with self._cwd_lock:
            return self._cwd

    def cd(self, path: str) -> None:
        """Change the working directory to the absolute `path`."""
        try:
            lookup_dir(self._root, path)
        except OSError as exc:
            raise NotADirectoryError(f"{path!r} is not a directory") from exc
        with self._cwd_lock:
            self._cwd = path