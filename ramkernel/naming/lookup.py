"""Resolution of absolute paths to named objects."""

from __future__ import annotations

from typing import Union

from ramkernel.naming.traits import DirectoryObject, FileObject, FileSystem


def is_absolute_path(path: str) -> bool:
    """True if `path` starts with a slash."""
    return path.startswith("/")


def lookup_named_object(
    root: FileSystem, path: str
) -> Union[FileObject, DirectoryObject]:
    """Resolve absolute `path` in `root`; raises FileNotFoundError if it fails."""
    if not is_absolute_path(path):
        raise FileNotFoundError(f"{path!r} is not an absolute path")
    current = root.root_dir()
    if path == "/":
        return current

    *parents, last = path.split("/")[1:]
    for component in parents:
        try:
            found = current.lookup(component)
        except OSError as exc:
            raise FileNotFoundError(f"{path!r} does not exist") from exc
        if not isinstance(found, DirectoryObject):
            raise FileNotFoundError(f"{component!r} in {path!r} is not a directory")
        current = found
    try:
        return current.lookup(last)
    except OSError as exc:
        raise FileNotFoundError(f"{path!r} does not exist") from exc


def lookup_dir(root: FileSystem, path: str) -> DirectoryObject:
    """Resolve `path` to a directory; raises NotADirectoryError for a file."""
    found = lookup_named_object(root, path)
    if not isinstance(found, DirectoryObject):
        raise NotADirectoryError(f"{path!r} is not a directory")
    return found