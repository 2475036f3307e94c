import pytest

from ramkernel.naming.stat import Mode, Stat
from ramkernel.naming.traits import (
    BadObjectError,
    DirectoryObject,
    DirEntry,
    FileObject,
    FileSystem,
    FileType,
    NamingError,
    OpenOptions,
    SeekOrigin,
)


class _Bare(FileObject):
    pass


def test_default_file_stat_is_bad_object():
    with pytest.raises(BadObjectError):
        FileObject.stat(_Bare())


def test_default_file_read_is_bad_object():
    with pytest.raises(BadObjectError):
        _Bare().read(4, 0, OpenOptions(0))


def test_default_file_write_is_bad_object():
    with pytest.raises(BadObjectError):
        _Bare().write(b"abc", 0, OpenOptions(0))


def test_bad_object_caught_as_naming_and_os_error():
    with pytest.raises(NamingError):
        FileObject.read(_Bare(), 1, 0, OpenOptions(0))
    with pytest.raises(OSError):
        FileObject.write(_Bare(), b"x", 0, OpenOptions(0))


def test_directory_object_is_abstract():
    with pytest.raises(TypeError):
        DirectoryObject()


def test_file_system_is_abstract():
    with pytest.raises(TypeError):
        FileSystem()


def test_open_options_combine():
    flags = OpenOptions.CREATE | OpenOptions.DIRECTORY
    assert OpenOptions(flags.value) == flags
    assert OpenOptions.CREATE in OpenOptions(flags.value)
    assert OpenOptions.DIRECTORY in flags
    assert OpenOptions.DIRECTORY not in OpenOptions(OpenOptions.CREATE.value)


def test_dir_entry_equality():
    assert DirEntry(FileType.REGULAR, "a") == DirEntry(FileType.REGULAR, "a")
    assert DirEntry(FileType.REGULAR, "a") != DirEntry(FileType.DIRECTORY, "a")


def test_seek_origins_round_trip_and_distinct():
    origins = [SeekOrigin.START, SeekOrigin.END, SeekOrigin.CURRENT]
    assert [SeekOrigin(o.value) for o in origins] == origins
    assert len({o.value for o in origins}) == 3


def test_overridden_file_object_is_used():
    class Fixed(FileObject):
        def stat(self):
            return Stat(Mode(1), 7)

    assert Fixed().stat().size == 7
    with pytest.raises(BadObjectError):
        Fixed().read(1, 0, OpenOptions(0))