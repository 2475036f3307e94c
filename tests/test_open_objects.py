import pytest

from ramkernel.naming.open_objects import MAX_OPEN_OBJECTS, OpenObjectTable
from ramkernel.naming.stat import Mode
from ramkernel.naming.tmpfs import TmpFs
from ramkernel.naming.traits import (
    BadObjectError,
    FileType,
    InvalidHandleError,
    NoHandlesError,
    OpenOptions,
    SeekOrigin,
)

NONE = OpenOptions(0)


@pytest.fixture
def fs():
    fs = TmpFs()
    root = fs.root_dir()
    root.create_file("file", Mode(0))
    sub = root.create_dir("dir", Mode(0))
    sub.create_file("inner", Mode(0))
    sub.create_dir("nested", Mode(0))
    return fs


@pytest.fixture
def table(fs):
    return OpenObjectTable(fs)


def test_open_missing_path(table):
    with pytest.raises(FileNotFoundError):
        table.open("/missing", NONE)


def test_open_file_as_directory(table):
    with pytest.raises(NotADirectoryError):
        table.open("/file", OpenOptions.DIRECTORY)


def test_first_handle_is_zero_and_handles_distinct(table):
    first = table.open("/file", NONE)
    second = table.open("/dir", OpenOptions.DIRECTORY)
    assert first == 0
    assert second != first


def test_closed_handle_is_reused(table):
    handle = table.open("/file", NONE)
    table.open("/dir", NONE)
    table.close(handle)
    assert table.open("/file", NONE) == handle


def test_write_then_read_round_trip(table):
    handle = table.open("/file", NONE)
    assert table.write(handle, b"hello world") == len(b"hello world")
    assert table.read(handle, 5) == b""
    assert table.seek(handle, 0, SeekOrigin.START) == 0
    assert table.read(handle, 5) == b"hello"
    assert table.read(handle, 100) == b" world"


def test_seek_from_end_appends(table):
    handle = table.open("/file", NONE)
    table.write(handle, b"abc")
    table.seek(handle, 0, SeekOrigin.START)
    assert table.seek(handle, 0, SeekOrigin.END) == 3
    table.write(handle, b"def")
    table.seek(handle, 0, SeekOrigin.START)
    assert table.read(handle, 10) == b"abcdef"


def test_seek_current_moves_relative(table):
    handle = table.open("/file", NONE)
    table.write(handle, b"0123456789")
    table.seek(handle, 2, SeekOrigin.START)
    table.seek(handle, 3, SeekOrigin.CURRENT)
    assert table.read(handle, 2) == b"56"


def test_position_is_per_handle(table):
    writer = table.open("/file", NONE)
    table.write(writer, b"shared")
    reader = table.open("/file", NONE)
    assert table.read(reader, 6) == b"shared"


def test_readdir_lists_entries_then_none(table):
    handle = table.open("/dir", OpenOptions.DIRECTORY)
    first = table.readdir(handle)
    second = table.readdir(handle)
    assert (first.name, first.file_type) == ("inner", FileType.REGULAR)
    assert (second.name, second.file_type) == ("nested", FileType.DIRECTORY)
    assert table.readdir(handle) is None


def test_read_on_directory_is_bad_object(table):
    handle = table.open("/dir", NONE)
    with pytest.raises(BadObjectError):
        table.read(handle, 1)


def test_readdir_on_file_is_bad_object(table):
    handle = table.open("/file", NONE)
    with pytest.raises(BadObjectError):
        table.readdir(handle)


def test_operations_on_unknown_handle(table):
    with pytest.raises(InvalidHandleError):
        table.write(7, b"x")
    with pytest.raises(InvalidHandleError):
        table.close(7)


def test_double_close(table):
    handle = table.open("/file", NONE)
    table.close(handle)
    with pytest.raises(InvalidHandleError):
        table.close(handle)
    with pytest.raises(InvalidHandleError):
        table.read(handle, 1)


def test_handles_run_out(table):
    handles = {table.open("/file", NONE) for _ in range(MAX_OPEN_OBJECTS)}
    assert len(handles) == MAX_OPEN_OBJECTS
    with pytest.raises(NoHandlesError):
        table.open("/file", NONE)