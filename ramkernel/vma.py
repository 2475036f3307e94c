"""Virtual memory areas and the page-level types they are built from."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator

from ramkernel.frames import PAGE_SIZE

TAG_SIZE = 8
_ADDRESS_LIMIT = 1 << 64


class MemorySpace(enum.Enum):
    KERNEL = "Kernel"
    USER = "User"


class VmaType(enum.Enum):
    CODE = "Code"
    HEAP = "Heap"
    ENVIRONMENT = "Environment"
    DEVICE_MEMORY = "DeviceMemory"
    USER_STACK = "UserStack"
    KERNEL_STACK = "KernelStack"
    ANONYMOUS = "Anonymous"


class PageTableFlags(enum.IntFlag):
    """x86-64 page table entry flags."""

    PRESENT = 1 << 0
    WRITABLE = 1 << 1
    USER_ACCESSIBLE = 1 << 2
    WRITE_THROUGH = 1 << 3
    NO_CACHE = 1 << 4
    ACCESSED = 1 << 5
    DIRTY = 1 << 6
    HUGE_PAGE = 1 << 7
    GLOBAL = 1 << 8
    NO_EXECUTE = 1 << 63


def _check_page_address(addr: int, what: str) -> None:
    if not 0 <= addr < _ADDRESS_LIMIT:
        raise ValueError(f"{what} address {addr:#x} is out of range")
    if addr % PAGE_SIZE:
        raise ValueError(f"{what} address {addr:#x} is not page aligned")


def page_from_address(addr: int) -> int:
    """Return `addr` as a page address, which it must already be."""
    _check_page_address(addr, "page")
    return addr


@dataclass(frozen=True, order=True)
class PageRange:
    """Half-open range of virtual pages, given by page-aligned addresses."""

    start: int
    end: int

    def __post_init__(self) -> None:
        _check_page_address(self.start, "start")
        _check_page_address(self.end, "end")
        if self.end < self.start:
            raise ValueError(
                f"page range end {self.end:#x} lies below start {self.start:#x}"
            )

    def page_count(self) -> int:
        """Number of pages in the range."""
        return (self.end - self.start) // PAGE_SIZE

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end, PAGE_SIZE))


@dataclass(frozen=True)
class VirtualMemoryArea:
    """A tagged range of pages in one memory space."""

    space: MemorySpace
    range: PageRange
    typ: VmaType
    tag: bytes = b"-" * TAG_SIZE

    def __post_init__(self) -> None:
        if len(self.tag) != TAG_SIZE:
            raise ValueError(f"tag must be exactly {TAG_SIZE} bytes")

    @classmethod
    def new_with_tag(
        cls, space: MemorySpace, range: PageRange, typ: VmaType, tag: str
    ) -> "VirtualMemoryArea":
        """Area tagged with `tag`, cut or padded with dashes to the tag size."""
        raw = tag.encode("utf-8")[:TAG_SIZE]
        return cls(space, range, typ, raw.ljust(TAG_SIZE, b"-"))

    @classmethod
    def new_with_id(
        cls, space: MemorySpace, range: PageRange, typ: VmaType, tid: int
    ) -> "VirtualMemoryArea":
        """Area tagged with the decimal thread id, right aligned."""
        if tid < 0:
            raise ValueError(f"invalid thread id {tid}")
        digits = str(tid)[-TAG_SIZE:] if tid > 0 else ""
        return cls(space, range, typ, digits.rjust(TAG_SIZE, "-").encode("ascii"))

    @classmethod
    def from_address(
        cls, start: int, size: int, space: MemorySpace, typ: VmaType
    ) -> "VirtualMemoryArea":
        """Area starting at `start` covering `size` bytes, rounded up to whole pages."""
        start_page = page_from_address(start)
        count = -(-size // PAGE_SIZE)
        return cls(space, PageRange(start_page, start_page + count * PAGE_SIZE), typ)

    def start(self) -> int:
        return self.range.start

    def end(self) -> int:
        return self.range.end

    def overlaps_with(self, other: "VirtualMemoryArea") -> bool:
        return self.range.end > other.range.start and self.range.start < other.range.end

    def check_and_enforce_consistency(self, flags: PageTableFlags) -> PageTableFlags:
        """Grant user access for user areas and withdraw it for kernel areas."""
        user = int(PageTableFlags.USER_ACCESSIBLE)
        if self.space is MemorySpace.USER:
            return PageTableFlags(int(flags) | user)
        return PageTableFlags(int(flags) & ~user)

    def __str__(self) -> str:
        try:
            tag_str = self.tag.decode("utf-8")
        except UnicodeDecodeError:
            tag_str = "<invalid>"
        quoted = tag_str.replace("\\", "\\\\").replace('"', '\\"')
        return (
            f"   VMA {self.typ.value}, [0x{self.range.start:x}; 0x{self.range.end:x}], "
            f"#pages: {self.range.page_count()}, tag: \"{quoted}\""
        )