"""Virtual memory management for one process address space."""

from __future__ import annotations

import logging
import threading
from typing import Iterator, List, Optional

from ramkernel.frames import PAGE_SIZE, FrameAllocator, FrameRange
from ramkernel.pages import Paging
from ramkernel.vma import (
    MemorySpace,
    PageRange,
    PageTableFlags,
    VirtualMemoryArea,
    VmaType,
)

_log = logging.getLogger(__name__)

DEFAULT_LINEAR_ADDRESS_BITS = 48


class MappingError(ValueError):
    """A frame range does not fit the virtual memory area it should back."""


def clone_address_space(other: "VirtualAddressSpace") -> Paging:
    """Copy all page tables of `other`; used during process creation."""
    return Paging.from_other(other.page_tables)


def create_kernel_address_space(allocator: FrameAllocator) -> Paging:
    """Page tables identity mapping all physical memory managed by `allocator`."""
    address_space = Paging(allocator, 4)
    limit = allocator.phys_limit() & ~(PAGE_SIZE - 1)
    address_space.map(
        PageRange(0, limit),
        MemorySpace.KERNEL,
        PageTableFlags.PRESENT | PageTableFlags.WRITABLE,
    )
    return address_space


def _last_usable_virtual_address(linear_address_bits: int) -> int:
    if linear_address_bits < 2:
        raise ValueError(f"invalid linear address width {linear_address_bits}")
    return (1 << (linear_address_bits - 1)) - 1


class VirtualAddressSpace:
    """Virtual memory areas and page tables of one process."""

    def __init__(
        self,
        page_tables: Paging,
        allocator: FrameAllocator,
        user_space_start: int,
        linear_address_bits: int = DEFAULT_LINEAR_ADDRESS_BITS,
    ) -> None:
        self.page_tables = page_tables
        self._allocator = allocator
        self._vmas: List[VirtualMemoryArea] = []
        self._lock = threading.RLock()
        self.first_usable_user_addr = user_space_start
        self.last_usable_user_addr = _last_usable_virtual_address(linear_address_bits)
        _log.info(
            "VirtualAddressSpace: first usable user address: 0x%x, "
            "last usable user address: 0x%x",
            self.first_usable_user_addr,
            self.last_usable_user_addr,
        )

    def __enter__(self) -> "VirtualAddressSpace":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def alloc_vma(
        self,
        start_page: Optional[int],
        num_pages: int,
        vma_space: MemorySpace,
        vma_type: VmaType,
        vma_tag: str,
    ) -> Optional[VirtualMemoryArea]:
        """Reserve `num_pages` pages, at `start_page` if given; None if impossible.

        No frames are allocated and no mappings are created.
        """
        if num_pages < 0:
            raise ValueError(f"invalid page count {num_pages}")
        if start_page is None:
            return self._alloc(num_pages, vma_space, vma_type, vma_tag)
        return self._alloc_at(start_page, num_pages, vma_space, vma_type, vma_tag)

    def alloc_pfr_for_vma(self, vma: VirtualMemoryArea) -> FrameRange:
        """Allocate frames for the full `vma`."""
        return self._allocator.alloc(vma.range.page_count())

    def alloc_pfr_for_partial_vma(
        self, vma: VirtualMemoryArea, page_range: PageRange
    ) -> Optional[FrameRange]:
        """Allocate frames for `page_range`, or None if it lies outside `vma`."""
        if page_range.start < vma.range.start or page_range.end > vma.range.end:
            return None
        return self._allocator.alloc(page_range.page_count())

    def map_pfr_for_vma(
        self,
        vma: VirtualMemoryArea,
        frame_range: FrameRange,
        flags: PageTableFlags,
    ) -> None:
        """Map `frame_range` onto the whole of `vma`."""
        if frame_range.frame_count() != vma.range.page_count():
            raise MappingError(
                f"{frame_range.frame_count()} frames cannot back "
                f"{vma.range.page_count()} pages"
            )
        flags = vma.check_and_enforce_consistency(flags) | PageTableFlags.PRESENT
        self.page_tables.map_physical(frame_range, vma.range, vma.space, flags)

    def map_pfr_for_partial_vma(
        self,
        vma: VirtualMemoryArea,
        frame_range: FrameRange,
        page_range: PageRange,
        flags: PageTableFlags,
    ) -> None:
        """Map `frame_range` onto `page_range`, which must lie within `vma`."""
        if frame_range.frame_count() != vma.range.page_count():
            raise MappingError(
                f"{frame_range.frame_count()} frames cannot back "
                f"{vma.range.page_count()} pages"
            )
        flags = vma.check_and_enforce_consistency(flags) | PageTableFlags.PRESENT
        if page_range.start < vma.range.start or page_range.end > vma.range.end:
            raise MappingError("page range lies outside the virtual memory area")
        self.page_tables.map_physical(frame_range, page_range, vma.space, flags)

    def map_partial_vma(
        self,
        vma: VirtualMemoryArea,
        page_range: PageRange,
        space: MemorySpace,
        flags: PageTableFlags,
    ) -> None:
        """Map `page_range` of a known `vma`, allocating frames as needed."""
        with self._lock:
            if vma not in self._vmas:
                raise ValueError("tried to map a non-existent VMA")
        if page_range.start < vma.start() or page_range.end > vma.end():
            raise ValueError("page range lies outside the virtual memory area")
        self.page_tables.map(page_range, space, flags)

    def iter_vmas(self) -> Iterator[VirtualMemoryArea]:
        """Iterate over a snapshot of all virtual memory areas."""
        with self._lock:
            snapshot = list(self._vmas)
        return iter(snapshot)

    def set_flags(self, pages: PageRange, flags: PageTableFlags) -> None:
        """Set page table `flags` for `pages`."""
        self.page_tables.set_flags(pages, flags)

    def page_table_address(self) -> int:
        """Physical address of the root page table."""
        return self.page_tables.page_table_address()

    def dump(self, pid: int) -> str:
        """Log all virtual memory areas and return the logged text."""
        with self._lock:
            lines = [f"VMAs of process [{pid}]"] + [str(area) for area in self._vmas]
        for line in lines:
            _log.info("%s", line)
        return "\n".join(lines)

    def close(self) -> None:
        """Unmap every area, returning its frames to the allocator."""
        with self._lock:
            areas, self._vmas = self._vmas, []
        for area in areas:
            self.page_tables.unmap(area.range, True)

    def _alloc_at(
        self,
        first_page: int,
        num_pages: int,
        vma_space: MemorySpace,
        vma_type: VmaType,
        vma_tag: str,
    ) -> Optional[VirtualMemoryArea]:
        start_addr = first_page
        end_addr = first_page + num_pages * PAGE_SIZE

        if vma_space is MemorySpace.USER:
            if (
                start_addr < self.first_usable_user_addr
                or end_addr > self.last_usable_user_addr
            ):
                return None
        elif end_addr > self.last_usable_user_addr:
            return None

        new_vma = VirtualMemoryArea.new_with_tag(
            vma_space, PageRange(start_addr, end_addr), vma_type, vma_tag
        )
        with self._lock:
            self._vmas.sort(key=lambda area: area.range.start)
            if any(area.overlaps_with(new_vma) for area in self._vmas):
                return None
            self._vmas.append(new_vma)
        return new_vma

    def _alloc(
        self,
        num_pages: int,
        vma_space: MemorySpace,
        vma_type: VmaType,
        vma_tag: str,
    ) -> Optional[VirtualMemoryArea]:
        requested = num_pages * PAGE_SIZE
        with self._lock:
            self._vmas.sort(key=lambda area: area.range.start)
            areas = list(self._vmas)

        current = self.first_usable_user_addr
        for area in areas:
            gap_start, gap_end = current, area.range.start
            if gap_end > gap_start and gap_end - gap_start >= requested:
                candidate = gap_start & ~(PAGE_SIZE - 1)
                return self._alloc_at(candidate, num_pages, vma_space, vma_type, vma_tag)
            current = area.range.end

        available = max(self.last_usable_user_addr - current, 0)
        if available >= requested:
            candidate = current & ~(PAGE_SIZE - 1)
            return self._alloc_at(candidate, num_pages, vma_space, vma_type, vma_tag)
        return None