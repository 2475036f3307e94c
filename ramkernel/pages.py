"""Four-level page tables kept in frames taken from a frame allocator."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from ramkernel.frames import PAGE_SIZE, FrameAllocator, FrameRange
from ramkernel.vma import MemorySpace, PageRange, PageTableFlags

ENTRIES_PER_TABLE = 512
_ADDR_MASK = 0x000F_FFFF_FFFF_F000
_INDEX_MASK = ENTRIES_PER_TABLE - 1


def page_table_index(virt_addr: int, level: int) -> int:
    """Index into the page table of `level` (1 = last level) for `virt_addr`."""
    if level < 1:
        raise ValueError(f"invalid page table level {level}")
    if virt_addr < 0:
        raise ValueError(f"invalid virtual address {virt_addr}")
    return (virt_addr >> 12 >> ((level - 1) * 9)) & _INDEX_MASK


def _entry_addr(entry: int) -> int:
    return entry & _ADDR_MASK


def _entry_flags(entry: int) -> int:
    return entry & ~_ADDR_MASK


class Paging:
    """Page tables of one address space, rooted in a single top-level table."""

    def __init__(self, allocator: FrameAllocator, depth: int = 4) -> None:
        if depth < 1:
            raise ValueError(f"invalid page table depth {depth}")
        self._allocator = allocator
        self.depth = depth
        self._tables: Dict[int, List[int]] = {}
        self._lock = threading.RLock()
        self._closed = False
        self._root = self._new_table()

    def __enter__(self) -> "Paging":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @classmethod
    def from_other(cls, other: "Paging") -> "Paging":
        """New address space with a copy of all page tables of `other`."""
        other._check_open()
        address_space = cls(other._allocator, other.depth)
        with other._lock, address_space._lock:
            address_space._copy_table(other, other._root, address_space._root, other.depth)
        return address_space

    def page_table_address(self) -> int:
        """Physical address of the root page table."""
        return self._root

    def map(self, pages: PageRange, space: MemorySpace, flags: PageTableFlags) -> None:
        """Map `pages`: identity mapped in kernel space, fresh frames in user space."""
        with self._lock:
            self._check_open()
            self._map_in_table(
                self._root, 0, 0, pages.start, pages.end, space, int(flags), self.depth
            )

    def map_physical(
        self,
        frames: FrameRange,
        pages: PageRange,
        space: MemorySpace,
        flags: PageTableFlags,
    ) -> None:
        """Map `pages` onto the given `frames`; both must hold the same count."""
        if frames.frame_count() != pages.page_count():
            raise ValueError(
                f"frame count {frames.frame_count()} does not match "
                f"page count {pages.page_count()}"
            )
        with self._lock:
            self._check_open()
            self._map_in_table(
                self._root,
                frames.start,
                frames.end,
                pages.start,
                pages.end,
                space,
                int(flags),
                self.depth,
            )

    def map_io(self, frames: FrameRange) -> None:
        """Map device `frames` 1:1 into kernel space, uncached."""
        start = frames.start & ~(PAGE_SIZE - 1)
        end = frames.end & ~(PAGE_SIZE - 1)
        self.map(
            PageRange(start, end),
            MemorySpace.KERNEL,
            PageTableFlags.PRESENT | PageTableFlags.WRITABLE | PageTableFlags.NO_CACHE,
        )

    def translate(self, addr: int) -> Optional[int]:
        """Physical address for virtual `addr`, or None if it is not mapped."""
        if addr < 0:
            raise ValueError(f"invalid virtual address {addr}")
        with self._lock:
            self._check_open()
            aligned = addr & ~(PAGE_SIZE - 1)
            table_addr = self._root
            for level in range(self.depth, 0, -1):
                entry = self._tables[table_addr][page_table_index(aligned, level)]
                if entry == 0:
                    return None
                if level == 1:
                    return _entry_addr(entry) + (addr - aligned)
                table_addr = _entry_addr(entry)
            return None

    def unmap(self, pages: PageRange, free_physical: bool) -> None:
        """Remove the mappings of `pages`, returning their frames if `free_physical`."""
        with self._lock:
            self._check_open()
            self._unmap_in_table(
                self._root, pages.start, pages.end, self.depth, free_physical
            )

    def set_flags(self, pages: PageTableFlags | PageRange, flags: PageTableFlags) -> None:
        """Replace the entry flags of every page in `pages`."""
        with self._lock:
            self._check_open()
            self._set_flags_in_table(
                self._root, pages.start, pages.end, int(flags), self.depth
            )

    def close(self) -> None:
        """Free every page table of this address space; mapped frames are kept."""
        with self._lock:
            if self._closed:
                return
            self._drop_table(self._root, self.depth)
            self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("address space has been closed")

    def _new_table(self) -> int:
        frame = self._allocator.alloc(1).start
        self._tables[frame] = [0] * ENTRIES_PER_TABLE
        return frame

    def _release_table(self, table_addr: int) -> None:
        del self._tables[table_addr]
        self._allocator.free(FrameRange(table_addr, table_addr + PAGE_SIZE))

    def _copy_table(
        self, source: "Paging", source_addr: int, target_addr: int, level: int
    ) -> None:
        source_table = source._tables[source_addr]
        target_table = self._tables[target_addr]
        if level == 1:
            target_table[:] = source_table
            return
        for index, entry in enumerate(source_table):
            if entry == 0:
                target_table[index] = 0
                continue
            frame = self._new_table()
            target_table[index] = frame | _entry_flags(entry)
            self._copy_table(source, _entry_addr(entry), frame, level - 1)

    def _map_in_table(
        self,
        table_addr: int,
        frame_start: int,
        frame_end: int,
        page_start: int,
        page_end: int,
        space: MemorySpace,
        flags: int,
        level: int,
    ) -> int:
        table = self._tables[table_addr]
        start_index = page_table_index(page_start, level)

        if level > 1:
            total = 0
            for index in range(start_index, ENTRIES_PER_TABLE):
                entry = table[index]
                if entry == 0:
                    next_table = self._new_table()
                    table[index] = next_table | flags
                else:
                    next_table = _entry_addr(entry)

                mapped = self._map_in_table(
                    next_table,
                    frame_start,
                    frame_end,
                    page_start,
                    page_end,
                    space,
                    flags,
                    level - 1,
                )
                page_start += mapped * PAGE_SIZE
                total += mapped
                if frame_end > frame_start:
                    frame_start += mapped * PAGE_SIZE
                if page_start >= page_end:
                    break
            return total

        count = min((page_end - page_start) // PAGE_SIZE, ENTRIES_PER_TABLE - start_index)
        for offset in range(count):
            if space is MemorySpace.KERNEL:
                target = page_start + offset * PAGE_SIZE
            elif frame_start == frame_end:
                target = self._allocator.alloc(1).start
            else:
                target = frame_start + offset * PAGE_SIZE
            table[start_index + offset] = target | flags
        return count

    def _unmap_in_table(
        self,
        table_addr: int,
        page_start: int,
        page_end: int,
        level: int,
        free_physical: bool,
    ) -> int:
        table = self._tables[table_addr]
        start_index = page_table_index(page_start, level)

        if level > 1:
            total = 0
            for index in range(start_index, ENTRIES_PER_TABLE):
                entry = table[index]
                if entry == 0:
                    continue
                next_table = _entry_addr(entry)
                freed = self._unmap_in_table(
                    next_table, page_start, page_end, level - 1, free_physical
                )
                page_start += freed * PAGE_SIZE
                total += freed

                if not any(self._tables[next_table]):
                    self._release_table(next_table)
                    table[index] = 0

                if page_start >= page_end:
                    break
            return total

        count = min((page_end - page_start) // PAGE_SIZE, ENTRIES_PER_TABLE - start_index)
        for index in range(start_index, start_index + count):
            entry = table[index]
            if entry == 0:
                continue
            if free_physical:
                frame = _entry_addr(entry)
                self._allocator.free(FrameRange(frame, frame + PAGE_SIZE))
            table[index] = 0
        return count

    def _set_flags_in_table(
        self, table_addr: int, page_start: int, page_end: int, flags: int, level: int
    ) -> int:
        table = self._tables[table_addr]
        start_index = page_table_index(page_start, level)

        if level > 1:
            total = 0
            for index in range(start_index, ENTRIES_PER_TABLE):
                entry = table[index]
                if entry == 0:
                    continue
                edited = self._set_flags_in_table(
                    _entry_addr(entry), page_start, page_end, flags, level - 1
                )
                page_start += edited * PAGE_SIZE
                total += edited
                if page_start >= page_end:
                    break
            return total

        count = min((page_end - page_start) // PAGE_SIZE, ENTRIES_PER_TABLE - start_index)
        for index in range(start_index, start_index + count):
            table[index] = _entry_addr(table[index]) | flags
        return count

    def _drop_table(self, table_addr: int, level: int) -> None:
        if level > 1:
            for entry in self._tables[table_addr]:
                if _entry_addr(entry) == 0:
                    continue
                self._drop_table(_entry_addr(entry), level - 1)
        self._release_table(table_addr)