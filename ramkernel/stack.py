"""Fixed-size kernel and user stacks of 64-bit words."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List

from ramkernel.frames import PAGE_SIZE, FrameAllocator
from ramkernel.vma import page_from_address

_log = logging.getLogger(__name__)

_WORD_SIZE = 8
_WORD_LIMIT = 1 << 64


@dataclass(frozen=True)
class StackAllocator:
    """Describes the memory backing one thread's stack."""

    pid: int
    tid: int
    kernel: bool
    start_addr: int
    end_addr: int

    def start_page(self) -> int:
        return page_from_address(self.start_addr)

    def end_page(self) -> int:
        return page_from_address(self.end_addr)

    def num_pages(self) -> int:
        return (self.end_addr - self.start_addr) // PAGE_SIZE


class Stack:
    """A stack of 64-bit words that can never grow beyond its backing memory."""

    def __init__(self, allocator: StackAllocator, filled: bool = False) -> None:
        self.allocator = allocator
        self.capacity = (allocator.end_addr - allocator.start_addr) // _WORD_SIZE
        self._words: List[int] = [0] * self.capacity if filled else []

    def __enter__(self) -> "Stack":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self._words)

    def __iter__(self) -> Iterator[int]:
        return iter(self._words)

    def __getitem__(self, index: int) -> int:
        return self._words[index]

    def __setitem__(self, index: int, value: int) -> None:
        self._words[index] = self._check_word(value)

    @staticmethod
    def _check_word(value: int) -> int:
        if not 0 <= value < _WORD_LIMIT:
            raise ValueError(f"{value} does not fit in a 64-bit word")
        return value

    def push(self, value: int) -> None:
        """Append a word; the stack memory cannot be enlarged."""
        value = self._check_word(value)
        if len(self._words) >= self.capacity:
            raise MemoryError("stack memory cannot be enlarged")
        self._words.append(value)

    def pop(self) -> int:
        return self._words.pop()

    def clear(self) -> None:
        self._words.clear()

    def release(self) -> None:
        """Drop the contents; the memory itself is freed with the page tables."""
        _log.info(
            "Deallocating stack memory for pid: %d, tid: %d",
            self.allocator.pid,
            self.allocator.tid,
        )
        self._words = []


def alloc_kernel_stack(allocator: FrameAllocator, pid: int, tid: int, pages: int) -> Stack:
    """Allocate `pages` frames as an empty kernel stack for thread `tid` of `pid`."""
    if pages <= 0:
        raise ValueError(f"invalid stack size of {pages} pages")
    frames = allocator.alloc(pages)
    return Stack(StackAllocator(pid, tid, True, frames.start, frames.end))


def alloc_user_stack(pid: int, tid: int, start_addr: int, size_in_bytes: int) -> Stack:
    """User stack of `size_in_bytes` starting at `start_addr`, covering its full size."""
    if start_addr < 0 or size_in_bytes < 0:
        raise ValueError("start address and size must not be negative")
    return Stack(
        StackAllocator(pid, tid, False, start_addr, start_addr + size_in_bytes),
        filled=True,
    )