"""Physical page frame allocator backed by an address-sorted free list."""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass
from typing import Iterator, List

PAGE_SIZE = 0x1000


class OutOfMemoryError(MemoryError):
    """No free block is large enough for a requested allocation."""


class DoubleFreeError(ValueError):
    """A freed range overlaps memory that is already free."""


def _check_frame_address(addr: int, what: str) -> None:
    if addr < 0 or addr % PAGE_SIZE:
        raise ValueError(f"{what} address {addr:#x} is not page aligned")


@dataclass(frozen=True, order=True)
class FrameRange:
    """Half-open range of page frames, given by page-aligned physical addresses."""

    start: int
    end: int

    def __post_init__(self) -> None:
        _check_frame_address(self.start, "start")
        _check_frame_address(self.end, "end")
        if self.end < self.start:
            raise ValueError(
                f"frame range end {self.end:#x} lies below start {self.start:#x}"
            )

    def frame_count(self) -> int:
        """Number of frames in the range."""
        return (self.end - self.start) // PAGE_SIZE

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end, PAGE_SIZE))


def frame_from_address(addr: int) -> int:
    """Return the frame address for `addr`, aligned up to the page size."""
    if addr < 0:
        raise ValueError(f"invalid physical address {addr}")
    return -(-addr // PAGE_SIZE) * PAGE_SIZE


class FrameAllocator:
    """Manages free physical memory as a sorted list of contiguous blocks."""

    def __init__(self) -> None:
        self._blocks: List[FrameRange] = []
        self._limit = 0
        self._lock = threading.RLock()

    def insert(self, region: FrameRange) -> None:
        """Add an available memory region found at boot; the first page is never used."""
        with self._lock:
            if region.start == 0:
                if region.end <= PAGE_SIZE:
                    return
                region = FrameRange(PAGE_SIZE, region.end)
            self._limit = max(self._limit, region.end)
            self.free(region)

    def alloc(self, frame_count: int) -> FrameRange:
        """Allocate `frame_count` contiguous frames from the first block that fits."""
        if frame_count < 0:
            raise ValueError(f"invalid frame count {frame_count}")
        with self._lock:
            for index, block in enumerate(self._blocks):
                if block.frame_count() >= frame_count:
                    split = block.start + frame_count * PAGE_SIZE
                    if split < block.end:
                        self._blocks[index] = FrameRange(split, block.end)
                    else:
                        del self._blocks[index]
                    return FrameRange(block.start, split)
            raise OutOfMemoryError(f"no free block found for {frame_count} frames")

    def free(self, frames: FrameRange) -> None:
        """Return `frames` to the free list, fusing them with adjacent blocks."""
        with self._lock:
            blocks = self._blocks
            for index, block in enumerate(blocks):
                if frames.end > block.start and frames.start < block.end:
                    raise DoubleFreeError(
                        "double free or overlapping free detected: "
                        f"[{frames.start:#x} - {frames.end:#x}) overlaps "
                        f"[{block.start:#x} - {block.end:#x})"
                    )
                if frames.end == block.start:
                    blocks[index] = FrameRange(frames.start, block.end)
                    return
                if block.end == frames.start:
                    merged_end = frames.end
                    if index + 1 < len(blocks) and blocks[index + 1].start == merged_end:
                        merged_end = blocks.pop(index + 1).end
                    blocks[index] = FrameRange(block.start, merged_end)
                    return
                if block.end > frames.start:
                    break
            bisect.insort(blocks, frames)

    def reserve(self, frames: FrameRange) -> None:
        """Permanently remove `frames` from the free list."""
        with self._lock:
            blocks = self._blocks
            index = 0
            while index < len(blocks):
                block = blocks[index]
                if block.start > frames.end:
                    break
                if block.start < frames.start and block.end >= frames.start:
                    blocks[index] = FrameRange(block.start, frames.start)
                    if block.end > frames.end:
                        blocks.insert(index + 1, FrameRange(frames.end, block.end))
                elif block.start <= frames.end and block.end >= frames.start:
                    if block.end <= frames.end:
                        del blocks[index]
                        continue
                    blocks[index] = FrameRange(max(block.start, frames.end), block.end)
                index += 1

    def phys_limit(self) -> int:
        """Highest physical address managed by this allocator."""
        with self._lock:
            return self._limit

    def blocks(self) -> List[FrameRange]:
        """Snapshot of the free list in ascending address order."""
        with self._lock:
            return list(self._blocks)

    def dump(self) -> str:
        """Human-readable listing of the free list."""
        with self._lock:
            lines = [
                f"Block: [0x{block.start:x} - 0x{block.end:x}], "
                f"Frame count: [{block.frame_count()}]"
                for block in self._blocks
            ]
            available = sum(block.frame_count() for block in self._blocks)
            lines.append(f"Available memory: [{available * PAGE_SIZE // 1024} KiB]")
            lines.append(f"Physical limit: [0x{self._limit:016x}]")
            return "\n".join(lines)