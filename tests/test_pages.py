import pytest

from ramkernel.frames import PAGE_SIZE, FrameAllocator, FrameRange, OutOfMemoryError
from ramkernel.pages import Paging, page_table_index
from ramkernel.vma import MemorySpace, PageRange, PageTableFlags

MEMORY_END = 0x200000
RW = PageTableFlags.PRESENT | PageTableFlags.WRITABLE
USER_BASE = 0x40000000


@pytest.fixture
def allocator():
    frame_allocator = FrameAllocator()
    frame_allocator.insert(FrameRange(0, MEMORY_END))
    return frame_allocator


def free_frames(allocator):
    return sum(block.frame_count() for block in allocator.blocks())


@pytest.mark.parametrize("level", [1, 2, 3, 4])
@pytest.mark.parametrize("index", [0, 1, 7, 511])
def test_page_table_index_selects_level_bits(level, index):
    addr = index << (12 + 9 * (level - 1))
    assert page_table_index(addr, level) == index


def test_page_table_index_truncates_to_table_size():
    assert page_table_index(512 << 12, 1) == 0


def test_page_table_index_rejects_level_zero():
    with pytest.raises(ValueError):
        page_table_index(0, 0)


def test_root_table_comes_from_allocator(allocator):
    before = free_frames(allocator)
    paging = Paging(allocator)
    assert free_frames(allocator) == before - 1
    root = paging.page_table_address()
    assert PAGE_SIZE <= root < MEMORY_END
    assert root % PAGE_SIZE == 0


def test_separate_address_spaces_have_distinct_roots(allocator):
    first = Paging(allocator)
    second = Paging(allocator)
    assert first.page_table_address() != second.page_table_address()


def test_kernel_mapping_is_identity(allocator):
    paging = Paging(allocator)
    paging.map(PageRange(0, 4 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    assert paging.translate(2 * PAGE_SIZE) == 2 * PAGE_SIZE
    assert paging.translate(3 * PAGE_SIZE + 0x123) == 3 * PAGE_SIZE + 0x123
    assert paging.translate(4 * PAGE_SIZE) is None


def test_unmapped_address_translates_to_none(allocator):
    paging = Paging(allocator)
    assert paging.translate(USER_BASE) is None


def test_user_mapping_allocates_frames_and_tables(allocator):
    paging = Paging(allocator)
    before = free_frames(allocator)
    pages = PageRange(USER_BASE, USER_BASE + 5 * PAGE_SIZE)
    paging.map(pages, MemorySpace.USER, RW | PageTableFlags.USER_ACCESSIBLE)
    assert before - free_frames(allocator) == 5 + (paging.depth - 1)
    targets = [paging.translate(page) for page in pages]
    assert all(PAGE_SIZE <= target < MEMORY_END for target in targets)
    assert len(set(targets)) == 5


def test_map_physical_uses_given_frames(allocator):
    paging = Paging(allocator)
    frames = allocator.alloc(3)
    pages = PageRange(USER_BASE, USER_BASE + 3 * PAGE_SIZE)
    paging.map_physical(frames, pages, MemorySpace.USER, RW)
    for page, frame in zip(pages, frames):
        assert paging.translate(page + 0x10) == frame + 0x10


def test_map_physical_rejects_count_mismatch(allocator):
    paging = Paging(allocator)
    frames = allocator.alloc(2)
    with pytest.raises(ValueError):
        paging.map_physical(
            frames, PageRange(USER_BASE, USER_BASE + 3 * PAGE_SIZE), MemorySpace.USER, RW
        )


def test_map_io_identity_maps_device_frames(allocator):
    paging = Paging(allocator)
    device = FrameRange(0xFEE00000, 0xFEE00000 + 2 * PAGE_SIZE)
    paging.map_io(device)
    assert paging.translate(device.start) == device.start
    assert paging.translate(device.start + PAGE_SIZE + 8) == device.start + PAGE_SIZE + 8
    assert paging.translate(device.end) is None


def test_unmap_with_free_returns_all_memory(allocator):
    paging = Paging(allocator)
    snapshot = allocator.blocks()
    pages = PageRange(USER_BASE, USER_BASE + 4 * PAGE_SIZE)
    paging.map(pages, MemorySpace.USER, RW)
    paging.unmap(pages, True)
    assert allocator.blocks() == snapshot
    assert paging.translate(USER_BASE) is None


def test_unmap_without_free_keeps_frames_reserved(allocator):
    paging = Paging(allocator)
    frames = allocator.alloc(2)
    after_alloc = free_frames(allocator)
    pages = PageRange(USER_BASE, USER_BASE + 2 * PAGE_SIZE)
    paging.map_physical(frames, pages, MemorySpace.USER, RW)
    paging.unmap(pages, False)
    assert free_frames(allocator) == after_alloc
    assert paging.translate(USER_BASE + PAGE_SIZE) is None


def test_partial_unmap_keeps_other_pages(allocator):
    paging = Paging(allocator)
    paging.map(PageRange(0, 4 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    paging.unmap(PageRange(PAGE_SIZE, 2 * PAGE_SIZE), False)
    assert paging.translate(PAGE_SIZE) is None
    assert paging.translate(2 * PAGE_SIZE) == 2 * PAGE_SIZE


def test_set_flags_replaces_entry_flags(allocator):
    paging = Paging(allocator)
    paging.map(PageRange(0, 2 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    paging.set_flags(PageRange(0, PAGE_SIZE), PageTableFlags(0))
    # page 0 identity-maps to address 0, so an empty flag set leaves the entry unused
    assert paging.translate(0) is None
    assert paging.translate(PAGE_SIZE) == PAGE_SIZE


def test_from_other_copies_mappings(allocator):
    original = Paging(allocator)
    original.map(PageRange(0, 8 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    copy = Paging.from_other(original)
    assert copy.page_table_address() != original.page_table_address()
    for addr in range(PAGE_SIZE, 8 * PAGE_SIZE, PAGE_SIZE):
        assert copy.translate(addr) == original.translate(addr)


def test_from_other_is_independent(allocator):
    original = Paging(allocator)
    original.map(PageRange(0, 2 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    copy = Paging.from_other(original)
    copy.map(PageRange(USER_BASE, USER_BASE + PAGE_SIZE), MemorySpace.USER, RW)
    assert copy.translate(USER_BASE) is not None and original.translate(USER_BASE) is None


def test_closing_copy_returns_only_its_tables(allocator):
    original = Paging(allocator)
    original.map(PageRange(0, 4 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    snapshot = allocator.blocks()
    copy = Paging.from_other(original)
    copy.close()
    assert allocator.blocks() == snapshot
    assert original.translate(PAGE_SIZE) == PAGE_SIZE


def test_close_frees_all_tables(allocator):
    initial = allocator.blocks()
    paging = Paging(allocator)
    paging.map(PageRange(0, 16 * PAGE_SIZE), MemorySpace.KERNEL, RW)
    paging.close()
    assert allocator.blocks() == initial


def test_close_is_idempotent_and_blocks_further_use(allocator):
    initial = allocator.blocks()
    with Paging(allocator) as paging:
        paging.map(PageRange(0, PAGE_SIZE), MemorySpace.KERNEL, RW)
    paging.close()
    assert allocator.blocks() == initial
    with pytest.raises(RuntimeError):
        paging.translate(0)


def test_out_of_memory_while_building_tables():
    small = FrameAllocator()
    small.insert(FrameRange(0, 3 * PAGE_SIZE))
    paging = Paging(small)
    with pytest.raises(OutOfMemoryError):
        paging.map(PageRange(0, PAGE_SIZE), MemorySpace.KERNEL, RW)


def test_invalid_depth_rejected(allocator):
    with pytest.raises(ValueError):
        Paging(allocator, 0)