# ramkernel

A pure-Python model of the memory-management and naming-service parts of a
small x86-64 kernel. Physical memory, page tables and files are all held in
Python objects. The package can be used to study how the allocator and the
paging code behave, or to teach them.

## What is inside

- `ramkernel.frames` – `FrameAllocator` keeps a sorted free list of
  `FrameRange` blocks. A `FrameRange` is a half-open range of page-aligned
  physical addresses (`PAGE_SIZE` is `0x1000`). `insert` adds boot-time
  memory and never hands out the first page. `alloc` is first fit. `free`
  merges a range with its neighbours. `reserve` removes a region for good.
  `phys_limit`, `blocks` and `dump` report the state. Misuse raises
  `OutOfMemoryError` or `DoubleFreeError`. `frame_from_address` aligns an
  address up to the page size.
- `ramkernel.vma` – `PageRange`, `PageTableFlags`, `MemorySpace`, `VmaType`
  and `VirtualMemoryArea`. An area has an eight-byte tag, built with
  `new_with_tag` or `new_with_id`, or created with `from_address`.
  `page_from_address` checks that an address is page aligned.
- `ramkernel.pages` – `Paging` is a page-table hierarchy, four levels by
  default, whose tables use frames from a `FrameAllocator`. It offers `map`
  (kernel pages are identity mapped, user pages get fresh frames),
  `map_physical`, `map_io`, `translate`, `unmap`, `set_flags`,
  `from_other` and `close`. It can be used as a context manager.
  `page_table_index` gives the index of an address at a given level.
- `ramkernel.vmm` – `VirtualAddressSpace` hands out virtual memory areas
  (`alloc_vma`) and allocates and maps frames for them
  (`alloc_pfr_for_vma`, `alloc_pfr_for_partial_vma`, `map_pfr_for_vma`,
  `map_pfr_for_partial_vma`, `map_partial_vma`). It also offers
  `iter_vmas`, `set_flags`, `page_table_address`, `dump` and `close`.
  `create_kernel_address_space` identity maps all managed memory, and
  `clone_address_space` copies page tables. A frame count that does not
  match raises `MappingError`.
- `ramkernel.stack` – `alloc_kernel_stack` takes frames from an allocator
  and returns an empty `Stack`. `alloc_user_stack` describes a user stack at
  a given address. A `Stack` holds 64-bit words and cannot grow past its
  memory.
- `ramkernel.nvmem` – `Nfit.parse` reads an ACPI NFIT table from bytes.
  `structures`, `phys_addr_ranges` and `FlushHintAddressStructure` expose its
  contents. `map_nvram` maps every non-volatile range into kernel space of a
  `VirtualAddressSpace`.
- `ramkernel.log` – `Logger` formats coloured log lines of the form
  `[seconds.millis][LVL][file@line] message`. It writes them to the
  registered streams, or to an optional serial stream when no stream is
  registered. `Level`, `ansi_color` and `level_token` go with it.
- `ramkernel.naming` – `stat` (`Mode`, `Stat`), `traits` (interfaces,
  `OpenOptions`, `SeekOrigin`, `DirEntry`, error types), `tmpfs` (`TmpFs`,
  `TmpDir`, `TmpFile`), `lookup` (absolute path resolution),
  `open_objects` (`OpenObjectTable`, up to 4096 handles) and `api`
  (`NamingService`, which keeps a current working directory).

## Quick look

```python
from ramkernel.frames import PAGE_SIZE, FrameAllocator, FrameRange
from ramkernel.pages import Paging
from ramkernel.vma import MemorySpace, PageRange, PageTableFlags

frames = FrameAllocator()
frames.insert(FrameRange(0, 256 * PAGE_SIZE))   # first page is never handed out
block = frames.alloc(4)
print(block.frame_count())                      # 4
frames.free(block)
print(frames.dump())

with Paging(frames) as paging:
    paging.map(PageRange(0x10000, 0x12000), MemorySpace.KERNEL,
               PageTableFlags.PRESENT | PageTableFlags.WRITABLE)
    print(hex(paging.translate(0x10123)))       # 0x10123, identity mapped
```

```python
from ramkernel.naming.api import NamingService
from ramkernel.naming.traits import OpenOptions, SeekOrigin

ns = NamingService()
ns.mkdir("/docs")
handle = ns.open("/docs/notes", OpenOptions.CREATE)   # created if missing
ns.write(handle, b"hello")
ns.seek(handle, 0, SeekOrigin.START)
print(ns.read(handle, 5))                             # b'hello'
ns.close(handle)

directory = ns.open("/docs", OpenOptions.DIRECTORY)
print(ns.readdir(directory))                          # DirEntry for 'notes'
```

## Errors

Errors are raised as exceptions. The memory modules raise
`OutOfMemoryError`, `DoubleFreeError`, `MappingError` or `ValueError`.
`VirtualAddressSpace.alloc_vma` and `alloc_pfr_for_partial_vma` return
`None` when a request cannot be met. The naming service raises
`InvalidHandleError`, `NoHandlesError` and `BadObjectError`, which are
subclasses of `NamingError`. It also raises the built-in
`FileNotFoundError`, `NotADirectoryError` and `FileExistsError`.

## What the package does not do

- It does not touch hardware. Addresses are numbers, and page tables are
  Python lists.
- Files live only in memory inside `TmpFs`. Nothing is stored on disk.
- It has no processes, no scheduler, no devices and no networking.
- It has no command-line program. It is used as a library.

## Running the tests

```
pip install -e ".[test]"
pytest
```