"""Parsing of the ACPI NFIT table and mapping of non-volatile memory."""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass
from typing import List

from ramkernel.frames import PAGE_SIZE, FrameRange, frame_from_address
from ramkernel.vma import (
    MemorySpace,
    PageTableFlags,
    VirtualMemoryArea,
    VmaType,
    page_from_address,
)
from ramkernel.vmm import VirtualAddressSpace

_log = logging.getLogger(__name__)

NFIT_SIGNATURE = b"NFIT"
_NFIT_HEADER = struct.Struct("<4sIBB6s8sIIII")
_STRUCTURE_HEADER = struct.Struct("<HH")
_SPA = struct.Struct("<HHHHII16sQQI")
_FLUSH_HINT = struct.Struct("<HHIH")
_HINT = struct.Struct("<Q")


class NfitStructureType(enum.IntEnum):
    SYSTEM_PHYSICAL_ADDRESS_RANGE = 0
    NVDIMM_REGION_MAPPING_STRUCTURE = 1
    INTERLEAVE = 2
    SMBIOS_MANAGEMENT_INFORMATION = 3
    NVDIMM_CONTROL_REGION = 4
    NVDIMM_BLOCK_DATA_WINDOW_REGION = 5
    FLUSH_HINT_ADDRESS = 6
    PLATFORM_CAPABILITIES = 7


class MemoryMappingAttribute(enum.IntFlag):
    UC = 0x00000001
    WC = 0x00000002
    WT = 0x00000004
    WB = 0x00000008
    UCE = 0x00000010
    WP = 0x00001000
    RP = 0x00002000
    XP = 0x00004000
    NV = 0x00008000
    MORE_RELIABLE = 0x00010000
    RO = 0x00020000
    SP = 0x00040000


@dataclass(frozen=True)
class NfitStructure:
    """One raw structure of the NFIT, including its four-byte header."""

    typ: int
    length: int
    data: bytes


@dataclass(frozen=True)
class SystemPhysicalAddressRange:
    """A physical address range described by the NFIT."""

    spa_range_structure_index: int
    flags: int
    proximity_domain: int
    address_range_type_guid: int
    base: int
    length: int
    mapping_attributes: MemoryMappingAttribute

    @classmethod
    def from_structure(cls, structure: NfitStructure) -> "SystemPhysicalAddressRange":
        if structure.typ != NfitStructureType.SYSTEM_PHYSICAL_ADDRESS_RANGE:
            raise ValueError(f"structure type {structure.typ} is not an address range")
        if len(structure.data) < _SPA.size:
            raise ValueError("address range structure is truncated")
        (_, _, index, flags, _, proximity, guid, base, length, attrs) = _SPA.unpack_from(
            structure.data
        )
        return cls(
            index,
            flags,
            proximity,
            int.from_bytes(guid, "little"),
            base,
            length,
            MemoryMappingAttribute(attrs),
        )

    def as_frame_range(self) -> FrameRange:
        """Frames covered by this range, in whole pages."""
        return FrameRange(self.base, self.base + (self.length // PAGE_SIZE) * PAGE_SIZE)


@dataclass(frozen=True)
class FlushHintAddressStructure:
    """Flush hint addresses of one NVDIMM device."""

    device_handle: int
    hint_count: int
    data: bytes

    @classmethod
    def from_structure(cls, structure: NfitStructure) -> "FlushHintAddressStructure":
        if structure.typ != NfitStructureType.FLUSH_HINT_ADDRESS:
            raise ValueError(f"structure type {structure.typ} is not a flush hint")
        if len(structure.data) < _FLUSH_HINT.size:
            raise ValueError("flush hint structure is truncated")
        _, _, handle, count = _FLUSH_HINT.unpack_from(structure.data)
        if len(structure.data) < _FLUSH_HINT.size + count * _HINT.size:
            raise ValueError("flush hint structure holds fewer hints than announced")
        return cls(handle, count, structure.data)

    def flush_hint_addresses(self) -> List[int]:
        return [
            _HINT.unpack_from(self.data, _FLUSH_HINT.size + i * _HINT.size)[0]
            for i in range(self.hint_count)
        ]


@dataclass(frozen=True)
class Nfit:
    """The NVDIMM Firmware Interface Table."""

    signature: bytes
    length: int
    revision: int
    checksum: int
    oem_id: bytes
    oem_table_id: bytes
    oem_revision: int
    creator_id: int
    creator_revision: int
    body: bytes

    @classmethod
    def parse(cls, data: bytes) -> "Nfit":
        """Parse a complete NFIT, including its SDT header."""
        if len(data) < _NFIT_HEADER.size:
            raise ValueError("NFIT is shorter than its header")
        (signature, length, revision, checksum, oem_id, oem_table_id,
         oem_revision, creator_id, creator_revision, _) = _NFIT_HEADER.unpack_from(data)
        if signature != NFIT_SIGNATURE:
            raise ValueError(f"unexpected table signature {signature!r}")
        if length < _NFIT_HEADER.size or length > len(data):
            raise ValueError(f"invalid NFIT length {length}")
        table = cls(
            signature, length, revision, checksum, oem_id, oem_table_id,
            oem_revision, creator_id, creator_revision,
            bytes(data[_NFIT_HEADER.size:length]),
        )
        table.structures()
        return table

    def structures(self) -> List[NfitStructure]:
        """All structures of the table in order."""
        result = []
        offset = 0
        body = self.body
        while offset < len(body):
            if len(body) - offset < _STRUCTURE_HEADER.size:
                raise ValueError("NFIT structure header is truncated")
            typ, length = _STRUCTURE_HEADER.unpack_from(body, offset)
            if length < _STRUCTURE_HEADER.size or offset + length > len(body):
                raise ValueError(f"invalid NFIT structure length {length}")
            result.append(NfitStructure(typ, length, body[offset:offset + length]))
            offset += length
        return result

    def phys_addr_ranges(self) -> List[SystemPhysicalAddressRange]:
        return [
            SystemPhysicalAddressRange.from_structure(s)
            for s in self.structures()
            if s.typ == NfitStructureType.SYSTEM_PHYSICAL_ADDRESS_RANGE
        ]


def map_nvram(nfit: Nfit, address_space: VirtualAddressSpace) -> List[VirtualMemoryArea]:
    """Map every non-volatile memory range of `nfit` into kernel space."""
    _log.info("Found NFIT table")
    areas = []
    for spa in nfit.phys_addr_ranges():
        address, length = spa.base, spa.length
        _log.info(
            "Found non-volatile memory (Address: [0x%x], Length: [%d MiB])",
            address,
            length // 1024 // 1024,
        )
        start_page = page_from_address(address)
        start_frame = frame_from_address(address)
        num_pages = length // PAGE_SIZE

        vma = address_space.alloc_vma(
            start_page, num_pages, MemorySpace.KERNEL, VmaType.DEVICE_MEMORY, "NVRAM"
        )
        if vma is None:
            raise RuntimeError("alloc_vma failed for NVRAM")
        address_space.map_pfr_for_vma(
            vma,
            FrameRange(start_frame, start_frame + num_pages * PAGE_SIZE),
            PageTableFlags.PRESENT | PageTableFlags.WRITABLE,
        )
        areas.append(vma)
    return areas