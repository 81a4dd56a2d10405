"""Physical memory and virtual-to-physical address translation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

SECTOR_SIZE = 128
PAGE_SIZE = SECTOR_SIZE  # a page is the same size as a disk sector
NUM_PHYS_PAGES = 32
MEMORY_SIZE = NUM_PHYS_PAGES * PAGE_SIZE
TLB_SIZE = 4

_ACCESS_SIZES = (1, 2, 4)


class ExceptionType(IntEnum):
    """Causes of a trap from a user program into the kernel."""

    NO_EXCEPTION = 0
    SYSCALL = 1
    PAGE_FAULT = 2
    READ_ONLY = 3
    BUS_ERROR = 4
    ADDRESS_ERROR = 5
    OVERFLOW = 6
    ILLEGAL_INSTR = 7

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    ExceptionType.NO_EXCEPTION: "no exception",
    ExceptionType.SYSCALL: "syscall",
    ExceptionType.PAGE_FAULT: "page fault/no TLB entry",
    ExceptionType.READ_ONLY: "page read only",
    ExceptionType.BUS_ERROR: "bus error",
    ExceptionType.ADDRESS_ERROR: "address error",
    ExceptionType.OVERFLOW: "overflow",
    ExceptionType.ILLEGAL_INSTR: "illegal instruction",
}


class AddressTranslationError(Exception):
    """A virtual address could not be translated; carries the trap cause."""

    def __init__(self, kind: ExceptionType, address: int) -> None:
        super().__init__(f"{kind.description} at virtual address {address:#x}")
        self.kind = kind
        self.address = address


@dataclass
class TranslationEntry:
    """One page-table or TLB entry mapping a virtual page to a physical one."""

    virtual_page: int = 0
    physical_page: int = 0
    valid: bool = False
    read_only: bool = False
    use: bool = False
    dirty: bool = False


class MemoryUnit:
    """Main memory with either a linear page table or a software-loaded TLB."""

    def __init__(self, use_tlb: bool = False) -> None:
        self.main_memory = bytearray(MEMORY_SIZE)
        self.tlb: list[TranslationEntry] | None = (
            [TranslationEntry() for _ in range(TLB_SIZE)] if use_tlb else None
        )
        self.page_table: list[TranslationEntry] | None = None

    @property
    def page_table_size(self) -> int:
        return 0 if self.page_table is None else len(self.page_table)

    def _lookup(self, vpn: int, virt_addr: int) -> TranslationEntry:
        if self.tlb is None:
            assert self.page_table is not None
            if vpn >= len(self.page_table):
                raise AddressTranslationError(ExceptionType.ADDRESS_ERROR, virt_addr)
            entry = self.page_table[vpn]
            if not entry.valid:
                raise AddressTranslationError(ExceptionType.PAGE_FAULT, virt_addr)
            return entry
        found = next(
            (e for e in self.tlb if e.valid and e.virtual_page == vpn), None
        )
        if found is None:
            # Really a TLB miss: the page may be in memory but not in the TLB.
            raise AddressTranslationError(ExceptionType.PAGE_FAULT, virt_addr)
        return found

    def translate(self, virt_addr: int, size: int, writing: bool) -> int:
        """Return the physical address for ``virt_addr``.

        Sets the use bit (and the dirty bit when writing) of the entry used.
        Raises AddressTranslationError with the trap cause on failure.
        """
        if (size == 4 and virt_addr & 0x3) or (size == 2 and virt_addr & 0x1):
            raise AddressTranslationError(ExceptionType.ADDRESS_ERROR, virt_addr)

        if self.tlb is not None and self.page_table is not None:
            raise RuntimeError("both a TLB and a page table are installed")
        if self.tlb is None and self.page_table is None:
            raise RuntimeError("neither a TLB nor a page table is installed")

        unsigned_addr = virt_addr & 0xFFFFFFFF
        vpn, offset = divmod(unsigned_addr, PAGE_SIZE)
        entry = self._lookup(vpn, virt_addr)

        if entry.read_only and writing:
            raise AddressTranslationError(ExceptionType.READ_ONLY, virt_addr)
        frame = entry.physical_page
        if frame >= NUM_PHYS_PAGES:
            raise AddressTranslationError(ExceptionType.BUS_ERROR, virt_addr)

        entry.use = True
        if writing:
            entry.dirty = True
        phys_addr = frame * PAGE_SIZE + offset
        if phys_addr < 0 or phys_addr + size > MEMORY_SIZE:
            raise RuntimeError(f"physical address {phys_addr:#x} out of range")
        return phys_addr

    def read_physical(self, phys_addr: int, size: int) -> int:
        """Read 1, 2 or 4 little-endian bytes of physical memory.

        Bytes are sign-extended, half-words zero-extended and words are
        returned as signed 32-bit values.
        """
        if size not in _ACCESS_SIZES:
            raise ValueError(f"invalid access size {size}")
        raw = self.main_memory[phys_addr : phys_addr + size]
        if len(raw) != size or phys_addr < 0:
            raise IndexError(f"physical address {phys_addr:#x} out of range")
        return int.from_bytes(raw, "little", signed=size != 2)

    def write_physical(self, phys_addr: int, size: int, value: int) -> None:
        """Store the low ``size`` bytes of ``value`` little-endian."""
        if size not in _ACCESS_SIZES:
            raise ValueError(f"invalid access size {size}")
        if phys_addr < 0 or phys_addr + size > MEMORY_SIZE:
            raise IndexError(f"physical address {phys_addr:#x} out of range")
        mask = (1 << (8 * size)) - 1
        self.main_memory[phys_addr : phys_addr + size] = (value & mask).to_bytes(
            size, "little"
        )