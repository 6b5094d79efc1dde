from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


class Characteristic(str, Enum):
    CONTAINS_UNINITIALIZED_DATA = "Uninitialized Data"
    CONTAINS_INITIALIZED_DATA = "Initialized Data"
    CONTAINS_CODE = "Contains Code"
    READABLE = "Readable"
    WRITABLE = "Writable"
    DISCARDABLE = "Discardable"
    EXECUTABLE = "Executable"
    LINKER_INFO = "Lnk Info"
    GP_REFERENCED = "GpReferenced"


# IMAGE_SCN_* bits, ascending. Tags are reported in this order.
SECTION_FLAG_BITS: Tuple[Tuple[Characteristic, int], ...] = (
    (Characteristic.CONTAINS_CODE, 0x00000020),
    (Characteristic.CONTAINS_INITIALIZED_DATA, 0x00000040),
    (Characteristic.CONTAINS_UNINITIALIZED_DATA, 0x00000080),
    (Characteristic.LINKER_INFO, 0x00000200),
    (Characteristic.GP_REFERENCED, 0x00008000),
    (Characteristic.DISCARDABLE, 0x02000000),
    (Characteristic.EXECUTABLE, 0x20000000),
    (Characteristic.READABLE, 0x40000000),
    (Characteristic.WRITABLE, 0x80000000),
)


def characteristics_from_flags(flags: int) -> Tuple[Characteristic, ...]:
    """Decode a section header Characteristics field into tags."""
    return tuple(tag for tag, bit in SECTION_FLAG_BITS if int(flags) & bit)


_C = Characteristic

_UNINIT_RW = (_C.CONTAINS_UNINITIALIZED_DATA, _C.READABLE, _C.WRITABLE)
_INIT_R = (_C.CONTAINS_INITIALIZED_DATA, _C.READABLE)
_INIT_RW = (_C.CONTAINS_INITIALIZED_DATA, _C.READABLE, _C.WRITABLE)
_INIT_R_DISCARD = (_C.CONTAINS_INITIALIZED_DATA, _C.READABLE, _C.DISCARDABLE)
_LINKER = (_C.LINKER_INFO,)

# Special sections as documented in the Microsoft PE/COFF specification:
# https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
STANDARD_SECTIONS: Mapping[str, Tuple[Characteristic, ...]] = MappingProxyType(
    {
        ".bss": _UNINIT_RW,
        ".cormeta": _LINKER,
        ".data": _INIT_RW,
        ".debug$F": _INIT_R_DISCARD,
        ".debug$P": _INIT_R_DISCARD,
        ".debug$S": _INIT_R_DISCARD,
        ".debug$T": _INIT_R_DISCARD,
        ".drective": _LINKER,
        ".edata": _INIT_R,
        ".idata": _INIT_RW,
        ".idlsym": _LINKER,
        ".pdata": _INIT_R,
        ".rdata": _INIT_R,
        ".reloc": _INIT_R_DISCARD,
        ".rsrc": _INIT_R,
        ".sbss": _UNINIT_RW + (_C.GP_REFERENCED,),
        ".sdata": _INIT_RW + (_C.GP_REFERENCED,),
        ".srdata": _INIT_R + (_C.GP_REFERENCED,),
        ".sxdata": _LINKER,
        ".text": (_C.CONTAINS_CODE, _C.EXECUTABLE, _C.READABLE),
        ".tls": _INIT_RW,
        ".tls$": _INIT_RW,
        ".vsdata": _INIT_RW,
        ".xdata": _INIT_R,
    }
)


def lookup(name: str) -> Optional[Tuple[Characteristic, ...]]:
    """
    Expected characteristics for a standard section name, or None.
    Exact, case-sensitive match only.
    """
    return STANDARD_SECTIONS.get(name)
