from __future__ import annotations

import struct
from pathlib import Path

import pytest

from pescope.errors import PeParseError
from pescope.pe import PeImport, load_pe, section_name
from pescope.standards import Characteristic

C = Characteristic


def _section_header(name: bytes, vsize: int, va: int, raw_size: int, raw_ptr: int, flags: int) -> bytes:
    sh = bytearray(40)
    sh[0:8] = name.ljust(8, b"\x00")
    struct.pack_into("<I", sh, 8, vsize)
    struct.pack_into("<I", sh, 12, va)
    struct.pack_into("<I", sh, 16, raw_size)
    struct.pack_into("<I", sh, 20, raw_ptr)
    struct.pack_into("<I", sh, 36, flags)
    return bytes(sh)


def _build_pe32() -> bytes:
    # Layout plan:
    # - e_lfanew = 0x80
    # - .text  at RVA 0x1000, raw 0x200, flags code|exec|read|WRITE
    # - .idata at RVA 0x2000, raw 0x400, import directory at its start
    #   INT at 0x2040, IAT at 0x2050, dll name at 0x2060, hint/names at 0x2080 and 0x2090
    e_lfanew = 0x80
    dos = bytearray(b"MZ" + b"\x00" * 58)
    dos += struct.pack("<I", e_lfanew)
    dos += b"\x00" * (e_lfanew - len(dos))

    nt = b"PE\x00\x00"
    size_opt = 0xE0
    coff = struct.pack("<HHIIIHH", 0x14C, 2, 0x5F3759DF, 0, 0, size_opt, 0x0102)

    opt = bytearray(size_opt)
    struct.pack_into("<H", opt, 0x00, 0x10B)      # PE32
    struct.pack_into("<I", opt, 0x10, 0x1000)     # AddressOfEntryPoint
    struct.pack_into("<I", opt, 0x14, 0x1000)     # BaseOfCode
    struct.pack_into("<I", opt, 0x1C, 0x400000)   # ImageBase
    struct.pack_into("<I", opt, 0x20, 0x1000)     # SectionAlignment
    struct.pack_into("<I", opt, 0x24, 0x200)      # FileAlignment
    struct.pack_into("<H", opt, 0x28, 4)          # MajorOperatingSystemVersion
    struct.pack_into("<H", opt, 0x30, 4)          # MajorSubsystemVersion
    struct.pack_into("<I", opt, 0x38, 0x3000)     # SizeOfImage
    struct.pack_into("<I", opt, 0x3C, 0x200)      # SizeOfHeaders
    struct.pack_into("<H", opt, 0x44, 3)          # Subsystem (console)
    struct.pack_into("<I", opt, 0x5C, 16)         # NumberOfRvaAndSizes
    struct.pack_into("<I", opt, 0x60 + 1 * 8, 0x2000)      # Import RVA
    struct.pack_into("<I", opt, 0x60 + 1 * 8 + 4, 0x28)    # Import size

    headers = (
        bytes(dos)
        + nt
        + coff
        + bytes(opt)
        + _section_header(b".text", 0x200, 0x1000, 0x200, 0x200, 0xE0000020)
        + _section_header(b".idata", 0x200, 0x2000, 0x200, 0x400, 0xC0000040)
    )
    blob = headers + b"\x00" * (0x200 - len(headers))

    text = b"\x90" * 0x1FF + b"\xC3"

    idata = bytearray(0x200)
    struct.pack_into("<I", idata, 0x00, 0x2040)   # OriginalFirstThunk
    struct.pack_into("<I", idata, 0x0C, 0x2060)   # Name
    struct.pack_into("<I", idata, 0x10, 0x2050)   # FirstThunk
    struct.pack_into("<II", idata, 0x40, 0x2080, 0x2090)
    struct.pack_into("<II", idata, 0x50, 0x2080, 0x2090)
    idata[0x60 : 0x60 + 13] = b"KERNEL32.dll\x00"
    idata[0x82 : 0x82 + 12] = b"ExitProcess\x00"
    idata[0x92 : 0x92 + 15] = b"GetProcAddress\x00"

    return blob + text + bytes(idata)


@pytest.fixture()
def sample_pe(tmp_path: Path) -> str:
    p = tmp_path / "sample.exe"
    p.write_bytes(_build_pe32())
    return str(p)


def test_load_pe_sections(sample_pe: str):
    pe = load_pe(sample_pe)

    assert pe.has_sections is True
    assert [s.name for s in pe.sections] == [".text", ".idata"]
    assert pe.sections[0].characteristics == (C.CONTAINS_CODE, C.EXECUTABLE, C.READABLE, C.WRITABLE)
    assert pe.sections[1].characteristics == (C.CONTAINS_INITIALIZED_DATA, C.READABLE, C.WRITABLE)

    ent = pe.sections[0].compute_entropy()
    assert 0.0 <= ent < 1.0


def test_load_pe_headers(sample_pe: str):
    pe = load_pe(sample_pe)

    assert pe.has_dos_header is True
    assert pe.dos_header["e_lfanew"] == 0x80
    assert pe.has_nt_header is True
    assert pe.nt_header["OptionalHeader.ImageBase"] == 0x400000
    assert pe.has_rich_header is False
    assert pe.has_coff is False
    assert pe.coff["Machine"] == 0x14C
    assert pe.coff["NumberOfSections"] == 2


def test_load_pe_imports(sample_pe: str):
    pe = load_pe(sample_pe)

    assert pe.has_import is True
    assert len(pe.imports) == 1
    assert pe.imports[0] == PeImport("KERNEL32.dll", ("ExitProcess", "GetProcAddress"))


def test_load_pe_unsigned_and_flags_wx_anomaly(sample_pe: str):
    pe = load_pe(sample_pe)

    assert pe.certificates == []
    assert any("IMAGE_SCN_MEM_WRITE" in w for w in pe.anomalies)


def test_load_pe_rejects_non_pe(tmp_path: Path):
    p = tmp_path / "notes.txt"
    p.write_bytes(b"hello world " * 20)
    with pytest.raises(PeParseError) as exc:
        load_pe(str(p))
    assert str(p) in str(exc.value)


def test_load_pe_missing_file(tmp_path: Path):
    with pytest.raises(PeParseError):
        load_pe(str(tmp_path / "missing.exe"))


def test_section_name_trims_padding():
    assert section_name(b".text\x00\x00\x00") == ".text"
    assert section_name(b"UPX0\x00\x00\x00\x00") == "UPX0"
