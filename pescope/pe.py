from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import pefile

from pescope.certificates import summarize_certificates
from pescope.errors import PeParseError
from pescope.model import CertificateSummary
from pescope.standards import Characteristic, characteristics_from_flags

logger = logging.getLogger(__name__)

DIR_SECURITY = pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_SECURITY"]


@dataclass(frozen=True)
class PeSection:
    name: str
    characteristics: Tuple[Characteristic, ...]
    compute_entropy: Callable[[], float] = field(repr=False, compare=False)


@dataclass(frozen=True)
class PeImport:
    dll: str
    functions: Tuple[str, ...]


@dataclass(frozen=True)
class PeModel:
    """Parsed view of one PE file, as consumed by the facet analyzers."""

    path: str
    has_dos_header: bool = False
    has_rich_header: bool = False
    has_nt_header: bool = False
    has_coff: bool = False
    has_sections: bool = False
    has_import: bool = False
    dos_header: Dict[str, Any] = field(default_factory=dict)
    rich_header: Dict[str, Any] = field(default_factory=dict)
    nt_header: Dict[str, Any] = field(default_factory=dict)
    coff: Dict[str, Any] = field(default_factory=dict)
    sections: List[PeSection] = field(default_factory=list)
    imports: List[PeImport] = field(default_factory=list)
    certificates: List[CertificateSummary] = field(default_factory=list)
    anomalies: List[str] = field(default_factory=list)


def _safe_ascii(b: bytes) -> str:
    return b.split(b"\x00", 1)[0].decode("ascii", errors="replace")


def section_name(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\x00")


def _fields(structure: Any) -> Dict[str, Any]:
    """Flatten a pefile Structure into field -> value."""
    out: Dict[str, Any] = {}
    for key, value in structure.dump_dict().items():
        if isinstance(value, dict) and "Value" in value:
            out[key] = value["Value"]
    return out


def _rich_fields(rich: Any) -> Dict[str, Any]:
    # values alternate comp_id, count
    values = list(rich.values or [])
    entries: List[str] = []
    for comp_id, count in zip(values[0::2], values[1::2]):
        entries.append(f"prodid={comp_id >> 16} build={comp_id & 0xFFFF} count={count}")
    return {
        "Checksum": hex(rich.checksum) if rich.checksum is not None else None,
        "Entries": entries,
    }


def _sections(pe: pefile.PE) -> List[PeSection]:
    out: List[PeSection] = []
    for s in pe.sections:
        out.append(
            PeSection(
                name=section_name(s.Name),
                characteristics=characteristics_from_flags(s.Characteristics),
                compute_entropy=s.get_entropy,
            )
        )
    return out


def _imports(pe: pefile.PE) -> List[PeImport]:
    out: List[PeImport] = []
    for entry in getattr(pe, "DIRECTORY_ENTRY_IMPORT", []):
        funcs: List[str] = []
        for imp in entry.imports:
            if imp.name:
                funcs.append(_safe_ascii(imp.name))
            else:
                funcs.append(f"Ordinal {imp.ordinal}")
        out.append(PeImport(dll=_safe_ascii(entry.dll), functions=tuple(funcs)))
    return out


def _coff(pe: pefile.PE) -> Tuple[bool, Dict[str, Any]]:
    fh = pe.FILE_HEADER
    has_symbols = bool(fh.PointerToSymbolTable) and bool(fh.NumberOfSymbols)
    return has_symbols, _fields(fh)


def _nt_header(pe: pefile.PE) -> Dict[str, Any]:
    out: Dict[str, Any] = {"Signature": hex(pe.NT_HEADERS.Signature)}
    for key, value in _fields(pe.FILE_HEADER).items():
        out[f"FileHeader.{key}"] = value
    for key, value in _fields(pe.OPTIONAL_HEADER).items():
        out[f"OptionalHeader.{key}"] = value
    return out


def _security_blob(pe: pefile.PE) -> bytes:
    dirs = pe.OPTIONAL_HEADER.DATA_DIRECTORY
    if len(dirs) <= DIR_SECURITY:
        return b""
    entry = dirs[DIR_SECURITY]
    # Security directory uses a FILE OFFSET, not an RVA.
    off, size = int(entry.VirtualAddress), int(entry.Size)
    if off <= 0 or size <= 0:
        return b""
    data = pe.__data__
    if off + size > len(data):
        logger.warning("Security directory extends beyond file (offset=%#x size=%#x)", off, size)
        return b""
    return bytes(data[off : off + size])


def load_pe(path: str) -> PeModel:
    """
    Parse `path` with pefile and project it into a PeModel.
    Raises PeParseError for unreadable files and non-PE input.
    """
    # Parsed from an in-memory copy so section entropy stays computable after this returns.
    try:
        data = Path(path).read_bytes()
        pe = pefile.PE(data=data)
    except (pefile.PEFormatError, OSError) as e:
        raise PeParseError(path, str(e)) from e

    has_coff, coff = _coff(pe)
    rich = getattr(pe, "RICH_HEADER", None)
    has_nt = getattr(pe, "NT_HEADERS", None) is not None
    sections = _sections(pe)

    model = PeModel(
        path=path,
        has_dos_header=getattr(pe, "DOS_HEADER", None) is not None,
        has_rich_header=bool(rich),
        has_nt_header=has_nt,
        has_coff=has_coff,
        has_sections=bool(sections),
        has_import=hasattr(pe, "DIRECTORY_ENTRY_IMPORT"),
        dos_header=_fields(pe.DOS_HEADER),
        rich_header=_rich_fields(rich) if rich else {},
        nt_header=_nt_header(pe) if has_nt else {},
        coff=coff,
        sections=sections,
        imports=_imports(pe),
        certificates=summarize_certificates(path, data, _security_blob(pe)),
        anomalies=list(pe.get_warnings()),
    )

    logger.debug(
        "Parsed %s: %d section(s), %d import librar(ies), %d certificate(s)",
        path,
        len(model.sections),
        len(model.imports),
        len(model.certificates),
    )
    return model
