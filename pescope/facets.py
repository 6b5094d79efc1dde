from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Tuple

from pescope.compliance import validate
from pescope.config import ReportCfg
from pescope.errors import NoImportsError
from pescope.model import FacetResult, SectionRecord
from pescope.pe import PeModel

NO_SECTIONS_MESSAGE = "No section found in the file !"
NO_ANOMALIES_MESSAGE = "no anomalies found"
NO_CERTIFICATES_MESSAGE = "no certificate found"
NO_SYMBOL_TABLE_MESSAGE = "symbol table is empty !"


class Facet(str, Enum):
    ENTROPY = "entropy"
    SECTIONS = "sections"
    HEADERS = "headers"
    COFF = "coff"
    IMPORTS = "imports"
    ANOMALIES = "anomalies"
    DOS = "dos"
    RICH = "rich"
    NT = "nt"
    CERTIFICATES = "certificates"


# (terse, verbose)
FACET_LABELS: Dict[Facet, Tuple[str, str]] = {
    Facet.ENTROPY: ("ENTROPY", "ENTROPY (bits per byte, per section)"),
    Facet.SECTIONS: ("SECTIONS", "SECTIONS (characteristics vs. Microsoft standard sections)"),
    Facet.HEADERS: ("HEADERS", "HEADERS (DOS, Rich and NT headers)"),
    Facet.COFF: ("COFF", "COFF (file header and symbol table)"),
    Facet.IMPORTS: ("IMPORTS", "IMPORTS (library -> imported functions)"),
    Facet.ANOMALIES: ("ANOMALIES", "ANOMALIES (parser-reported irregularities)"),
    Facet.DOS: ("DOS Header", "DOS HEADER (IMAGE_DOS_HEADER)"),
    Facet.RICH: ("Rich Header", "RICH HEADER (linker toolchain records)"),
    Facet.NT: ("NT Header", "NT HEADER (IMAGE_NT_HEADERS)"),
    Facet.CERTIFICATES: ("CERTIFICATES", "CERTIFICATES (Authenticode signature certificates)"),
}


def facet_label(facet: Facet, verbose: bool) -> str:
    terse, long_form = FACET_LABELS[facet]
    return long_form if verbose else terse


def _result(facet: Facet, verbose: bool, **kwargs: Any) -> FacetResult:
    return FacetResult(facet=facet.value, label=facet_label(facet, verbose), **kwargs)


def analyze_entropy(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    if not pe.has_sections:
        return _result(Facet.ENTROPY, verbose, present=False, message=NO_SECTIONS_MESSAGE)
    rows: List[Dict[str, Any]] = []
    for s in pe.sections:
        ent = float(s.compute_entropy())
        rows.append({"name": s.name, "entropy": ent, "high_entropy": ent > cfg.high_entropy_threshold})
    return _result(Facet.ENTROPY, verbose, data=rows)


def analyze_sections(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    """
    Section table with a compliance verdict per section.
    Entropy is only computed when the run-wide toggle is on.
    """
    if not pe.has_sections:
        return _result(Facet.SECTIONS, verbose, present=False, message=NO_SECTIONS_MESSAGE)

    records: List[SectionRecord] = []
    for s in pe.sections:
        entropy = float(s.compute_entropy()) if cfg.show_entropy else None
        records.append(
            SectionRecord(
                name=s.name,
                characteristics=list(s.characteristics),
                entropy=entropy,
                high_entropy=entropy is not None and entropy > cfg.high_entropy_threshold,
                verdict=validate(s.name, s.characteristics),
            )
        )
    return _result(Facet.SECTIONS, verbose, data=records)


def analyze_imports(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    if not pe.has_import:
        raise NoImportsError()

    libraries: Dict[str, List[str]] = {}
    for imp in pe.imports:
        libraries.setdefault(imp.dll, []).extend(imp.functions)
    return _result(Facet.IMPORTS, verbose, data=libraries)


def analyze_anomalies(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    if not pe.anomalies:
        return _result(Facet.ANOMALIES, verbose, message=NO_ANOMALIES_MESSAGE, data=[])
    return _result(Facet.ANOMALIES, verbose, data=list(pe.anomalies))


def analyze_certificates(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    if not pe.certificates:
        return _result(Facet.CERTIFICATES, verbose, present=False, message=NO_CERTIFICATES_MESSAGE, data=[])
    return _result(Facet.CERTIFICATES, verbose, data=list(pe.certificates))


def _header(facet: Facet, present: bool, fields: Dict[str, Any], verbose: bool) -> FacetResult:
    if not present:
        terse, _ = FACET_LABELS[facet]
        return _result(facet, verbose, present=False, message=f"{terse} is empty !")
    return _result(facet, verbose, data=dict(fields))


def analyze_dos(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    return _header(Facet.DOS, pe.has_dos_header, pe.dos_header, verbose)


def analyze_rich(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    return _header(Facet.RICH, pe.has_rich_header, pe.rich_header, verbose)


def analyze_nt(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    return _header(Facet.NT, pe.has_nt_header, pe.nt_header, verbose)


def analyze_headers(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    children = [
        analyze_dos(pe, cfg, verbose),
        analyze_rich(pe, cfg, verbose),
        analyze_nt(pe, cfg, verbose),
    ]
    return _result(Facet.HEADERS, verbose, children=children)


def analyze_coff(pe: PeModel, cfg: ReportCfg, verbose: bool = False) -> FacetResult:
    if not pe.has_coff:
        return _result(Facet.COFF, verbose, present=False, message=NO_SYMBOL_TABLE_MESSAGE)
    return _result(Facet.COFF, verbose, data=dict(pe.coff))
