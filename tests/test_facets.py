from __future__ import annotations

from datetime import datetime, timezone

import pytest

from pescope.config import ReportCfg
from pescope.errors import NoImportsError
from pescope.facets import (
    NO_ANOMALIES_MESSAGE,
    NO_CERTIFICATES_MESSAGE,
    NO_SECTIONS_MESSAGE,
    analyze_anomalies,
    analyze_certificates,
    analyze_coff,
    analyze_entropy,
    analyze_headers,
    analyze_imports,
    analyze_rich,
    analyze_sections,
)
from pescope.model import CertificateSummary, KnownStandard, UnknownSection
from pescope.pe import PeImport, PeModel, PeSection
from pescope.standards import Characteristic

C = Characteristic


def _never_called() -> float:
    raise AssertionError("entropy must not be computed when the toggle is off")


def _model(**overrides) -> PeModel:
    base = dict(
        path="sample.exe",
        has_dos_header=True,
        has_rich_header=False,
        has_nt_header=True,
        has_coff=False,
        has_sections=True,
        has_import=True,
        dos_header={"e_magic": 0x5A4D, "e_lfanew": 0x80},
        nt_header={"Signature": "0x4550"},
        coff={"Machine": 0x14C, "NumberOfSections": 2},
        sections=[
            PeSection(".text", (C.CONTAINS_CODE, C.EXECUTABLE, C.READABLE, C.WRITABLE), lambda: 6.5),
            PeSection(".custom0", (C.READABLE,), lambda: 7.9),
        ],
        imports=[
            PeImport("KERNEL32.dll", ("ExitProcess", "ExitProcess")),
            PeImport("USER32.dll", ("MessageBoxA",)),
            PeImport("KERNEL32.dll", ("Sleep",)),
        ],
    )
    base.update(overrides)
    return PeModel(**base)


def _cert(subject: str) -> CertificateSummary:
    return CertificateSummary(
        issuer="CN=Root",
        subject=subject,
        not_before=datetime(2024, 1, 1, tzinfo=timezone.utc),
        not_after=datetime(2027, 1, 1, tzinfo=timezone.utc),
        serial_number="1a2b",
        public_key_algorithm="RSA",
        signature_algorithm="SHA256-RSA",
        signature_valid=True,
        signer_verified=False,
        content_hash_algorithm="sha256",
        content_hash="00" * 32,
    )


def test_sections_carry_verdicts():
    res = analyze_sections(_model(), ReportCfg())
    assert res.present is True
    text, custom = res.data

    assert isinstance(text.verdict, KnownStandard)
    assert text.verdict.unexpected == [C.WRITABLE]
    assert isinstance(custom.verdict, UnknownSection)
    assert custom.verdict.characteristics == [C.READABLE]


def test_sections_without_entropy_toggle_never_compute_entropy():
    pe = _model(sections=[PeSection(".text", (C.CONTAINS_CODE,), _never_called)])
    res = analyze_sections(pe, ReportCfg(show_entropy=False))
    assert all(rec.entropy is None for rec in res.data)


def test_sections_with_entropy_toggle():
    res = analyze_sections(_model(), ReportCfg(show_entropy=True, high_entropy_threshold=7.2))
    assert [rec.entropy for rec in res.data] == [6.5, 7.9]
    assert [rec.high_entropy for rec in res.data] == [False, True]


def test_sections_absent():
    res = analyze_sections(_model(has_sections=False, sections=[]), ReportCfg())
    assert res.present is False
    assert res.message == NO_SECTIONS_MESSAGE


def test_entropy_facet_lists_every_section():
    res = analyze_entropy(_model(), ReportCfg())
    assert res.data == [
        {"name": ".text", "entropy": 6.5, "high_entropy": False},
        {"name": ".custom0", "entropy": 7.9, "high_entropy": True},
    ]


def test_imports_map_preserves_order_and_duplicates():
    res = analyze_imports(_model(), ReportCfg())
    assert list(res.data) == ["KERNEL32.dll", "USER32.dll"]
    assert res.data["KERNEL32.dll"] == ["ExitProcess", "ExitProcess", "Sleep"]
    assert res.data["USER32.dll"] == ["MessageBoxA"]


def test_imports_missing_raises():
    with pytest.raises(NoImportsError):
        analyze_imports(_model(has_import=False, imports=[]), ReportCfg())


def test_anomalies_empty_is_explicit():
    res = analyze_anomalies(_model(), ReportCfg())
    assert res.message == NO_ANOMALIES_MESSAGE
    assert res.data == []


def test_anomalies_passthrough():
    warnings = ["Suspicious flags set for section 0.", "Invalid checksum"]
    res = analyze_anomalies(_model(anomalies=warnings), ReportCfg())
    assert res.message is None
    assert res.data == warnings


def test_certificates_none_found():
    res = analyze_certificates(_model(), ReportCfg())
    assert res.present is False
    assert res.message == NO_CERTIFICATES_MESSAGE


def test_certificates_reported_standalone():
    certs = [_cert("CN=Leaf"), _cert("CN=Intermediate")]
    res = analyze_certificates(_model(certificates=certs), ReportCfg())
    assert res.message is None
    assert [c.subject for c in res.data] == ["CN=Leaf", "CN=Intermediate"]


def test_headers_aggregate_reports_absent_rich_header():
    res = analyze_headers(_model(), ReportCfg())
    assert [c.facet for c in res.children] == ["dos", "rich", "nt"]
    dos, rich, nt = res.children
    assert dos.present is True and dos.data["e_lfanew"] == 0x80
    assert rich.present is False
    assert rich.message == "Rich Header is empty !"
    assert nt.present is True


def test_rich_header_present():
    pe = _model(has_rich_header=True, rich_header={"Checksum": "0x1234", "Entries": []})
    res = analyze_rich(pe, ReportCfg(), verbose=True)
    assert res.present is True
    assert res.data["Checksum"] == "0x1234"
    assert res.label.startswith("RICH HEADER")


def test_coff_without_symbol_table():
    res = analyze_coff(_model(), ReportCfg())
    assert res.present is False
    assert res.message == "symbol table is empty !"


def test_coff_with_symbol_table():
    pe = _model(has_coff=True, coff={"PointerToSymbolTable": 0x400, "NumberOfSymbols": 12})
    res = analyze_coff(pe, ReportCfg())
    assert res.present is True
    assert res.data["NumberOfSymbols"] == 12
