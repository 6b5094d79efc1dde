from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from pescope.model import CertificateSummary, FacetResult, FileReport, KnownStandard, SectionRecord

console = Console(highlight=False, soft_wrap=True, emoji=False)

INDENT = "    "


def _line(out: Console, text: str, level: int = 0, style: Optional[str] = None) -> None:
    out.print(INDENT * level + text, markup=False, emoji=False, style=style)


def _fields_table(fields: Dict[str, Any], title: Optional[str] = None) -> Table:
    t = Table(title=title, title_justify="left")
    t.add_column("Field")
    t.add_column("Value", overflow="fold")
    for key, value in fields.items():
        if isinstance(value, list):
            value = "\n".join(str(v) for v in value)
        t.add_row(Text(str(key)), Text(str(value)))
    return t


def _render_sections(out: Console, records: List[SectionRecord]) -> None:
    for rec in records:
        head = rec.name
        if rec.entropy is not None:
            head += f"  (entropy: {rec.entropy:.4f}{', high' if rec.high_entropy else ''})"
        _line(out, head, 1, style="bold")

        verdict = rec.verdict
        if isinstance(verdict, KnownStandard):
            for tag in rec.characteristics:
                if tag in verdict.unexpected:
                    _line(out, f"Non standard characteristic found, got '{tag.value}'.", 2, style="yellow")
                else:
                    _line(out, tag.value, 2)
        else:
            _line(out, "Non standard section found.", 2, style="yellow")
            _line(out, f"Characteristics: [{', '.join(t.value for t in verdict.characteristics)}]", 2)


def _render_entropy(out: Console, rows: List[Dict[str, Any]]) -> None:
    for row in rows:
        note = "  (high)" if row["high_entropy"] else ""
        _line(out, f"{row['name']}: {row['entropy']:.4f}{note}", 1)


def _render_imports(out: Console, libraries: Dict[str, List[str]]) -> None:
    for lib, funcs in libraries.items():
        _line(out, f"LIBRARY: {lib}", 1, style="bold")
        for fn in funcs:
            _line(out, fn, 2)
        out.print()


def _render_certificates(out: Console, certs: List[CertificateSummary]) -> None:
    for idx, cert in enumerate(certs, start=1):
        fields = {
            "Issuer": cert.issuer,
            "Subject": cert.subject,
            "Not Before": cert.not_before.isoformat(),
            "Not After": cert.not_after.isoformat(),
            "Serial Number": cert.serial_number,
            "Public Key Algorithm": cert.public_key_algorithm,
            "Signature Algorithm": cert.signature_algorithm,
            "Signature Valid": cert.signature_valid,
            "Signer Verified": cert.signer_verified,
            "Content Hash": f"{cert.content_hash_algorithm or 'unknown'}: {cert.content_hash or '-'}",
        }
        out.print(_fields_table(fields, title=f"Certificate #{idx}"))


def _render_facet(out: Console, res: FacetResult, level: int = 0) -> None:
    _line(out, f"{res.label}:", level, style="bold cyan")
    out.print()

    if res.children:
        for child in res.children:
            _render_facet(out, child, level + 1)
        return

    if res.message:
        _line(out, res.message, level + 1, style=None if res.present else "dim")
        out.print()
        return

    if res.facet == "sections":
        _render_sections(out, res.data)
    elif res.facet == "entropy":
        _render_entropy(out, res.data)
    elif res.facet == "imports":
        _render_imports(out, res.data)
    elif res.facet == "anomalies":
        for anomaly in res.data:
            _line(out, f"- {anomaly}", level + 1)
    elif res.facet == "certificates":
        _render_certificates(out, res.data)
    elif isinstance(res.data, dict):
        out.print(_fields_table(res.data))
    out.print()


def render_report(report: FileReport, out: Optional[Console] = None) -> None:
    out = out or console
    out.print()
    _line(out, f"FILE: {report.path}", style="bold green")
    out.print()
    if report.parse_failed:
        return
    for res in report.facets:
        _render_facet(out, res)
