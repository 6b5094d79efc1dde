from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from pescope.config import ReportCfg
from pescope.errors import NoImportsError, PeParseError
from pescope.facets import (
    Facet,
    analyze_anomalies,
    analyze_certificates,
    analyze_coff,
    analyze_dos,
    analyze_entropy,
    analyze_headers,
    analyze_imports,
    analyze_nt,
    analyze_rich,
    analyze_sections,
    facet_label,
)
from pescope.model import FacetResult, FileReport
from pescope.pe import PeModel, load_pe

logger = logging.getLogger(__name__)

Analyzer = Callable[[PeModel, ReportCfg, bool], FacetResult]

FACET_ANALYZERS: Mapping[Facet, Analyzer] = {
    Facet.ENTROPY: analyze_entropy,
    Facet.SECTIONS: analyze_sections,
    Facet.HEADERS: analyze_headers,
    Facet.COFF: analyze_coff,
    Facet.IMPORTS: analyze_imports,
    Facet.ANOMALIES: analyze_anomalies,
    Facet.DOS: analyze_dos,
    Facet.RICH: analyze_rich,
    Facet.NT: analyze_nt,
    Facet.CERTIFICATES: analyze_certificates,
}

# Order used when facets are selected explicitly.
FACET_ORDER: Tuple[Facet, ...] = (
    Facet.ENTROPY,
    Facet.SECTIONS,
    Facet.HEADERS,
    Facet.COFF,
    Facet.IMPORTS,
    Facet.ANOMALIES,
    Facet.DOS,
    Facet.RICH,
    Facet.NT,
    Facet.CERTIFICATES,
)

# DOS/Rich/NT are covered by HEADERS; entropy display is opt-in.
DEFAULT_FACETS: Tuple[Facet, ...] = (
    Facet.SECTIONS,
    Facet.HEADERS,
    Facet.COFF,
    Facet.IMPORTS,
    Facet.ANOMALIES,
    Facet.CERTIFICATES,
)


def _err(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    d = {"code": code, "message": message}
    d.update(extra)
    return d


def resolve_facets(requested: Optional[Iterable[Facet]]) -> Tuple[Tuple[Facet, ...], bool]:
    """
    Returns (facets to run, verbose).
    Nothing requested -> the default set with terse labels.
    """
    wanted = {Facet(f) for f in (requested or ())}
    if not wanted:
        return DEFAULT_FACETS, False
    return tuple(f for f in FACET_ORDER if f in wanted), True


class ReportSelector:
    """
    Runs the requested facet analyzers against one file at a time.

    Idle -> Parsing -> (ParseFailed | Parsed) -> Analyzing -> Reported
    """

    def __init__(self, report_cfg: ReportCfg, *, loader: Callable[[str], PeModel] = load_pe):
        self.report_cfg = report_cfg
        self._loader = loader

    def run(self, path: str, requested: Optional[Iterable[Facet]] = None) -> FileReport:
        facets, verbose = resolve_facets(requested)

        logger.debug("%s: parsing", path)
        try:
            pe = self._loader(path)
        except PeParseError as e:
            logger.debug("%s: parse failed", path)
            return FileReport(
                path=path,
                verbose=verbose,
                parse_failed=True,
                errors=[_err("E_PE_PARSE_FAILED", str(e), reason=e.reason)],
            )

        logger.debug("%s: analyzing %s", path, ", ".join(f.value for f in facets))
        report = FileReport(path=path, verbose=verbose)
        for facet in facets:
            report.facets.append(self._run_facet(facet, pe, verbose, report))

        logger.debug("%s: reported", path)
        return report

    def _run_facet(self, facet: Facet, pe: PeModel, verbose: bool, report: FileReport) -> FacetResult:
        analyzer = FACET_ANALYZERS[facet]
        try:
            return analyzer(pe, self.report_cfg, verbose)
        except NoImportsError as e:
            report.errors.append(_err("E_PE_NO_IMPORTS", str(e)))
            return FacetResult(
                facet=facet.value,
                label=facet_label(facet, verbose),
                present=False,
                message=str(e),
            )
