from __future__ import annotations

import logging
from importlib import metadata
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from pescope.config import load_config
from pescope.facets import Facet
from pescope.pe import load_pe
from pescope.reporters.console import render_report
from pescope.selector import ReportSelector

app = typer.Typer(add_completion=False)

logger = logging.getLogger(__name__)


def version_callback(value: bool):
    if value:
        try:
            v = metadata.version("pescope")
        except metadata.PackageNotFoundError:
            v = "0.1.0-dev"
        typer.echo(f"pescope version: {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."
    ),
):
    """
    Static PE inspection: section standards compliance, headers, imports, certificates.
    """
    pass


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def existing_paths(paths: List[str]) -> List[str]:
    out: List[str] = []
    for p in paths:
        if Path(p).exists():
            out.append(p)
        else:
            logger.debug("Skipping %s: path does not exist", p)
    return out


@app.command()
def inspect(
    ctx: typer.Context,
    paths: Optional[List[str]] = typer.Argument(None, help="PE files to inspect."),
    entropy: bool = typer.Option(False, "--entropy", help="Show per-section entropy."),
    sections: bool = typer.Option(False, "--sections", help="Sections and standards compliance."),
    headers: bool = typer.Option(False, "--headers", help="DOS, Rich and NT headers."),
    coff: bool = typer.Option(False, "--coff", help="COFF file header and symbol table."),
    imports: bool = typer.Option(False, "--imports", help="Imported libraries and functions."),
    anomalies: bool = typer.Option(False, "--anomalies", help="Parser-reported anomalies."),
    dos: bool = typer.Option(False, "--dos", help="DOS header only."),
    rich: bool = typer.Option(False, "--rich", help="Rich header only."),
    nt: bool = typer.Option(False, "--nt", help="NT header only."),
    certificates: bool = typer.Option(False, "--certificates", help="Authenticode certificates."),
    config: str = typer.Option(None, "--config", help="Path to YAML config."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Inspect one or more PE files. With no facet switch, the default report runs.
    """
    cfg = load_config(config)
    setup_logging("DEBUG" if verbose else cfg.logging.level)

    valid = existing_paths(paths or [])
    if not valid:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=1)

    switches = {
        Facet.ENTROPY: entropy,
        Facet.SECTIONS: sections,
        Facet.HEADERS: headers,
        Facet.COFF: coff,
        Facet.IMPORTS: imports,
        Facet.ANOMALIES: anomalies,
        Facet.DOS: dos,
        Facet.RICH: rich,
        Facet.NT: nt,
        Facet.CERTIFICATES: certificates,
    }
    requested = [facet for facet, on in switches.items() if on]

    # entropy display follows the switch only, whatever the config file says
    report_cfg = cfg.report.model_copy(update={"show_entropy": entropy})
    selector = ReportSelector(report_cfg, loader=load_pe)

    for p in valid:
        report = selector.run(p, requested)
        render_report(report)
        if report.parse_failed:
            typer.secho(report.errors[0]["message"], fg=typer.colors.RED, err=True)


@app.command()
def qa(
    fixtures: str = typer.Option("./tests/fixtures", "--fixtures", help="Path to QA fixtures directory."),
    config: str = typer.Option(None, "--config", help="Config file to use for QA run."),
):
    """
    Functional Q&A harness: runs the tool on fixtures and checks each report.
    """
    from pescope.qa.harness import run_qa

    run_qa(fixtures_dir=Path(fixtures), config_path=config)


if __name__ == "__main__":
    app()
