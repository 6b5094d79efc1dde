from __future__ import annotations
from pathlib import Path
import subprocess
import sys

def run_qa(fixtures_dir: Path, config_path: str | None) -> None:
    fixtures_dir = fixtures_dir.resolve()
    if not fixtures_dir.exists():
        raise AssertionError(f"Fixtures directory missing: {fixtures_dir}")

    fixture_files = sorted(p for p in fixtures_dir.iterdir() if p.is_file())
    if not fixture_files:
        raise AssertionError(f"No fixtures found in: {fixtures_dir}")

    # Every fixture must yield a report block, including ones that fail to parse
    for fx in fixture_files:
        cmd = [sys.executable, "-m", "pescope.cli", "inspect", str(fx)]
        if config_path:
            cmd += ["--config", config_path]

        r = subprocess.run(cmd, capture_output=True, text=True)
        if r.returncode != 0:
            raise AssertionError(f"Inspect failed for {fx}:\nSTDOUT:\n{r.stdout}\nSTDERR:\n{r.stderr}")

        assert f"FILE: {fx}" in r.stdout, f"missing FILE header for {fx}"
        if "Error while opening file" not in r.stderr:
            assert "SECTIONS:" in r.stdout, f"missing SECTIONS block for {fx}"
            assert "HEADERS:" in r.stdout, f"missing HEADERS block for {fx}"

    print(f"[QA] OK: {len(fixture_files)} fixture(s) passed.")
