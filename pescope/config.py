from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict


class ReportCfg(BaseModel):
    # Read-only once handed to the selector; the entropy toggle applies to the whole run.
    model_config = ConfigDict(frozen=True)

    show_entropy: bool = False
    high_entropy_threshold: float = 7.2


class LoggingCfg(BaseModel):
    level: str = "WARNING"


class AppConfig(BaseModel):
    report: ReportCfg = ReportCfg()
    logging: LoggingCfg = LoggingCfg()


def load_config(path: Optional[str]) -> AppConfig:
    if not path:
        return AppConfig()
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    return AppConfig.model_validate(data)
