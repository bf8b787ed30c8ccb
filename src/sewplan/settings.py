from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sewplan.scheduling.allocation import DEFAULT_HORIZON_DAYS


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str = "INFO"
    horizon_days: int = DEFAULT_HORIZON_DAYS


def default_db_path() -> Path:
    # Fixed, repo-local database location (keeps paths stable across machines).
    return Path("db") / "sewplan.db"
