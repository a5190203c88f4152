"""Application configuration defaults."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from payfinder.utils.files import first_readable

DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8", "latin-1", "cp1252")
DEFAULT_SOURCE_CANDIDATES: tuple[Path, ...] = (
    Path("payroll_data.csv"),
    Path("data/payroll_data.csv"),
)
MAX_CONCEPTOS = 37


def _get_default_db_path() -> Path:
    """Get the default database path based on platform and execution context."""
    user_db = Path.home() / "Documents" / "PayFinder" / "payfinder.db"

    if getattr(sys, "frozen", False):
        return user_db

    # When running from source, prefer local data/ if it exists
    local_db = Path("data/payfinder.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    source_path: Path | None = None
    source_candidates: tuple[Path, ...] = DEFAULT_SOURCE_CANDIDATES
    encodings: tuple[str, ...] = DEFAULT_ENCODINGS
    min_fields: int = 11
    streaming_threshold: int = 10 * 1024 * 1024
    chunk_size: int = 8192
    stream_batch_size: int = 50
    insert_batch_size: int = 100
    cache_size: int = 50
    search_limit: int = 100
    browse_limit: int = 50

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def candidate_sources(self, base_dir: Path | None = None) -> list[Path]:
        """Source paths to try, explicit path first."""
        candidates: list[Path] = []
        if self.source_path is not None:
            candidates.append(Path(self.source_path))
        candidates.extend(Path(p) for p in self.source_candidates)
        if base_dir is None:
            return candidates
        return [p if p.is_absolute() else base_dir / p for p in candidates]

    def resolve_source_path(self, base_dir: Path | None = None) -> Path | None:
        return first_readable(self.candidate_sources(base_dir))
