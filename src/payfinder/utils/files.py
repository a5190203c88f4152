"""Utility helpers for working with source files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator


def iter_readable_files(candidates: Iterable[Path]) -> Iterator[Path]:
    """Yield candidate paths that exist, are regular files and can be read."""
    for item in candidates:
        path = Path(item).expanduser()
        if path.is_file() and os.access(path, os.R_OK):
            yield path


def first_readable(candidates: Iterable[Path]) -> Path | None:
    return next(iter_readable_files(candidates), None)


def iter_byte_chunks(path: Path, chunk_size: int = 8192) -> Iterator[bytes]:
    """Read a file as fixed-size byte chunks."""
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            yield chunk
