"""Bulk loading of payroll exports.

Small files are decoded in one go; files above the configured threshold are
streamed in fixed-size byte chunks so only one batch of records is held in
memory at a time.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Sequence

from payfinder.config import AppConfig
from payfinder.errors import DecodeFailureError, SourceUnavailableError
from payfinder.ingestion.csv_parser import ParseStats, parse_line
from payfinder.models import PayrollRecord
from payfinder.utils.files import first_readable, iter_byte_chunks
from payfinder.utils.text import split_lines

LOGGER = logging.getLogger(__name__)

RecordSink = Callable[[List[PayrollRecord]], None]


@dataclass(slots=True)
class LoadStats:
    source: Path | None = None
    mode: str = "whole"
    encoding: str | None = None
    size: int = 0
    lines: int = 0
    loaded: int = 0
    batches: int = 0
    parse: ParseStats = field(default_factory=ParseStats)
    records: List[PayrollRecord] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.parse.rejected


def read_source_text(path: Path, encodings: Sequence[str]) -> tuple[str, str]:
    """Decode a whole file with the first encoding that accepts its bytes.

    Returns ``(text, encoding)``.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SourceUnavailableError(f"Unable to read {path}: {exc}") from exc

    for encoding in encodings:
        try:
            return raw.decode(encoding), encoding
        except UnicodeDecodeError:
            LOGGER.warning("%s failed for %s, trying next encoding", encoding, path)
    raise DecodeFailureError(path, tuple(encodings))


def detect_stream_encoding(path: Path, encodings: Sequence[str], chunk_size: int = 8192) -> str:
    """Find the first encoding that decodes the whole file incrementally.

    Runs before any record is emitted so a streaming load never fails halfway
    through on a decode error.
    """
    for encoding in encodings:
        decoder = codecs.getincrementaldecoder(encoding)()
        try:
            for chunk in iter_byte_chunks(path, chunk_size):
                decoder.decode(chunk)
            decoder.decode(b"", final=True)
        except UnicodeDecodeError:
            LOGGER.warning("%s failed for %s, trying next encoding", encoding, path)
            continue
        except OSError as exc:
            raise SourceUnavailableError(f"Unable to read {path}: {exc}") from exc
        return encoding
    raise DecodeFailureError(path, tuple(encodings))


def iter_stream_lines(path: Path, encoding: str, chunk_size: int = 8192) -> Iterator[str]:
    """Yield complete lines from ``path``, decoding chunk by chunk.

    The trailing partial line of each chunk is carried into the next one; the
    final unterminated line is yielded at end of file.
    """
    decoder = codecs.getincrementaldecoder(encoding)()
    carry = ""
    try:
        for chunk in iter_byte_chunks(path, chunk_size):
            carry += decoder.decode(chunk)
            parts = carry.splitlines(keepends=True)
            if parts and not parts[-1].endswith(("\n", "\r")):
                carry = parts.pop()
            else:
                carry = ""
            for part in parts:
                yield part.rstrip("\r\n")
        carry += decoder.decode(b"", final=True)
    except OSError as exc:
        raise SourceUnavailableError(f"Unable to read {path}: {exc}") from exc
    if carry:
        yield from carry.splitlines()


class BulkLoader:
    """Reads a payroll export and feeds parsed records to a sink."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config or AppConfig()

    def resolve_source(self, path: Path | None = None) -> Path:
        if path is not None:
            candidates = [Path(path)]
        else:
            candidates = self.config.candidate_sources(Path.cwd())
        source = first_readable(candidates)
        if source is not None:
            return source
        tried = ", ".join(str(c) for c in candidates) or "<none>"
        raise SourceUnavailableError(f"No readable payroll source found (tried: {tried})")

    def is_streaming(self, source: Path) -> bool:
        return source.stat().st_size > self.config.streaming_threshold

    def iter_lines(self, source: Path, stats: LoadStats) -> Iterator[str]:
        """Yield the data lines of ``source``, header excluded."""
        stats.size = source.stat().st_size
        if self.is_streaming(source):
            stats.mode = "streaming"
            stats.encoding = detect_stream_encoding(
                source, self.config.encodings, self.config.chunk_size
            )
            lines = (
                line
                for line in iter_stream_lines(source, stats.encoding, self.config.chunk_size)
                if line.strip()
            )
        else:
            stats.mode = "whole"
            text, stats.encoding = read_source_text(source, self.config.encodings)
            lines = split_lines(text)

        header_skipped = False
        for line in lines:
            if not header_skipped:
                header_skipped = True
                continue
            stats.lines += 1
            yield line

    def iter_records(self, path: Path | None = None, stats: LoadStats | None = None) -> Iterator[PayrollRecord]:
        source = self.resolve_source(path)
        if stats is None:
            stats = LoadStats()
        stats.source = source
        for line in self.iter_lines(source, stats):
            record = parse_line(line, min_fields=self.config.min_fields, stats=stats.parse)
            if record is not None:
                yield record

    def load(self, path: Path | None = None, *, sink: RecordSink | None = None) -> LoadStats:
        """Load every record from the source.

        Streaming loads hand ``stream_batch_size`` records at a time to
        ``sink``; whole-file loads hand over a single batch. Without a sink
        the records are collected in ``LoadStats.records``.
        """
        stats = LoadStats()
        batch: List[PayrollRecord] = []
        batch_size: int | None = None

        for record in self.iter_records(path, stats):
            if batch_size is None and stats.mode == "streaming":
                batch_size = self.config.stream_batch_size
                LOGGER.info(
                    "Large file detected (%d MB), streaming in batches of %d",
                    stats.size // (1024 * 1024),
                    batch_size,
                )
            batch.append(record)
            if batch_size is not None and len(batch) >= batch_size:
                self._deliver(batch, stats, sink)
                batch = []
                LOGGER.debug("Processed %d records...", stats.loaded)

        if batch:
            self._deliver(batch, stats, sink)

        LOGGER.info(
            "Loaded %d records from %s (%s, %s); skipped %d lines",
            stats.loaded,
            stats.source,
            stats.mode,
            stats.encoding,
            stats.skipped,
        )
        if stats.parse.coerced_numbers:
            LOGGER.warning(
                "%d numeric fields could not be parsed and were set to 0.0",
                stats.parse.coerced_numbers,
            )
        return stats

    @staticmethod
    def _deliver(batch: List[PayrollRecord], stats: LoadStats, sink: RecordSink | None) -> None:
        stats.batches += 1
        stats.loaded += len(batch)
        if sink is None:
            stats.records.extend(batch)
        else:
            sink(batch)
