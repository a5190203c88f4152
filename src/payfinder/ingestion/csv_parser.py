"""Positional parser for the payroll CSV export.

The export has a fixed layout: eleven scalar columns, followed by a block of
concept labels starting at column 11 and a block of amounts starting at
column 48. Lines are split on bare commas; the export never quotes commas.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from payfinder.config import MAX_CONCEPTOS
from payfinder.models import PayrollRecord
from payfinder.utils.text import clean_field, split_lines

LOGGER = logging.getLogger(__name__)

MIN_FIELDS = 11
CONCEPTO_OFFSET = 11
IMPORTE_OFFSET = 48

NUMBER_PATTERN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

SCALAR_FIELDS = (
    "plaza",
    "grupo",
    "rfc",
    "nombre",
    "liquido",
    "cct",
    "cheque",
    "puesto_cdc",
    "desde_pag",
    "hasta_pag",
    "motivo",
)


@dataclass(slots=True)
class ParseStats:
    parsed: int = 0
    rejected: int = 0
    coerced_numbers: int = 0


def safe_float(value: str, stats: ParseStats | None = None) -> float:
    """Parse a numeric field, falling back to 0.0 on malformed input.

    Only plain ASCII decimal notation is accepted. Non-empty values that
    fail to parse are counted in ``stats``.
    """
    text = clean_field(value)
    if NUMBER_PATTERN.fullmatch(text):
        return float(text)
    if text and stats is not None:
        stats.coerced_numbers += 1
    return 0.0


def _is_blank_concepto(concepto: str) -> bool:
    return not concepto or concepto.lower() == "nan"


def extract_conceptos_importes(
    fields: Sequence[str], stats: ParseStats | None = None
) -> Tuple[List[str], List[float]]:
    """Pull the aligned concept/amount pairs out of an extended line.

    Only concept labels are validated; a dropped label drops its amount too.
    """
    if len(fields) <= IMPORTE_OFFSET:
        return [], []

    count = min(MAX_CONCEPTOS, len(fields) - IMPORTE_OFFSET)
    conceptos: List[str] = []
    importes: List[float] = []
    for i in range(count):
        concepto = clean_field(fields[CONCEPTO_OFFSET + i])
        if _is_blank_concepto(concepto):
            continue
        conceptos.append(concepto)
        importes.append(safe_float(fields[IMPORTE_OFFSET + i], stats))
    return conceptos, importes


def parse_line(
    line: str, *, min_fields: int = MIN_FIELDS, stats: ParseStats | None = None
) -> Optional[PayrollRecord]:
    """Parse one CSV line into a record, or return ``None`` if it is rejected."""
    fields = line.split(",")
    if len(fields) < max(min_fields, MIN_FIELDS):
        LOGGER.debug("Rejected line with %d fields", len(fields))
        if stats is not None:
            stats.rejected += 1
        return None

    conceptos, importes = extract_conceptos_importes(fields, stats)
    values = {name: clean_field(fields[i]) for i, name in enumerate(SCALAR_FIELDS)}
    values["liquido"] = safe_float(fields[4], stats)

    record = PayrollRecord(**values, conceptos=tuple(conceptos), importes=tuple(importes))
    if stats is not None:
        stats.parsed += 1
    return record


def parse_records(
    content: str, *, min_fields: int = MIN_FIELDS, stats: ParseStats | None = None
) -> List[PayrollRecord]:
    """Parse a whole export; the first non-blank line is the header."""
    lines = split_lines(content)
    if next(lines, None) is None:
        return []

    records: List[PayrollRecord] = []
    for line in lines:
        record = parse_line(line, min_fields=min_fields, stats=stats)
        if record is not None:
            records.append(record)
    return records
