"""In-memory index over parsed payroll records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Set

from payfinder.models import PayrollRecord
from payfinder.utils.text import dedupe, normalize_query, tokenize_name

LOGGER = logging.getLogger(__name__)

PARTIAL_RFC_MIN_LENGTH = 4


def _empty_mapping() -> Mapping[str, frozenset]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True, eq=False)
class SearchIndex:
    """Immutable snapshot of the records and their two lookup tables.

    ``rfc_index`` maps an uppercased RFC to record positions; ``name_index``
    maps each uppercased name token to record positions.
    """

    records: tuple[PayrollRecord, ...] = ()
    rfc_index: Mapping[str, frozenset] = field(default_factory=_empty_mapping)
    name_index: Mapping[str, frozenset] = field(default_factory=_empty_mapping)
    generation: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def _resolve(self, positions: Iterable[int]) -> List[PayrollRecord]:
        return [self.records[pos] for pos in positions if 0 <= pos < len(self.records)]

    def search_by_rfc(self, rfc: str) -> List[PayrollRecord]:
        """Exact RFC lookup, falling back to substring matching.

        The substring fallback only runs for queries of at least four
        characters.
        """
        if not rfc:
            return []

        key = rfc.upper()
        exact = self.rfc_index.get(key)
        if exact is not None:
            return self._resolve(sorted(exact))

        if len(rfc) < PARTIAL_RFC_MIN_LENGTH:
            return []

        positions: List[int] = []
        for candidate, matches in self.rfc_index.items():
            if key in candidate:
                positions.extend(sorted(matches))
        return self._resolve(dedupe(positions))

    def search_by_name(self, name: str) -> List[PayrollRecord]:
        """Records whose name tokens contain every query term, sorted by name."""
        if not name:
            return []

        terms = name.upper().split()
        if not terms:
            return []

        matching: Set[int] | None = None
        for term in terms:
            term_positions: Set[int] = set()
            for token, positions in self.name_index.items():
                if term in token:
                    term_positions.update(positions)
            matching = term_positions if matching is None else matching & term_positions
            if not matching:
                return []

        results = self._resolve(sorted(matching))
        results.sort(key=lambda record: record.nombre)
        return results

    def stats(self) -> dict:
        return {
            "records": len(self.records),
            "rfcs": len(self.rfc_index),
            "name_terms": len(self.name_index),
            "generation": self.generation,
        }


def build_index(records: Iterable[PayrollRecord], *, generation: int = 0) -> SearchIndex:
    """Build a complete index in one pass over ``records``.

    Positions follow arrival order. The lookup tables are filled in private
    dicts and frozen only once every record has been placed.
    """
    ordered: List[PayrollRecord] = []
    rfc_index: Dict[str, Set[int]] = {}
    name_index: Dict[str, Set[int]] = {}

    for position, record in enumerate(records):
        ordered.append(record)
        rfc_index.setdefault(normalize_query(record.rfc), set()).add(position)
        for token in tokenize_name(record.nombre):
            name_index.setdefault(token, set()).add(position)

    index = SearchIndex(
        records=tuple(ordered),
        rfc_index=MappingProxyType({k: frozenset(v) for k, v in rfc_index.items()}),
        name_index=MappingProxyType({k: frozenset(v) for k, v in name_index.items()}),
        generation=generation,
    )
    LOGGER.info(
        "Index built: %d records, %d RFCs, %d name terms",
        len(ordered),
        len(rfc_index),
        len(name_index),
    )
    return index
