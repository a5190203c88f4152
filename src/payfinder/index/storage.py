"""SQLite store for payroll records."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from payfinder.errors import PersistenceError
from payfinder.ingestion.loader import BulkLoader, LoadStats
from payfinder.models import PayrollRecord

LOGGER = logging.getLogger(__name__)

LIST_SEPARATOR = "|"

RECORD_COLUMNS = (
    "id",
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
    "conceptos",
    "importes",
)

_INSERT_SQL = """
    INSERT OR REPLACE INTO payroll_records ({columns})
    VALUES ({placeholders})
""".format(
    columns=", ".join(RECORD_COLUMNS),
    placeholders=", ".join("?" for _ in RECORD_COLUMNS),
)


@dataclass(slots=True)
class InsertStats:
    inserted: int = 0
    failed: int = 0
    batches: int = 0
    failed_batches: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "InsertStats") -> None:
        self.inserted += other.inserted
        self.failed += other.failed
        self.batches += other.batches
        self.failed_batches += other.failed_batches
        self.errors.extend(other.errors)


def _escape_item(value: str) -> str:
    return value.replace("\\", "\\\\").replace(LIST_SEPARATOR, "\\" + LIST_SEPARATOR)


def join_list(values: Sequence) -> Optional[str]:
    """Join values with ``|``, escaping ``\\`` and ``|`` inside each item.

    An empty sequence is stored as ``None`` so it stays distinct from a
    single empty label.
    """
    if not values:
        return None
    return LIST_SEPARATOR.join(
        repr(v) if isinstance(v, float) else _escape_item(str(v)) for v in values
    )


def split_conceptos(value: str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    labels: List[str] = []
    current: List[str] = []
    chars = iter(value)
    for char in chars:
        if char == "\\":
            current.append(next(chars, ""))
        elif char == LIST_SEPARATOR:
            labels.append("".join(current))
            current = []
        else:
            current.append(char)
    labels.append("".join(current))
    return tuple(labels)


def split_importes(value: str | None) -> tuple[float, ...]:
    if not value:
        return ()
    amounts = []
    for part in value.split(LIST_SEPARATOR):
        try:
            amounts.append(float(part))
        except ValueError:
            LOGGER.warning("Dropping unreadable amount %r", part)
    return tuple(amounts)


def record_to_row(record: PayrollRecord) -> tuple:
    return (
        record.record_id,
        record.plaza,
        record.grupo,
        record.rfc,
        record.nombre,
        record.liquido,
        record.cct,
        record.cheque,
        record.puesto_cdc,
        record.desde_pag,
        record.hasta_pag,
        record.motivo,
        join_list(record.conceptos),
        join_list(record.importes),
    )


def row_to_record(row: sqlite3.Row) -> PayrollRecord:
    conceptos = split_conceptos(row["conceptos"])
    importes = split_importes(row["importes"])
    if len(conceptos) != len(importes):
        # Keep the pairs that are still aligned.
        size = min(len(conceptos), len(importes))
        conceptos, importes = conceptos[:size], importes[:size]
    return PayrollRecord(
        plaza=row["plaza"] or "",
        grupo=row["grupo"] or "",
        rfc=row["rfc"] or "",
        nombre=row["nombre"] or "",
        liquido=float(row["liquido"] or 0.0),
        cct=row["cct"] or "",
        cheque=row["cheque"] or "",
        puesto_cdc=row["puesto_cdc"] or "",
        desde_pag=row["desde_pag"] or "",
        hasta_pag=row["hasta_pag"] or "",
        motivo=row["motivo"] or "",
        conceptos=conceptos,
        importes=importes,
        record_id=row["id"],
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _fts_query(query: str) -> str:
    terms = [term.replace('"', '""') for term in query.split()]
    return " ".join(f'"{term}"*' for term in terms)


class SQLitePayrollStore:
    """Persistence layer for payroll records.

    One connection is opened for the lifetime of the store and shared by
    every thread; access is serialised by an internal lock.
    """

    def __init__(self, db_path: Path, *, batch_size: int = 100) -> None:
        self.db_path = Path(db_path)
        self.batch_size = batch_size
        self.fts_enabled = False
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLitePayrollStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS payroll_records (
                    id TEXT PRIMARY KEY,
                    plaza TEXT,
                    grupo TEXT,
                    rfc TEXT NOT NULL,
                    nombre TEXT NOT NULL,
                    liquido REAL,
                    cct TEXT,
                    cheque TEXT,
                    puesto_cdc TEXT,
                    desde_pag TEXT,
                    hasta_pag TEXT,
                    motivo TEXT,
                    conceptos TEXT,
                    importes TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_payroll_rfc ON payroll_records(rfc)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_payroll_nombre ON payroll_records(nombre)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_payroll_cct ON payroll_records(cct)")
        self.fts_enabled = self._ensure_fts()

    def _ensure_fts(self) -> bool:
        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    CREATE VIRTUAL TABLE IF NOT EXISTS payroll_fts USING fts5(
                        rfc, nombre, cct, content='payroll_records', content_rowid='rowid'
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TRIGGER IF NOT EXISTS payroll_fts_insert
                    AFTER INSERT ON payroll_records
                    BEGIN
                        INSERT INTO payroll_fts(rowid, rfc, nombre, cct)
                        VALUES (NEW.rowid, NEW.rfc, NEW.nombre, NEW.cct);
                    END;
                    """
                )
                conn.execute(
                    """
                    CREATE TRIGGER IF NOT EXISTS payroll_fts_delete
                    AFTER DELETE ON payroll_records
                    BEGIN
                        INSERT INTO payroll_fts(payroll_fts, rowid, rfc, nombre, cct)
                        VALUES ('delete', OLD.rowid, OLD.rfc, OLD.nombre, OLD.cct);
                    END;
                    """
                )
        except sqlite3.OperationalError as exc:
            LOGGER.warning("Full-text search unavailable in this SQLite build: %s", exc)
            return False
        return True

    def drop_and_recreate(self) -> None:
        with self.transaction() as conn:
            conn.execute("DROP TRIGGER IF EXISTS payroll_fts_insert")
            conn.execute("DROP TRIGGER IF EXISTS payroll_fts_delete")
            conn.execute("DROP TABLE IF EXISTS payroll_fts")
            conn.execute("DROP TABLE IF EXISTS payroll_records")
        self._ensure_schema()
        LOGGER.info("Recreated payroll schema in %s", self.db_path)

    def record_count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM payroll_records").fetchone()
        return int(row[0])

    def _insert_batch(self, batch: Sequence[PayrollRecord]) -> None:
        with self.transaction() as conn:
            conn.executemany(_INSERT_SQL, [record_to_row(record) for record in batch])

    def insert_records(self, records: Sequence[PayrollRecord]) -> InsertStats:
        """Insert records in batches, one transaction per batch.

        A failing batch is rolled back as a whole and the remaining batches
        are still attempted; a :class:`PersistenceError` is raised at the end
        if any batch failed.
        """
        stats = InsertStats()
        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            stats.batches += 1
            try:
                self._insert_batch(batch)
            except sqlite3.Error as exc:
                LOGGER.error("Failed to insert batch of %d records: %s", len(batch), exc)
                stats.failed += len(batch)
                stats.failed_batches += 1
                stats.errors.append(str(exc))
                continue
            stats.inserted += len(batch)

        if stats.failed_batches:
            raise PersistenceError(
                f"{stats.failed_batches} of {stats.batches} batches failed", stats=stats
            )
        return stats

    def load_if_empty(self, loader: BulkLoader, path: Path | None = None) -> Optional[LoadStats]:
        """Populate an empty store from the payroll source.

        Returns ``None`` when the store already holds records.
        """
        current = self.record_count()
        if current:
            LOGGER.info("Store already holds %d records, not reloading", current)
            return None
        LOGGER.info("Empty store, loading payroll source")
        self.drop_and_recreate()
        return self.load_from(loader, path)

    def load_from(self, loader: BulkLoader, path: Path | None = None) -> LoadStats:
        """Stream the loader's records into the store.

        Batch failures are collected; a :class:`PersistenceError` is raised
        once the whole source has been processed.
        """
        totals = InsertStats()

        def sink(batch: List[PayrollRecord]) -> None:
            try:
                totals.merge(self.insert_records(batch))
            except PersistenceError as exc:
                totals.merge(exc.stats)

        stats = loader.load(path, sink=sink)
        LOGGER.info("Stored %d records (%d failed)", totals.inserted, totals.failed)
        if totals.failed_batches:
            raise PersistenceError(
                f"{totals.failed} records could not be stored", stats=totals
            )
        return stats

    def _fetch(self, sql: str, params: Sequence = ()) -> List[PayrollRecord]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [row_to_record(row) for row in rows]

    def browse(self, limit: int = 50) -> List[PayrollRecord]:
        return self._fetch("SELECT * FROM payroll_records ORDER BY nombre LIMIT ?", (limit,))

    def search(self, query: str, *, limit: int = 100, browse_limit: int = 50) -> List[PayrollRecord]:
        """Substring search over RFC, name and CCT, ranked by match quality.

        Ranking: exact RFC, RFC prefix, name prefix, then any other match.
        """
        text = query.strip()
        if not text:
            return self.browse(browse_limit)

        escaped = _escape_like(text)
        contains = f"%{escaped}%"
        prefix = f"{escaped}%"
        return self._fetch(
            r"""
            SELECT * FROM payroll_records
            WHERE rfc LIKE ? ESCAPE '\' OR nombre LIKE ? ESCAPE '\' OR cct LIKE ? ESCAPE '\'
            ORDER BY
                CASE
                    WHEN rfc = ? THEN 1
                    WHEN rfc LIKE ? ESCAPE '\' THEN 2
                    WHEN nombre LIKE ? ESCAPE '\' THEN 3
                    ELSE 4
                END,
                nombre
            LIMIT ?
            """,
            (contains, contains, contains, text, prefix, prefix, limit),
        )

    def search_fulltext(self, query: str, *, limit: int = 100) -> List[PayrollRecord]:
        """Token-prefix search through the FTS5 table, best matches first."""
        if not query.strip() or not self.fts_enabled:
            return []
        return self._fetch(
            """
            SELECT r.* FROM payroll_fts
            JOIN payroll_records r ON r.rowid = payroll_fts.rowid
            WHERE payroll_fts MATCH ?
            ORDER BY bm25(payroll_fts)
            LIMIT ?
            """,
            (_fts_query(query), limit),
        )

    def get_record(self, record_id: str) -> Optional[PayrollRecord]:
        records = self._fetch("SELECT * FROM payroll_records WHERE id = ?", (record_id,))
        return records[0] if records else None

    def iter_records(self, batch_size: int = 500) -> Iterator[PayrollRecord]:
        offset = 0
        while True:
            batch = self._fetch(
                "SELECT * FROM payroll_records ORDER BY rowid LIMIT ? OFFSET ?",
                (batch_size, offset),
            )
            if not batch:
                return
            yield from batch
            offset += len(batch)
