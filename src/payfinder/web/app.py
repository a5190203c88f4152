"""FastAPI application exposing PayFinder searches."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, List, Literal

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from payfinder.config import AppConfig
from payfinder.errors import IndexNotReadyError
from payfinder.index.search import Searcher
from payfinder.index.storage import SQLitePayrollStore
from payfinder.ingestion.loader import BulkLoader
from payfinder.models import PayrollRecord

LOGGER = logging.getLogger(__name__)

MAX_LIMIT = 100

app = FastAPI(title="PayFinder API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class _State:
    def __init__(self) -> None:
        self.config = AppConfig()
        self.searcher = Searcher(cache_size=self.config.cache_size)


_state = _State()


class SearchPayload(BaseModel):
    query: str = ""
    db: Path | None = None
    limit: int = MAX_LIMIT


class LookupPayload(BaseModel):
    query: str
    by: Literal["rfc", "name", "auto"] = "auto"
    wait: float = 5.0


def configure(config: AppConfig) -> None:
    """Replace the process-wide configuration and searcher."""
    _state.searcher.shutdown(wait=False)
    _state.config = config
    _state.searcher = Searcher(cache_size=config.cache_size)


def get_searcher() -> Searcher:
    return _state.searcher


def _resolve_db_path(db: Path | None) -> Path:
    config = AppConfig(db_path=db if db is not None else _state.config.db_path)
    return config.resolve_db_path(Path.cwd())


def _serialize(records: List[PayrollRecord]) -> List[dict[str, Any]]:
    return [record.to_dict() for record in records]


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    source = _state.config.resolve_source_path(Path.cwd())
    if source is None:
        LOGGER.warning("No payroll source found, /lookup will stay unavailable")
        return
    _state.searcher.load_async(BulkLoader(_state.config), source)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    _state.searcher.shutdown(wait=False)


@app.get("/health")
async def health() -> dict[str, Any]:
    searcher = get_searcher()
    index = searcher.index
    return {
        "ready": searcher.is_ready,
        "generation": index.generation if index is not None else 0,
        "records": len(index) if index is not None else 0,
        "error": str(searcher.last_error) if searcher.last_error else None,
    }


@app.post("/search")
async def search_records(payload: SearchPayload) -> dict[str, Any]:
    limit = max(1, min(payload.limit, MAX_LIMIT))

    resolved_db = _resolve_db_path(payload.db)
    if not resolved_db.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Database not found at {resolved_db}. Load a payroll export first.",
        )

    store = SQLitePayrollStore(resolved_db)
    try:
        results = store.search(payload.query, limit=limit, browse_limit=_state.config.browse_limit)
    finally:
        store.close()
    return {"results": _serialize(results)}


@app.get("/records/count")
async def record_count(db: Path | None = None) -> dict[str, int]:
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        return {"count": 0}

    store = SQLitePayrollStore(resolved_db)
    try:
        return {"count": store.record_count()}
    finally:
        store.close()


def _run_lookup(searcher: Searcher, payload: LookupPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if payload.by == "rfc":
        return {"kind": "rfc", "results": _serialize(searcher.search_by_rfc(query, timeout=payload.wait))}
    if payload.by == "name":
        return {"kind": "name", "results": _serialize(searcher.search_by_name(query, timeout=payload.wait))}
    result = searcher.search(query, timeout=payload.wait)
    return {"kind": result.kind, "results": _serialize(result.records)}


@app.post("/lookup")
async def lookup_records(payload: LookupPayload) -> dict[str, Any]:
    if not payload.query.strip():
        raise HTTPException(status_code=400, detail="Empty query")

    try:
        return await asyncio.to_thread(_run_lookup, get_searcher(), payload)
    except IndexNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
