"""Boundary to the remote structured-record store.

The transport is supplied by the caller; this module only shapes payloads,
checks that a caller identity is present and normalises failures.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from payfinder.errors import NotAuthenticatedError, RemoteStoreError
from payfinder.models import PayrollRecord

LOGGER = logging.getLogger(__name__)

REMOTE_TABLE = "payroll_records"


class RemoteRecordStore(Protocol):
    def insert(self, table: str, payload: Mapping[str, Any]) -> None:
        ...

    def select(self, table: str, *, user_id: str) -> List[Mapping[str, Any]]:
        ...


def record_to_payload(
    record: PayrollRecord, user_id: str, *, created_at: datetime | None = None
) -> Dict[str, Any]:
    stamp = created_at or datetime.now(timezone.utc)
    return {
        "user_id": user_id,
        "plaza": record.plaza,
        "grupo": record.grupo,
        "rfc": record.rfc,
        "nombre": record.nombre,
        "liquido": record.liquido,
        "cct": record.cct,
        "cheque": record.cheque,
        "puesto_cdc": record.puesto_cdc,
        "desde_pag": record.desde_pag,
        "hasta_pag": record.hasta_pag,
        "motivo": record.motivo,
        "conceptos": list(record.conceptos),
        "importes": list(record.importes),
        "created_at": stamp.isoformat(),
    }


def record_from_payload(payload: Mapping[str, Any]) -> PayrollRecord:
    """Build a record from a remote row.

    The remote id, when present, becomes the record id.
    """
    extra: Dict[str, Any] = {}
    if payload.get("id"):
        extra["record_id"] = str(payload["id"])
    return PayrollRecord(
        plaza=payload.get("plaza", ""),
        grupo=payload.get("grupo", ""),
        rfc=payload.get("rfc", ""),
        nombre=payload.get("nombre", ""),
        liquido=float(payload.get("liquido", 0.0)),
        cct=payload.get("cct", ""),
        cheque=payload.get("cheque", ""),
        puesto_cdc=payload.get("puesto_cdc", ""),
        desde_pag=payload.get("desde_pag", ""),
        hasta_pag=payload.get("hasta_pag", ""),
        motivo=payload.get("motivo", ""),
        conceptos=tuple(payload.get("conceptos") or ()),
        importes=tuple(payload.get("importes") or ()),
        **extra,
    )


class WriteThroughPublisher:
    """Hands records to the remote store on behalf of an authenticated user."""

    def __init__(self, remote: RemoteRecordStore, user_id: Optional[str] = None) -> None:
        self.remote = remote
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("User is not authenticated")
        return self.user_id

    def publish(self, record: PayrollRecord) -> None:
        user_id = self._require_user()
        try:
            self.remote.insert(REMOTE_TABLE, record_to_payload(record, user_id))
        except RemoteStoreError:
            raise
        except Exception as exc:
            LOGGER.error("Remote insert failed for %s: %s", record.rfc, exc)
            raise RemoteStoreError(str(exc)) from exc

    def fetch(self) -> List[PayrollRecord]:
        user_id = self._require_user()
        try:
            rows = self.remote.select(REMOTE_TABLE, user_id=user_id)
        except RemoteStoreError:
            raise
        except Exception as exc:
            LOGGER.error("Remote select failed: %s", exc)
            raise RemoteStoreError(str(exc)) from exc
        return [record_from_payload(row) for row in rows]
