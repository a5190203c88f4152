"""Core PayFinder data models."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from payfinder.utils.text import format_currency, format_name, format_period

RFC_PATTERN = re.compile(r"^[A-Z&Ñ]{3,4}[0-9]{6}[A-Z0-9]{3}$")


def _new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class PayrollRecord:
    """One payroll check as exported by the payroll system.

    ``liquido`` is stored in cents; ``importes`` are signed amounts aligned
    position by position with ``conceptos`` (positive earnings, negative
    deductions).
    """

    plaza: str
    grupo: str
    rfc: str
    nombre: str
    liquido: float
    cct: str = ""
    cheque: str = ""
    puesto_cdc: str = ""
    desde_pag: str = ""
    hasta_pag: str = ""
    motivo: str = ""
    conceptos: Tuple[str, ...] = ()
    importes: Tuple[float, ...] = ()
    record_id: str = field(default_factory=_new_record_id, compare=False)

    def __post_init__(self) -> None:
        # Lists are accepted for convenience but stored as tuples.
        object.__setattr__(self, "conceptos", tuple(self.conceptos))
        object.__setattr__(self, "importes", tuple(float(v) for v in self.importes))
        if len(self.conceptos) != len(self.importes):
            raise ValueError(
                f"conceptos/importes length mismatch: {len(self.conceptos)} != {len(self.importes)}"
            )

    @property
    def formatted_name(self) -> str:
        return format_name(self.nombre)

    @property
    def total_percepciones(self) -> float:
        """Sum of the positive amounts."""
        total = 0.0
        for amount in self.importes:
            if amount > 0:
                total += amount
        return total

    @property
    def total_deducciones(self) -> float:
        """Sum of the absolute values of the negative amounts."""
        total = 0.0
        for amount in self.importes:
            if amount < 0:
                total += abs(amount)
        return total

    @property
    def liquido_pesos(self) -> float:
        return self.liquido / 100.0

    @property
    def liquido_display(self) -> str:
        return format_currency(self.liquido_pesos)

    @property
    def period_formatted(self) -> str:
        return format_period(self.desde_pag, self.hasta_pag)

    @property
    def is_valid(self) -> bool:
        return bool(self.rfc) and bool(self.nombre) and self.liquido > 0

    @property
    def has_valid_rfc(self) -> bool:
        return RFC_PATTERN.match(self.rfc.upper()) is not None

    def has_concepto(self, term: str) -> bool:
        needle = term.upper()
        return any(needle in concepto.upper() for concepto in self.conceptos)

    def importe_for_concepto(self, index: int) -> Optional[float]:
        if 0 <= index < len(self.importes):
            return self.importes[index]
        return None

    def concept_lines(self) -> List[Tuple[str, float]]:
        return list(zip(self.conceptos, self.importes))

    def to_dict(self) -> dict:
        """Plain dict used by the CLI and HTTP layers."""
        return {
            "id": self.record_id,
            "plaza": self.plaza,
            "grupo": self.grupo,
            "rfc": self.rfc,
            "nombre": self.nombre,
            "liquido": self.liquido,
            "cct": self.cct,
            "cheque": self.cheque,
            "puesto_cdc": self.puesto_cdc,
            "desde_pag": self.desde_pag,
            "hasta_pag": self.hasta_pag,
            "motivo": self.motivo,
            "conceptos": list(self.conceptos),
            "importes": list(self.importes),
        }
