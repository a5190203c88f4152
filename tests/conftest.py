"""Shared fixtures for the PayFinder tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

HEADER = "PLAZA,GRUPO,RFC,NOMBRE,LIQUIDO,CCT,CHEQUE,PUESTO_CDC,DESDE_PAG,HASTA_PAG,MOTIVO"


def build_line(
    rfc: str = "ABCD800101AAA",
    nombre: str = "JUAN PEREZ LOPEZ",
    liquido: str = "1234500",
    *,
    cct: str = "09DPR0001X",
    conceptos: Sequence[str] = (),
    importes: Sequence[str] = (),
    total_fields: int | None = None,
) -> str:
    """Build one export line; ``total_fields`` pads the extended region."""
    fields = [
        "P001",
        "G1",
        rfc,
        nombre,
        liquido,
        cct,
        "000123",
        "DOC01",
        "20240101",
        "20240115",
        "ORD",
    ]
    if total_fields is not None:
        fields.extend([""] * (total_fields - len(fields)))
        for i, concepto in enumerate(conceptos):
            fields[11 + i] = concepto
        for i, importe in enumerate(importes):
            fields[48 + i] = importe
    return ",".join(fields)


@pytest.fixture
def make_line() -> Callable[..., str]:
    return build_line


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write an export file with a header line and the given data lines."""

    def _write(lines: Sequence[str], name: str = "payroll_data.csv", encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        path.write_bytes(("\n".join([HEADER, *lines]) + "\n").encode(encoding))
        return path

    return _write


@pytest.fixture
def sample_csv(write_csv) -> Path:
    return write_csv(
        [
            build_line(
                "ABCD800101AAA",
                "JUAN PEREZ LOPEZ",
                conceptos=["SUELDO"],
                importes=["1500.00"],
                total_fields=50,
            ),
            build_line("ABCD800101AAA", "JUAN PEREZ LOPEZ", "990000"),
            build_line("MAGO750505BBB", "MARIA GARCIA OROZCO", "1500000"),
            build_line("ZUTA900101CCC", "ANA PEREZ ZUNIGA", "870000", cct="15EPR0002Y"),
        ]
    )
