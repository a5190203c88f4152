"""Text helpers for payroll fields, queries and display values."""

from __future__ import annotations

from typing import Iterable, Iterator


def clean_field(value: str) -> str:
    """Trim surrounding whitespace and drop every double quote."""
    return value.strip().replace('"', "")


def normalize_query(query: str) -> str:
    return query.strip().upper()


def tokenize_name(name: str) -> list[str]:
    """Split an uppercased name into whitespace-delimited tokens."""
    return name.upper().split()


def split_lines(text: str) -> Iterator[str]:
    """Yield the non-blank lines of ``text``.

    Handles ``\\n``, ``\\r\\n`` and bare ``\\r`` endings.
    """
    for line in text.splitlines():
        if line.strip():
            yield line


def dedupe(items: Iterable) -> list:
    """Remove duplicates while keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def format_name(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.strip().split())


def format_currency(amount: float) -> str:
    """Format an amount in pesos the way the es_MX locale renders it."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_period(desde: str, hasta: str) -> str:
    if not desde or not hasta:
        return "Período no especificado"
    return f"{desde} al {hasta}"
