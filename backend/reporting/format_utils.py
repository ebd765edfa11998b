"""Consistent formatting for report amounts and dates. Never render raw floats."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any


def format_currency(value: float, precision: int = 2) -> str:
    return f"${float(value or 0):.{precision}f}"


def format_date(d: Any) -> str:
    """US short date (M/D/YYYY), no zero padding."""
    if d is None:
        return ""
    if isinstance(d, datetime):
        d = d.date()
    if isinstance(d, date):
        return f"{d.month}/{d.day}/{d.year}"
    text = str(d).strip()
    for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d"):
        try:
            parsed = datetime.strptime(text[:19] if "T" in fmt else text[:10], fmt).date()
            return f"{parsed.month}/{parsed.day}/{parsed.year}"
        except ValueError:
            continue
    return text


def format_record_line(sequence: int, amount: float, label: str, created_at: Any) -> str:
    return f"{sequence}. {format_currency(amount)} - {label.upper()} ({format_date(created_at)})"
