from __future__ import annotations

from datetime import date
from typing import List

MONTHS_ES = (
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
)


def fortnight_label(d: date) -> str:
    """'1ª Septiembre 2023' for days 1-15, '2ª Septiembre 2023' for the rest of the month."""
    half = "1ª" if d.day <= 15 else "2ª"
    return f"{half} {MONTHS_ES[d.month - 1]} {d.year}"


def fortnight_options(start: date, count: int) -> List[str]:
    """Consecutive fortnight labels beginning with the one containing `start`."""
    out: List[str] = []
    year, month, second_half = start.year, start.month, start.day > 15
    for _ in range(max(0, count)):
        out.append(fortnight_label(date(year, month, 16 if second_half else 1)))
        if second_half:
            month += 1
            if month > 12:
                month, year = 1, year + 1
        second_half = not second_half
    return out
