from __future__ import annotations

from datetime import date

from dateutil import parser as date_parser


def parse_br_date(value: str) -> date:
    """
    Parse Brazilian day-first dates like:
    - "06/08/2025" (6 August 2025)
    - "6/8/2025"
    - "2025-08-06" (ISO input is passed through)
    """
    if value is None:
        raise ValueError("parse_br_date: value is None")
    s = value.strip()
    if not s:
        raise ValueError("parse_br_date: empty string")
    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        return date.fromisoformat(s)
    try:
        dt = date_parser.parse(s, dayfirst=True, yearfirst=False)
    except (ValueError, OverflowError) as e:
        # dateutil raises OverflowError for long digit runs
        raise ValueError(f"parse_br_date: not a date: {value!r}") from e
    return dt.date()


def to_iso_date(value: str) -> str:
    # Native <input type="date"> only accepts yyyy-mm-dd.
    return parse_br_date(value).isoformat()
