from .dates import parse_br_date, to_iso_date

__all__ = ["parse_br_date", "to_iso_date"]
