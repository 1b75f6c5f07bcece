from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import ValidationError


# Maximum money amount accepted from clients (fits NUMERIC(14, 2))
MAX_AMOUNT = Decimal("999999999999.99")

CENT = Decimal("0.01")


def money(value: Decimal | int | float) -> Decimal:
    """Quantize a monetary amount to two decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any, field: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number


def parse_positive_decimal(value: Any, field: str, *, allow_zero: bool = False) -> Decimal:
    """Parse a strictly positive (or non-negative) finite number as Decimal."""
    number = _to_decimal(value, field)
    if allow_zero and number < 0:
        raise ValidationError(f"{field} must not be negative")
    if not allow_zero and number <= 0:
        raise ValidationError(f"{field} must be a positive number")
    if number > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return number


def parse_positive_int(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """
    Strict integer parsing.

    Accepts ints and plain digit strings; rejects floats, decimals,
    scientific notation and booleans.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            number = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if allow_zero and number < 0:
        raise ValidationError(f"{field} must not be negative")
    if not allow_zero and number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def parse_id(value: Any, field: str = "id") -> int:
    return parse_positive_int(value, field)


def parse_optional_id(value: Any, field: str = "id") -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_store_filter(value: Any) -> int | None:
    """Query-string store filter: missing, blank or 'all' means no filter."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in ("", "all"):
        return None
    return parse_id(value, "store_id")


def parse_enum(value: Any, allowed: Iterable[str], field: str) -> str:
    allowed = tuple(allowed)
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value


def require_string(value: Any, field: str, *, max_length: int | None = None) -> str:
    cleaned = clean_string(value, field, max_length=max_length)
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def clean_string(value: Any, field: str, *, max_length: int | None = None) -> str:
    """Trim a string input; None becomes ''."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if max_length and len(trimmed) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return trimmed


def parse_date(value: Any, field: str) -> date:
    """Parse 'YYYY-MM-DD' (a longer ISO datetime string is cut to its date)."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def parse_optional_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    return parse_date(value, field)


def validate_date_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError("end_date must not be before start_date")


def parse_bool_flag(value: Any) -> bool:
    """Query-string flags: '1' / 'true' (any case) are true."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes")


def parse_month_year(month: Any, year: Any) -> tuple[int, int]:
    month_num = parse_positive_int(month, "month")
    year_num = parse_positive_int(year, "year")
    if month_num > 12:
        raise ValidationError("month must be between 1 and 12")
    if year_num < 2000 or year_num > 2100:
        raise ValidationError("year must be between 2000 and 2100")
    return month_num, year_num


def to_number(value: Decimal | int | float | None) -> float | None:
    """JSON-friendly rendering of a NUMERIC column."""
    if value is None:
        return None
    return float(value)
