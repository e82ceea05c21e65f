"""
Input coercion for payloads coming from routes.
"""
import math
import uuid
from typing import Any, Optional

from ..errors import ValidationError


def parse_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a valid id")


def parse_optional_uuid(value: Any, field: str) -> Optional[uuid.UUID]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_uuid(value, field)


def parse_number(value: Any, field: str) -> float:
    """Finite number from int/float or a numeric string."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        n = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            n = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} is required")
    if not math.isfinite(n):
        raise ValidationError(f"{field} must be a finite number")
    return n


def parse_int_range(value: Any, field: str, lo: int, hi: int) -> int:
    n = parse_number(value, field)
    if n < lo or n > hi:
        raise ValidationError(f"{field} must be between {lo} and {hi}")
    return int(round(n))


def parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
