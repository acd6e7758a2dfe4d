from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


def json_safe(value):
    """Audit ``details`` payload as plain JSON types.

    Money stays exact as a string; dates, datetimes and UUIDs are stringified.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    raise TypeError(f"Cannot store {type(value).__name__} in audit details")
