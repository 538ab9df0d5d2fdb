# luckybet/inc/jsonutil.py

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def to_jsonable(value: Any) -> Any:
    """Convert possibly-non-JSON-safe objects into JSON-safe types.

    Aiohttp's json_response uses json.dumps without a default handler. Money is
    carried as Decimal and rows carry datetimes, so every payload goes through
    here: Decimal becomes a number, datetime/date an ISO8601 string, enums their
    value, dataclasses a dict.
    """

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, Enum):
        return to_jsonable(value.value)

    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))

    if isinstance(value, dict):
        # JSON keys must be strings.
        return {str(k): to_jsonable(v) for k, v in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]

    return str(value)
