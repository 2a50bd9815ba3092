"""
Flatten calculation results for responses and the cache.

This is the only place rounding happens: money to pennies, rates to four
decimal places. Output is plain JSON-compatible data, and ``to_json`` is
byte-stable for identical inputs.
"""

import json
from dataclasses import fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from calculator.decimal_math import money, rate, to_float


def _is_rate_key(key: Optional[str]) -> bool:
    return bool(key) and (key == "rate" or key.endswith(("_rate", "_rates")) or key.startswith("rate_"))


def to_serializable(value: Any, key: Optional[str] = None) -> Any:
    """Recursively convert results into JSON-compatible primitives."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return to_float(rate(value) if _is_rate_key(key) else money(value))
    if isinstance(value, float):
        return to_serializable(Decimal(str(value)), key)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return to_serializable(value.model_dump(), key)
    if is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_serializable(getattr(value, f.name), f.name)
            for f in fields(value)
            if not f.name.startswith("_")
        }
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            name = str(k.value if isinstance(k, Enum) else k)
            out[name] = to_serializable(v, key if _is_rate_key(key) else name)
        return out
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [to_serializable(v, key) for v in value]
        return sorted(items) if isinstance(value, (set, frozenset)) else items
    return value


def to_json(value: Any) -> str:
    return json.dumps(to_serializable(value), sort_keys=True, separators=(",", ":"))
