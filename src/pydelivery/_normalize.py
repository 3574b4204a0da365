"""Normalization helpers.

Centralizes lenient parsing of loosely typed payload fields.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def split_csv(value: Any) -> list[str]:
    """Split a comma-joined filter value (or an iterable of values) into tokens."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, Iterable):
        items = value
    else:
        items = [value]
    return [str(item).strip() for item in items if str(item).strip()]


def join_csv(value: Any) -> str:
    return ",".join(split_csv(value))
