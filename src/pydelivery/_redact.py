"""Helpers for safe debug logging.

Package payloads carry recipient personal data (phone numbers, e-mail
addresses) and requests carry API keys. Secrets are replaced outright;
personal fields keep a short tail so log lines stay correlatable.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "api_key",
        "authorization",
        "token",
        "password",
    }
)

_PERSONAL_KEYS: frozenset[str] = frozenset(
    {
        "phone",
        "recipientphone",
        "recipient_phone",
        "email",
        "recipientemail",
        "recipient_email",
    }
)


def _mask_tail(value: Any, keep: int = 2) -> str:
    text = str(value)
    if len(text) <= keep:
        return "<redacted>"
    return f"<redacted:…{text[-keep:]}>"


def redact_for_log(value: Any, *, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Lists longer than *max_items* are cut and summarised, since package
    listings can hold hundreds of records.
    """
    if _depth > 12:
        return "<max-depth>"

    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k).lower()
            if key in _SECRET_KEYS:
                redacted[str(k)] = "<redacted>"
            elif key in _PERSONAL_KEYS and v is not None:
                redacted[str(k)] = _mask_tail(v)
            else:
                redacted[str(k)] = redact_for_log(v, max_items=max_items, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        items = [redact_for_log(v, max_items=max_items, _depth=_depth + 1) for v in value[:max_items]]
        if len(value) > max_items:
            items.append(f"<{len(value) - max_items} more>")
        return items

    return repr(value)
