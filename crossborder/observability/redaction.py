from __future__ import annotations

from typing import Any


# Matched against lower-cased keys with "_" and "-" removed.
_SUSPECT_SUBSTRINGS = (
    "account",
    "taxid",
    "declaration",
    "purposeofpayment",
    "sourceoffunds",
    "token",
    "secret",
    "password",
    "authorization",
    "apikey",
    "bearer",
)


def _norm_key(k: Any) -> str:
    try:
        return str(k).strip().lower().replace("_", "").replace("-", "")
    except Exception:
        return ""


def is_sensitive_key(k: Any) -> bool:
    s = _norm_key(k)
    return bool(s) and any(sub in s for sub in _SUSPECT_SUBSTRINGS)


def redact_value(v: Any) -> Any:
    # Keep structure, redact content.
    if v is None:
        return None
    if isinstance(v, (bytes, bytearray)):
        return "[REDACTED_BYTES]"
    return "[REDACTED]"


def redact(obj: Any) -> Any:
    """
    Recursively redact values stored under sensitive-looking keys.

    Non-container values are returned unchanged; lists and tuples come back as lists.
    """
    if isinstance(obj, dict):
        out: dict[str, Any] = {}
        for k, v in obj.items():
            if is_sensitive_key(k):
                out[str(k)] = redact_value(v)
            else:
                out[str(k)] = redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    return obj
