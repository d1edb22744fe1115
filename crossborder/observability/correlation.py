from __future__ import annotations

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional


_CORRELATION_ID: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]{0,127}$")


def _clean_id(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    if not s:
        return None
    # Bound length and allow only safe characters to avoid log injection.
    s = s.replace("\n", " ").replace("\r", " ").strip()
    if len(s) > 128:
        s = s[:128]
    if _SAFE_ID_RE.match(s):
        return s
    return None


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _CORRELATION_ID.get()


@contextmanager
def bind_correlation_id(*, correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a correlation id for the enclosed block.

    An unsafe or empty id falls back to the id already bound, else a fresh uuid4.
    Each asyncio task gets its own copy of the context, so concurrent sagas
    never see each other's ids.
    """
    cid = _clean_id(correlation_id) or _clean_id(get_correlation_id()) or generate_correlation_id()
    token = _CORRELATION_ID.set(cid)
    try:
        yield cid
    finally:
        _CORRELATION_ID.reset(token)
