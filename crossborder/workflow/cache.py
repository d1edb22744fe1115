"""
Off-ledger staging store for sensitive proposal fields.

Entries are keyed by txId: put once at proposal creation, read during the
acceptance saga, deleted once the saga has attempted every role view. The
store is an explicit object handed to the services that use it.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from crossborder.common.logging import log_event
from crossborder.workflow.models import SensitiveBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    bundle: SensitiveBundle
    stored_at: float


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, _Entry] = {}


class SensitiveDataCache:
    """
    In-process map txId -> SensitiveBundle.

    Keys are spread over independently locked shards, so operations on
    different txIds do not serialize on one lock. Same-key races are not
    arbitrated: each txId has exactly one creator and one consumer.

    `ttl_s` is an optional safety net; without it entries live until deleted.
    """

    def __init__(
        self,
        *,
        shards: int = 16,
        ttl_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if int(shards) < 1:
            raise ValueError("shards must be >= 1")
        if ttl_s is not None and ttl_s <= 0:
            raise ValueError("ttl_s must be > 0 when set")
        self._shards = tuple(_Shard() for _ in range(int(shards)))
        self._ttl_s = ttl_s
        self._clock = clock

    def _shard(self, tx_id: str) -> _Shard:
        # Stable across processes, unlike hash() on str.
        digest = hashlib.blake2b(tx_id.encode("utf-8"), digest_size=8).digest()
        return self._shards[int.from_bytes(digest, "big") % len(self._shards)]

    def _expired(self, entry: _Entry, now: float) -> bool:
        return self._ttl_s is not None and now - entry.stored_at >= self._ttl_s

    def put(self, tx_id: str, bundle: SensitiveBundle) -> None:
        key = str(tx_id or "").strip()
        if not key:
            raise ValueError("tx_id is required")
        shard = self._shard(key)
        with shard.lock:
            replaced = key in shard.entries
            shard.entries[key] = _Entry(bundle=bundle, stored_at=self._clock())
        if replaced:
            log_event(logger, "cache.entry_replaced", severity="WARNING", tx_id=key)

    def get(self, tx_id: str) -> Optional[SensitiveBundle]:
        """Read without removing. Expired entries read as absent."""
        key = str(tx_id or "").strip()
        if not key:
            return None
        shard = self._shard(key)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del shard.entries[key]
                expired = True
            else:
                return entry.bundle
        if expired:
            log_event(logger, "cache.entry_expired", severity="WARNING", tx_id=key)
        return None

    def delete(self, tx_id: str) -> bool:
        """Remove the entry; returns True when one was present."""
        key = str(tx_id or "").strip()
        if not key:
            return False
        shard = self._shard(key)
        with shard.lock:
            return shard.entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        if self._ttl_s is None:
            return 0
        now = self._clock()
        purged = 0
        for shard in self._shards:
            with shard.lock:
                stale = [k for k, e in shard.entries.items() if self._expired(e, now)]
                for k in stale:
                    del shard.entries[k]
            purged += len(stale)
        if purged:
            log_event(logger, "cache.purged", purged=purged)
        return purged

    def clear(self) -> int:
        cleared = 0
        for shard in self._shards:
            with shard.lock:
                cleared += len(shard.entries)
                shard.entries.clear()
        return cleared

    def __len__(self) -> int:
        return sum(len(s.entries) for s in self._shards)

    def __contains__(self, tx_id: object) -> bool:
        return isinstance(tx_id, str) and self.get(tx_id) is not None
