"""
Process-lifetime wiring: one gateway, one sensitive-data cache, one facade.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from crossborder.common.config import Settings, load_settings
from crossborder.common.logging import log_event
from crossborder.ledger.gateway import LedgerGateway
from crossborder.service import CrossBorderService
from crossborder.workflow.cache import SensitiveDataCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_runtime(
    settings: Optional[Settings] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[CrossBorderService]:
    """
    Build the service for the enclosed block.

    Startup registers the configured party allocations (and optionally pulls
    the ledger's party list). Shutdown closes the HTTP client and clears any
    staged sensitive bundles.
    """
    settings = settings or load_settings()
    cache = SensitiveDataCache(shards=settings.cache.shards, ttl_s=settings.cache.ttl_s)
    gateway = LedgerGateway(settings.ledger, client=client)
    log_event(
        logger,
        "runtime.started",
        ledger_url=settings.ledger.ledger_url,
        parties=sorted(gateway.known_parties()),
    )
    try:
        if settings.ledger.sync_parties_on_start:
            await gateway.sync_parties()
        yield CrossBorderService(gateway, cache)
    finally:
        dropped = cache.clear()
        await gateway.aclose()
        log_event(logger, "runtime.stopped", dropped_bundles=dropped)
