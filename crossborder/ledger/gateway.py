"""
Ledger gateway: the only component that speaks the ledger's JSON API.

Responsibilities:
- party resolution (handle -> full ledger identifier)
- active-contract queries (best-effort reads: failures degrade to [])
- create / exercise command submission (writes: failures raise LedgerCallFailed)
- command-id generation and response normalization

No business logic lives here.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Any, Mapping, Optional, Sequence

import httpx

from crossborder.common.config import LedgerSettings
from crossborder.common.logging import log_event
from crossborder.ledger.errors import LedgerCallFailed
from crossborder.ledger.models import ContractRecord, is_full_party_id, party_handle
from crossborder.ledger.responses import (
    discover_package_id,
    extract_created_contract_id,
    normalize_active_contracts,
)
from crossborder.observability.redaction import redact

logger = logging.getLogger(__name__)


TRANSACTION_SUBMIT_SUFFIX = "submit-and-wait-for-transaction"


def new_command_id() -> str:
    """Time-based prefix plus random suffix: unique per call, so a retried call cannot double-apply."""
    return f"cmd-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class LedgerGateway:
    """
    Async client for the ledger JSON API (v2).

    One `httpx.AsyncClient` is shared for the gateway's lifetime; close it with
    `aclose()` (or use the gateway as an async context manager).
    """

    def __init__(
        self,
        settings: LedgerSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.ledger_url,
            timeout=settings.request_timeout_s,
            headers={"Content-Type": "application/json"},
        )
        self._owns_client = client is None
        self._package_id: Optional[str] = settings.package_id
        self._parties: dict[str, str] = {}
        self._parties_lock = threading.Lock()
        self.register_parties(settings.party_allocations)

    async def __aenter__(self) -> "LedgerGateway":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Parties -----------------------------------------------------------

    def register_party(self, handle: str, full_id: str) -> bool:
        """
        Append one handle -> full identifier allocation.

        The map is append-only: an existing handle is never remapped.
        Returns True when the entry was added.
        """
        h = str(handle or "").strip()
        f = str(full_id or "").strip()
        if not h or not f:
            return False
        with self._parties_lock:
            existing = self._parties.get(h)
            if existing is None:
                self._parties[h] = f
                return True
        if existing != f:
            log_event(
                logger,
                "ledger.party_remap_ignored",
                severity="WARNING",
                handle=h,
                existing=existing,
                rejected=f,
            )
        return False

    def register_parties(self, allocations: Mapping[str, str]) -> int:
        return sum(1 for h, f in dict(allocations or {}).items() if self.register_party(h, f))

    def known_parties(self) -> dict[str, str]:
        with self._parties_lock:
            return dict(self._parties)

    def resolve_party(self, handle: str) -> str:
        """
        Resolve a display handle to its full ledger identifier.

        Full identifiers pass through unchanged. Unknown handles are logged and
        passed through as-is; the ledger rejects an invalid actor itself.
        """
        h = str(handle or "").strip()
        if is_full_party_id(h):
            return h
        with self._parties_lock:
            full_id = self._parties.get(h)
        if full_id is None:
            log_event(logger, "ledger.party_unresolved", severity="WARNING", handle=h)
            return h
        return full_id

    async def sync_parties(self) -> int:
        """
        Best-effort pull of the ledger's party list into the allocation map.

        Returns the number of newly registered handles (0 on any failure).
        """
        try:
            response = await self._client.get("/v2/parties", headers=self._auth_headers(None))
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log_event(logger, "ledger.party_sync_failed", severity="WARNING", error=str(e))
            return 0

        details = payload.get("partyDetails") if isinstance(payload, Mapping) else payload
        added = 0
        for d in details if isinstance(details, list) else []:
            full_id = d.get("party") if isinstance(d, Mapping) else d
            if isinstance(full_id, str) and is_full_party_id(full_id):
                added += int(self.register_party(party_handle(full_id), full_id))
        log_event(logger, "ledger.party_sync", added=added)
        return added

    # --- Templates ---------------------------------------------------------

    @property
    def package_id(self) -> Optional[str]:
        return self._package_id

    def template_id(self, template_name: str) -> str:
        if self._package_id:
            return f"{self._package_id}:{self._settings.module_name}:{template_name}"
        # The JSON API accepts Module:Entity when there is no ambiguity.
        return f"{self._settings.module_name}:{template_name}"

    def _auth_headers(self, acting_party: Optional[str]) -> dict[str, str]:
        # The sandbox accepts the party handle itself as bearer token.
        token = self._settings.auth_token or (party_handle(acting_party) if acting_party else "")
        return {"Authorization": f"Bearer {token}"} if token else {}

    # --- Reads ---------------------------------------------------------------

    async def _ledger_end(self, acting_party: str) -> int:
        response = await self._client.get("/v2/state/ledger-end", headers=self._auth_headers(acting_party))
        response.raise_for_status()
        payload = response.json()
        offset = payload.get("offset") if isinstance(payload, Mapping) else payload
        if offset is None:
            return 0
        if isinstance(offset, bool) or not isinstance(offset, (int, str)):
            raise ValueError(f"unexpected ledger-end offset: {offset!r}")
        return int(offset)

    async def query_active_contracts(self, acting_party: str, template_name: str) -> list[ContractRecord]:
        """
        Active contracts of `template_name` visible to `acting_party`.

        Listing is a best-effort read: transport or ledger errors are logged and
        yield an empty list.
        """
        party = self.resolve_party(acting_party)
        try:
            offset = await self._ledger_end(party)
            body = {
                "filter": {
                    "filtersByParty": {
                        party: {
                            "cumulative": [
                                {
                                    "identifierFilter": {
                                        "TemplateFilter": {
                                            "value": {
                                                "templateId": self.template_id(template_name),
                                                "includeCreatedEventBlob": False,
                                            }
                                        }
                                    }
                                }
                            ]
                        }
                    }
                },
                "verbose": True,
                "activeAtOffset": offset,
            }
            response = await self._client.post(
                "/v2/state/active-contracts",
                json=body,
                headers=self._auth_headers(party),
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError, TypeError) as e:
            detail: Any = str(e)
            if isinstance(e, httpx.HTTPStatusError):
                detail = _decode_body(e.response)
            log_event(
                logger,
                "ledger.query_failed",
                severity="ERROR",
                template_name=template_name,
                party=party,
                error=redact(detail),
            )
            return []

        if not self._package_id:
            discovered = discover_package_id(payload)
            if discovered:
                self._package_id = discovered
                log_event(logger, "ledger.package_discovered", package_id=discovered)

        return normalize_active_contracts(payload, template_name=template_name)

    # --- Writes --------------------------------------------------------------

    async def _submit(self, *, operation: str, acting_parties: Sequence[str], command: dict[str, Any]) -> Any:
        command_id = new_command_id()
        commands: dict[str, Any] = {
            "commands": [command],
            "actAs": list(acting_parties),
            "commandId": command_id,
        }
        if self._settings.user_id:
            commands["userId"] = self._settings.user_id
        # The -for-transaction variant nests the command set; submit-and-wait takes it flat.
        path = self._settings.submit_path
        body = {"commands": commands} if path.rstrip("/").endswith(TRANSACTION_SUBMIT_SUFFIX) else commands

        try:
            response = await self._client.post(
                path,
                json=body,
                headers=self._auth_headers(acting_parties[0]),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            payload = _decode_body(e.response)
            log_event(
                logger,
                "ledger.submit_failed",
                severity="ERROR",
                operation=operation,
                command_id=command_id,
                status_code=e.response.status_code,
                error=redact(payload),
            )
            raise LedgerCallFailed(
                operation=operation,
                status_code=e.response.status_code,
                payload=payload,
                detail="ledger rejected the command",
            ) from e
        except httpx.RequestError as e:
            log_event(
                logger,
                "ledger.submit_failed",
                severity="ERROR",
                operation=operation,
                command_id=command_id,
                error=str(e),
            )
            raise LedgerCallFailed(operation=operation, payload=str(e), detail=type(e).__name__) from e

        log_event(logger, "ledger.submitted", operation=operation, command_id=command_id)
        try:
            return response.json()
        except ValueError:
            # A non-JSON success body (e.g. a proxy page) carries no identifier.
            log_event(
                logger,
                "ledger.submit_undecodable",
                severity="WARNING",
                operation=operation,
                command_id=command_id,
                content_type=response.headers.get("content-type", ""),
            )
            return None

    async def submit_create(
        self,
        acting_parties: Sequence[str],
        template_name: str,
        fields: Mapping[str, Any],
    ) -> Any:
        """Create one contract signed by every party in `acting_parties`; returns the raw response."""
        parties = [self.resolve_party(p) for p in acting_parties]
        if not parties:
            raise ValueError("at least one acting party is required")
        command = {
            "CreateCommand": {
                "templateId": self.template_id(template_name),
                "createArguments": dict(fields),
            }
        }
        return await self._submit(operation=f"create {template_name}", acting_parties=parties, command=command)

    async def submit_exercise(
        self,
        acting_party: str,
        template_name: str,
        contract_id: str,
        choice: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Exercise `choice` on `contract_id` as `acting_party`; returns the raw response."""
        party = self.resolve_party(acting_party)
        choice_name = getattr(choice, "value", choice)
        command = {
            "ExerciseCommand": {
                "templateId": self.template_id(template_name),
                "contractId": contract_id,
                "choice": choice_name,
                "choiceArgument": dict(args or {}),
            }
        }
        return await self._submit(
            operation=f"exercise {template_name}.{choice_name}",
            acting_parties=[party],
            command=command,
        )

    def extract_created_contract_id(self, raw_response: Any, *, template_name: Optional[str] = None) -> Optional[str]:
        return extract_created_contract_id(raw_response, template_name=template_name)
