"""
Application-facing facade.

Every operation returns an `OperationOutcome`: `ok` plus a JSON-ready result,
or `ok=False` plus a structured error `{kind, message, ...}`. Workflow and
input-validation errors never escape; anything else is a bug and propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Mapping, Optional, Union

from pydantic import ValidationError

from crossborder.common.logging import log_event
from crossborder.ledger.errors import InvalidRequest, WorkflowError
from crossborder.ledger.gateway import LedgerGateway
from crossborder.workflow.cache import SensitiveDataCache
from crossborder.workflow.lifecycle import ProposalLifecycleService
from crossborder.workflow.models import CreateProposalRequest, RoleViewKind
from crossborder.workflow.saga import ProposalAcceptanceSaga

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationOutcome:
    ok: bool
    result: Any = None
    error: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "result": self.result}
        return {"ok": False, "error": self.error}


def _records(records: list) -> list[dict[str, Any]]:
    return [r.to_dict() for r in records]


class CrossBorderService:
    def __init__(
        self,
        gateway: LedgerGateway,
        cache: SensitiveDataCache,
        *,
        lifecycle: Optional[ProposalLifecycleService] = None,
        saga: Optional[ProposalAcceptanceSaga] = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.lifecycle = lifecycle or ProposalLifecycleService(gateway, cache)
        self.saga = saga or ProposalAcceptanceSaga(gateway, cache)

    async def _run(self, operation: str, call: Awaitable[Any]) -> OperationOutcome:
        try:
            result = await call
        except WorkflowError as e:
            log_event(
                logger,
                "service.operation_failed",
                severity="WARNING",
                operation=operation,
                error_kind=e.kind,
                error=str(e),
            )
            return OperationOutcome(ok=False, error=e.to_dict())
        return OperationOutcome(ok=True, result=result)

    # --- Proposals -----------------------------------------------------------

    async def list_proposals(self, party: str) -> OperationOutcome:
        async def call() -> Any:
            return _records(await self.lifecycle.list_proposals(party))

        return await self._run("list_proposals", call())

    async def create_proposal(
        self,
        party: str,
        request: Union[CreateProposalRequest, Mapping[str, Any]],
    ) -> OperationOutcome:
        async def call() -> Any:
            try:
                req = (
                    request
                    if isinstance(request, CreateProposalRequest)
                    else CreateProposalRequest.model_validate(dict(request))
                )
            except ValidationError as e:
                raise InvalidRequest(
                    "invalid proposal request",
                    errors=e.errors(include_url=False, include_context=False, include_input=False),
                ) from e
            return (await self.lifecycle.create(party, req)).to_dict()

        return await self._run("create_proposal", call())

    async def accept_proposal(self, party: str, contract_id: str) -> OperationOutcome:
        async def call() -> Any:
            return (await self.saga.run(party, contract_id)).to_dict()

        return await self._run("accept_proposal", call())

    async def withdraw_proposal(self, party: str, contract_id: str) -> OperationOutcome:
        async def call() -> Any:
            return (await self.lifecycle.withdraw(party, contract_id)).to_dict()

        return await self._run("withdraw_proposal", call())

    # --- Transactions --------------------------------------------------------

    async def list_transactions(self, party: str) -> OperationOutcome:
        async def call() -> Any:
            return _records(await self.lifecycle.list_transactions(party))

        return await self._run("list_transactions", call())

    async def freeze_transaction(self, party: str, contract_id: str) -> OperationOutcome:
        async def call() -> Any:
            return (await self.lifecycle.freeze(party, contract_id)).to_dict()

        return await self._run("freeze_transaction", call())

    async def settle_transaction(self, party: str, contract_id: str) -> OperationOutcome:
        async def call() -> Any:
            return (await self.lifecycle.settle(party, contract_id)).to_dict()

        return await self._run("settle_transaction", call())

    # --- Views ---------------------------------------------------------------

    async def list_views(self, party: str, kind: Union[RoleViewKind, str]) -> OperationOutcome:
        async def call() -> Any:
            return _records(await self.lifecycle.list_views(party, kind))

        return await self._run("list_views", call())

    async def flag_suspicious(self, party: str, contract_id: str, notes: str) -> OperationOutcome:
        async def call() -> Any:
            return (await self.lifecycle.flag_suspicious(party, contract_id, notes)).to_dict()

        return await self._run("flag_suspicious", call())
