"""
Single-step proposal and transaction transitions.

Each transition is one gateway write by the authorized party (sender for
create, withdraw and settle; regulator for freeze and flag). Failures surface
directly as `LedgerCallFailed`; there is no saga structure here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from crossborder.common.logging import log_event
from crossborder.ledger.errors import InvalidRequest
from crossborder.ledger.gateway import LedgerGateway
from crossborder.ledger.models import (
    PROPOSAL_TEMPLATE,
    REGULATOR_VIEW_TEMPLATE,
    TRANSACTION_TEMPLATE,
    Choice,
    ContractRecord,
)
from crossborder.workflow.cache import SensitiveDataCache
from crossborder.workflow.models import (
    CreateProposalRequest,
    RoleViewKind,
    SensitiveBundle,
    proposal_ledger_fields,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    operation: str
    previous_contract_id: Optional[str]
    contract_id: Optional[str]
    tx_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "previousContractId": self.previous_contract_id,
            "contractId": self.contract_id,
            "txId": self.tx_id,
        }


class ProposalLifecycleService:
    def __init__(self, gateway: LedgerGateway, cache: SensitiveDataCache) -> None:
        self._gateway = gateway
        self._cache = cache

    # --- Reads ---------------------------------------------------------------

    async def list_proposals(self, party: str) -> list[ContractRecord]:
        return await self._gateway.query_active_contracts(party, PROPOSAL_TEMPLATE)

    async def list_transactions(self, party: str) -> list[ContractRecord]:
        return await self._gateway.query_active_contracts(party, TRANSACTION_TEMPLATE)

    async def list_views(self, party: str, kind: RoleViewKind | str) -> list[ContractRecord]:
        try:
            view_kind = RoleViewKind(kind)
        except ValueError as e:
            raise InvalidRequest(f"unknown view kind: {kind!r}") from e
        return await self._gateway.query_active_contracts(party, view_kind.template_name)

    # --- Transitions ---------------------------------------------------------

    async def create(self, sender: str, request: CreateProposalRequest) -> TransitionResult:
        """
        Stage the sensitive bundle, then create the proposal signed by the sender alone.

        Recipient and regulator are observers. If the create fails the staged
        bundle stays behind until a TTL (if configured) expires it.
        """
        sender_id = self._gateway.resolve_party(sender)
        recipient_id = self._gateway.resolve_party(request.recipient)
        regulator_id = self._gateway.resolve_party(request.regulator)

        self._cache.put(request.tx_id, SensitiveBundle.from_request(request))

        fields = proposal_ledger_fields(
            request,
            sender=sender_id,
            recipient=recipient_id,
            regulator=regulator_id,
        )
        raw = await self._gateway.submit_create([sender_id], PROPOSAL_TEMPLATE, fields)
        contract_id = self._gateway.extract_created_contract_id(raw, template_name=PROPOSAL_TEMPLATE)
        log_event(
            logger,
            "proposal.created",
            tx_id=request.tx_id,
            contract_id=contract_id,
            amount=request.amount,
            send_currency=request.send_currency,
        )
        return TransitionResult(
            operation="create",
            previous_contract_id=None,
            contract_id=contract_id,
            tx_id=request.tx_id,
        )

    async def _find_tx_id(self, party: str, template_name: str, contract_id: str) -> Optional[str]:
        for record in await self._gateway.query_active_contracts(party, template_name):
            if record.contract_id == contract_id:
                return record.tx_id or None
        return None

    async def withdraw(self, sender: str, contract_id: str) -> TransitionResult:
        """Withdraw a proposal (terminal) and drop its staged bundle."""
        tx_id = await self._find_tx_id(sender, PROPOSAL_TEMPLATE, contract_id)
        await self._gateway.submit_exercise(sender, PROPOSAL_TEMPLATE, contract_id, Choice.WITHDRAW_PROPOSAL, {})
        if tx_id:
            self._cache.delete(tx_id)
        else:
            log_event(logger, "proposal.withdraw_tx_unknown", severity="WARNING", contract_id=contract_id)
        log_event(logger, "proposal.withdrawn", tx_id=tx_id, contract_id=contract_id)
        return TransitionResult(
            operation="withdraw",
            previous_contract_id=contract_id,
            contract_id=None,
            tx_id=tx_id,
        )

    async def _transition(self, operation: str, party: str, contract_id: str, choice: Choice) -> TransitionResult:
        # Regulator co-signature is not checked here; the ledger's template decides.
        raw = await self._gateway.submit_exercise(party, TRANSACTION_TEMPLATE, contract_id, choice, {})
        new_id = self._gateway.extract_created_contract_id(raw, template_name=TRANSACTION_TEMPLATE)
        log_event(logger, f"transaction.{operation}", contract_id=contract_id, new_contract_id=new_id)
        return TransitionResult(operation=operation, previous_contract_id=contract_id, contract_id=new_id)

    async def freeze(self, regulator: str, contract_id: str) -> TransitionResult:
        return await self._transition("freeze", regulator, contract_id, Choice.FREEZE)

    async def settle(self, sender: str, contract_id: str) -> TransitionResult:
        return await self._transition("settle", sender, contract_id, Choice.SETTLE)

    async def flag_suspicious(self, regulator: str, view_contract_id: str, notes: str) -> TransitionResult:
        text = str(notes or "").strip()
        if not text:
            raise InvalidRequest("notes are required to flag a transaction")
        raw = await self._gateway.submit_exercise(
            regulator,
            REGULATOR_VIEW_TEMPLATE,
            view_contract_id,
            Choice.FLAG_SUSPICIOUS,
            {"notes": text},
        )
        new_id = self._gateway.extract_created_contract_id(raw, template_name=REGULATOR_VIEW_TEMPLATE)
        log_event(logger, "view.flagged", contract_id=view_contract_id, new_contract_id=new_id)
        return TransitionResult(operation="flag_suspicious", previous_contract_id=view_contract_id, contract_id=new_id)
