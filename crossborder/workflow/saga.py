"""
Proposal acceptance saga: Proposed -> Approved, then per-role views.

Forward-only and best-effort. Each ledger call commits on its own; nothing
that already succeeded is rolled back.

Steps:
1. locate the proposal among the accepting party's active contracts (fatal)
2. screen the transaction (pure, never fails)
3. accept as the accepting party (fatal, including a missing new id)
4. regulator co-sign (non-fatal: keep the step-3 id, record a warning)
5. create the three role views concurrently, each fault-isolated (non-fatal)
6. delete the staged sensitive bundle, whatever happened in steps 2-5
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from crossborder.common.logging import log_event
from crossborder.compliance.screening import (
    ComplianceScreening,
    ScreeningInput,
    screen_transaction,
)
from crossborder.ledger.errors import (
    IdentifierExtractionFailed,
    NotFound,
    PartialSagaCompletion,
    WorkflowError,
)
from crossborder.ledger.gateway import LedgerGateway
from crossborder.ledger.models import (
    PROPOSAL_TEMPLATE,
    TRANSACTION_TEMPLATE,
    Choice,
    ContractRecord,
)
from crossborder.observability.correlation import bind_correlation_id
from crossborder.observability.redaction import redact
from crossborder.workflow.cache import SensitiveDataCache
from crossborder.workflow.models import RoleViewKind, SensitiveBundle
from crossborder.workflow.projections import (
    project_recipient_view,
    project_regulator_view,
    project_sender_view,
)

logger = logging.getLogger(__name__)

STEP_COSIGN = "regulator_cosign"
UNEXPECTED_ERROR_KIND = "unexpected_error"


@dataclass(frozen=True)
class StepWarning:
    """A non-fatal step failure folded into the saga result."""

    step: str
    kind: str
    message: str
    role: Optional[str] = None
    payload: Any = None

    @classmethod
    def from_error(cls, step: str, error: Exception, *, role: Optional[str] = None) -> "StepWarning":
        return cls(
            step=step,
            kind=getattr(error, "kind", UNEXPECTED_ERROR_KIND),
            message=str(error) if isinstance(error, WorkflowError) else f"{type(error).__name__}: {error}",
            role=role,
            payload=getattr(error, "payload", None),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "kind": self.kind,
            "message": self.message,
            "role": self.role,
            "payload": redact(self.payload),
        }


@dataclass(frozen=True)
class AcceptanceResult:
    screening: ComplianceScreening
    current_contract_id: str
    sender_view_id: Optional[str] = None
    recipient_view_id: Optional[str] = None
    regulator_view_id: Optional[str] = None
    warnings: tuple[StepWarning, ...] = field(default_factory=tuple)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)

    def view_id(self, kind: RoleViewKind) -> Optional[str]:
        return {
            RoleViewKind.SENDER: self.sender_view_id,
            RoleViewKind.RECIPIENT: self.recipient_view_id,
            RoleViewKind.REGULATOR: self.regulator_view_id,
        }[RoleViewKind(kind)]

    def raise_for_partial(self) -> "AcceptanceResult":
        """Raise PartialSagaCompletion if any non-fatal step failed; else return self."""
        if self.warnings:
            raise PartialSagaCompletion(warnings=self.warnings, result=self)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "screening": self.screening.to_ledger(),
            "riskBucket": self.screening.bucket.value,
            "currentContractId": self.current_contract_id,
            "senderViewId": self.sender_view_id,
            "recipientViewId": self.recipient_view_id,
            "regulatorViewId": self.regulator_view_id,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def screening_input_for(proposal: ContractRecord, bundle: Optional[SensitiveBundle]) -> ScreeningInput:
    """On-ledger facts plus the cached declaration (empty strings on a cache miss)."""
    f = proposal.fields
    declaration = bundle.declaration if bundle is not None else None

    def text(key: str) -> str:
        v = f.get(key)
        return "" if v is None else str(v)

    return ScreeningInput(
        sender_name=text("senderName"),
        sender_country=text("senderCountry"),
        recipient_name=text("recipientName"),
        recipient_country=text("recipientCountry"),
        amount=text("amount") or "0",
        currency=text("sendCurrency") or text("currency"),
        purpose_of_payment=declaration.purpose_of_payment if declaration else "",
        source_of_funds=declaration.source_of_funds if declaration else "",
    )


class ProposalAcceptanceSaga:
    def __init__(
        self,
        gateway: LedgerGateway,
        cache: SensitiveDataCache,
        *,
        screen: Callable[[ScreeningInput], ComplianceScreening] = screen_transaction,
    ) -> None:
        self._gateway = gateway
        self._cache = cache
        self._screen = screen

    async def locate_proposal(self, accepting_party: str, contract_id: str) -> ContractRecord:
        proposals = await self._gateway.query_active_contracts(accepting_party, PROPOSAL_TEMPLATE)
        for p in proposals:
            if p.contract_id == contract_id:
                return p
        raise NotFound(
            template_name=PROPOSAL_TEMPLATE,
            contract_id=contract_id,
            party=self._gateway.resolve_party(accepting_party),
        )

    async def run(self, accepting_party: str, contract_id: str) -> AcceptanceResult:
        proposal = await self.locate_proposal(accepting_party, contract_id)
        tx_id = proposal.tx_id

        with bind_correlation_id(correlation_id=tx_id or None):
            log_event(logger, "saga.started", tx_id=tx_id, contract_id=contract_id)
            try:
                return await self._run_located(accepting_party, proposal)
            finally:
                if tx_id:
                    removed = self._cache.delete(tx_id)
                    log_event(logger, "saga.cache_released", tx_id=tx_id, removed=removed)

    async def _run_located(self, accepting_party: str, proposal: ContractRecord) -> AcceptanceResult:
        bundle = self._cache.get(proposal.tx_id) if proposal.tx_id else None
        if bundle is None:
            log_event(logger, "saga.cache_miss", severity="WARNING", tx_id=proposal.tx_id)

        screening = self._screen(screening_input_for(proposal, bundle))
        log_event(
            logger,
            "saga.screened",
            tx_id=proposal.tx_id,
            risk_score=screening.risk_score,
            bucket=screening.bucket.name,
        )

        current_id = await self._accept(accepting_party, proposal)
        warnings: list[StepWarning] = []

        regulator = str(proposal.fields.get("regulator") or "")
        current_id = await self._cosign(regulator, current_id, warnings)

        # The successor carries the proposal's fields; only the id changed.
        current = ContractRecord(
            contract_id=current_id,
            template_name=TRANSACTION_TEMPLATE,
            fields=proposal.fields,
        )
        view_args = {
            RoleViewKind.SENDER: project_sender_view(current, bundle),
            RoleViewKind.RECIPIENT: project_recipient_view(current, bundle),
            RoleViewKind.REGULATOR: project_regulator_view(current, bundle, screening),
        }
        results = await asyncio.gather(
            *(
                self._create_view(kind, str(proposal.fields.get(kind.value) or ""), current_id, args.to_ledger())
                for kind, args in view_args.items()
            )
        )
        view_ids: dict[RoleViewKind, Optional[str]] = {}
        for kind, (view_id, warning) in zip(view_args, results):
            view_ids[kind] = view_id
            if warning is not None:
                warnings.append(warning)

        result = AcceptanceResult(
            screening=screening,
            current_contract_id=current_id,
            sender_view_id=view_ids[RoleViewKind.SENDER],
            recipient_view_id=view_ids[RoleViewKind.RECIPIENT],
            regulator_view_id=view_ids[RoleViewKind.REGULATOR],
            warnings=tuple(warnings),
        )
        log_event(
            logger,
            "saga.completed",
            severity="WARNING" if result.partial else "INFO",
            tx_id=proposal.tx_id,
            current_contract_id=current_id,
            failed_steps=[w.step for w in warnings],
        )
        return result

    async def _accept(self, accepting_party: str, proposal: ContractRecord) -> str:
        # LedgerCallFailed propagates: nothing downstream can run without the new id.
        raw = await self._gateway.submit_exercise(
            accepting_party,
            PROPOSAL_TEMPLATE,
            proposal.contract_id,
            Choice.ACCEPT_PROPOSAL,
            {},
        )
        new_id = self._gateway.extract_created_contract_id(raw, template_name=TRANSACTION_TEMPLATE)
        if not new_id:
            raise IdentifierExtractionFailed(step="accept", payload=raw)
        log_event(logger, "saga.accepted", tx_id=proposal.tx_id, contract_id=new_id)
        return new_id

    async def _cosign(self, regulator: str, current_id: str, warnings: list[StepWarning]) -> str:
        try:
            raw = await self._gateway.submit_exercise(
                regulator,
                TRANSACTION_TEMPLATE,
                current_id,
                Choice.REGULATOR_CO_SIGN,
                {},
            )
            new_id = self._gateway.extract_created_contract_id(raw, template_name=TRANSACTION_TEMPLATE)
            if not new_id:
                raise IdentifierExtractionFailed(step=STEP_COSIGN, payload=raw)
        except Exception as e:
            warning = StepWarning.from_error(STEP_COSIGN, e, role=RoleViewKind.REGULATOR.value)
            warnings.append(warning)
            log_event(
                logger,
                "saga.cosign_failed",
                severity="WARNING",
                contract_id=current_id,
                error=warning.to_dict(),
            )
            return current_id
        log_event(logger, "saga.cosigned", contract_id=new_id)
        return new_id

    async def _create_view(
        self,
        kind: RoleViewKind,
        party: str,
        contract_id: str,
        args: dict[str, Any],
    ) -> tuple[Optional[str], Optional[StepWarning]]:
        step = f"create_{kind.value}_view"
        try:
            raw = await self._gateway.submit_exercise(
                party,
                TRANSACTION_TEMPLATE,
                contract_id,
                kind.create_choice,
                args,
            )
            view_id = self._gateway.extract_created_contract_id(raw, template_name=kind.template_name)
            if not view_id:
                raise IdentifierExtractionFailed(step=step, payload=raw)
        except Exception as e:
            warning = StepWarning.from_error(step, e, role=kind.value)
            log_event(
                logger,
                "saga.view_failed",
                severity="WARNING",
                role=kind.value,
                contract_id=contract_id,
                error=warning.to_dict(),
            )
            return None, warning
        log_event(logger, "saga.view_created", role=kind.value, view_id=view_id)
        return view_id, None
