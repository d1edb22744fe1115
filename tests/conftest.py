from __future__ import annotations

import itertools
from typing import Any, Mapping, Optional, Sequence

import httpx
import pytest

from crossborder.common.config import LedgerSettings
from crossborder.ledger.errors import LedgerCallFailed
from crossborder.ledger.gateway import LedgerGateway
from crossborder.ledger.models import (
    PROPOSAL_TEMPLATE,
    RECIPIENT_VIEW_TEMPLATE,
    REGULATOR_VIEW_TEMPLATE,
    SENDER_VIEW_TEMPLATE,
    TRANSACTION_TEMPLATE,
    ContractRecord,
)
from crossborder.workflow.cache import SensitiveDataCache
from crossborder.workflow.models import CreateProposalRequest

PARTIES = {
    "SenderBank": "SenderBank::1220aa",
    "RecipientBank": "RecipientBank::1220bb",
    "Regulator": "Regulator::1220cc",
}
SENDER = "SenderBank"
RECIPIENT = "RecipientBank"
REGULATOR = "Regulator"

_VIEW_TEMPLATES = {
    "CreateSenderView": SENDER_VIEW_TEMPLATE,
    "CreateRecipientView": RECIPIENT_VIEW_TEMPLATE,
    "CreateRegulatorView": REGULATOR_VIEW_TEMPLATE,
}


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected HTTP call: {request.method} {request.url}")


def _created(cid: str, template_name: str, fields: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "CreatedEvent": {
            "contractId": cid,
            "templateId": f"pkg0:CrossBorderTransaction:{template_name}",
            "createArgument": dict(fields),
        }
    }


class FakeLedgerGateway(LedgerGateway):
    """
    In-memory ledger behind the real gateway.

    Only the wire calls are replaced; party resolution and response
    normalization are the real ones. Each choice answers in a different
    response shape, the way the JSON API variants do.
    """

    def __init__(self, parties: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(
            LedgerSettings(party_allocations=dict(PARTIES if parties is None else parties)),
            client=httpx.AsyncClient(transport=httpx.MockTransport(_no_network)),
        )
        self.contracts: dict[str, ContractRecord] = {}
        self.archived: set[str] = set()
        self.calls: list[tuple[Any, ...]] = []
        self.fail_choices: dict[str, int] = {}
        self.blank_choices: set[str] = set()
        self.fail_queries = False
        self._ids = itertools.count(1)

    def _new_cid(self) -> str:
        return f"00cid{next(self._ids):04d}"

    def seed(self, template_name: str, fields: Mapping[str, Any]) -> ContractRecord:
        record = ContractRecord(contract_id=self._new_cid(), template_name=template_name, fields=dict(fields))
        self.contracts[record.contract_id] = record
        return record

    def exercises(self, choice: Optional[str] = None) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "exercise" and (choice is None or c[4] == choice)]

    async def query_active_contracts(self, acting_party: str, template_name: str) -> list[ContractRecord]:
        party = self.resolve_party(acting_party)
        self.calls.append(("query", party, template_name))
        if self.fail_queries:
            return []
        return [
            r
            for r in self.contracts.values()
            if r.template_name == template_name
            and party in {r.fields.get("sender"), r.fields.get("recipient"), r.fields.get("regulator"), r.fields.get("viewer")}
        ]

    async def submit_create(
        self,
        acting_parties: Sequence[str],
        template_name: str,
        fields: Mapping[str, Any],
    ) -> Any:
        parties = [self.resolve_party(p) for p in acting_parties]
        self.calls.append(("create", tuple(parties), template_name, dict(fields)))
        if self.fail_choices.get("create"):
            raise LedgerCallFailed(operation=f"create {template_name}", status_code=503, payload={"cause": "down"})
        record = self.seed(template_name, fields)
        return {"transaction": {"events": [_created(record.contract_id, template_name, fields)]}}

    def _fail(self, choice: str, template_name: str) -> None:
        remaining = self.fail_choices.get(choice, 0)
        if remaining:
            self.fail_choices[choice] = remaining - 1
            raise LedgerCallFailed(
                operation=f"exercise {template_name}.{choice}",
                status_code=500,
                payload={"code": "INTERNAL", "cause": f"{choice} failed"},
            )

    async def submit_exercise(
        self,
        acting_party: str,
        template_name: str,
        contract_id: str,
        choice: str,
        args: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        party = self.resolve_party(acting_party)
        choice_name = getattr(choice, "value", choice)
        self.calls.append(("exercise", party, template_name, contract_id, choice_name, dict(args or {})))
        self._fail(choice_name, template_name)

        target = self.contracts.get(contract_id)
        if target is None or target.template_name != template_name:
            raise LedgerCallFailed(
                operation=f"exercise {template_name}.{choice_name}",
                status_code=404,
                payload={"code": "CONTRACT_NOT_FOUND", "contractId": contract_id},
            )
        if choice_name in self.blank_choices:
            return {"status": "accepted"}

        if choice_name in _VIEW_TEMPLATES:
            view_template = _VIEW_TEMPLATES[choice_name]
            fields = {**dict(args or {}), "txId": target.tx_id, "viewer": party}
            view = self.seed(view_template, fields)
            # Views come back as a bare identifier.
            return view.contract_id

        del self.contracts[contract_id]
        self.archived.add(contract_id)

        if choice_name == "WithdrawProposal":
            return {"transaction": {"events": [{"ArchivedEvent": {"contractId": contract_id}}]}}
        if choice_name == "AcceptProposal":
            tx = self.seed(TRANSACTION_TEMPLATE, {**target.fields, "status": "Proposed"})
            return {"result": {"exerciseResult": tx.contract_id}}
        if choice_name == "RegulatorCoSign":
            tx = self.seed(TRANSACTION_TEMPLATE, {**target.fields, "status": "Approved"})
            return {
                "transaction": {
                    "events": [
                        {"ArchivedEvent": {"contractId": contract_id}},
                        _created(tx.contract_id, TRANSACTION_TEMPLATE, tx.fields),
                    ]
                }
            }
        if choice_name in ("Freeze", "Settle"):
            status = "Frozen" if choice_name == "Freeze" else "Settled"
            tx = self.seed(TRANSACTION_TEMPLATE, {**target.fields, "status": status})
            return {"exerciseResult": tx.contract_id}
        if choice_name == "FlagSuspicious":
            view = self.seed(template_name, {**target.fields, "flagged": True, "flagNotes": (args or {}).get("notes")})
            return {"transaction": {"events": [_created(view.contract_id, template_name, view.fields)]}}
        raise AssertionError(f"unexpected choice {choice_name}")


def make_request(
    *,
    tx_id: str = "TX-1001",
    amount: str = "1500000",
    source_of_funds: str = "cash reserves",
    purpose: str = "Invoice 2291 settlement",
) -> CreateProposalRequest:
    return CreateProposalRequest.model_validate(
        {
            "txId": tx_id,
            "recipient": RECIPIENT,
            "regulator": REGULATOR,
            "senderInfo": {
                "senderName": "Acme GmbH",
                "senderAccount": "DE89370400440532013000",
                "senderBankSwift": "COBADEFFXXX",
                "senderCountry": "DE",
                "senderTaxId": "DE123456789",
            },
            "recipientInfo": {
                "recipientName": "Globex Ltd",
                "recipientAccount": "GB29NWBK60161331926819",
                "recipientBankSwift": "NWBKGB2LXXX",
                "recipientCountry": "GB",
                "recipientTaxId": "GB987654321",
            },
            "declaration": {"purposeOfPayment": purpose, "sourceOfFunds": source_of_funds},
            "amount": amount,
            "sendCurrency": "EUR",
            "receiveCurrency": "GBP",
        }
    )


@pytest.fixture
def ledger() -> FakeLedgerGateway:
    return FakeLedgerGateway()


@pytest.fixture
def cache() -> SensitiveDataCache:
    return SensitiveDataCache(shards=4)
