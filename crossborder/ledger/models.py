from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

# Separates a party handle from the ledger-assigned fingerprint ("Alice::1220ab...").
PARTY_ID_SEPARATOR = "::"

PROPOSAL_TEMPLATE = "CrossBorderTxProposal"
TRANSACTION_TEMPLATE = "CrossBorderTx"
SENDER_VIEW_TEMPLATE = "SenderView"
RECIPIENT_VIEW_TEMPLATE = "RecipientView"
REGULATOR_VIEW_TEMPLATE = "RegulatorView"


class Choice(str, Enum):
    ACCEPT_PROPOSAL = "AcceptProposal"
    REGULATOR_CO_SIGN = "RegulatorCoSign"
    CREATE_SENDER_VIEW = "CreateSenderView"
    CREATE_RECIPIENT_VIEW = "CreateRecipientView"
    CREATE_REGULATOR_VIEW = "CreateRegulatorView"
    WITHDRAW_PROPOSAL = "WithdrawProposal"
    FREEZE = "Freeze"
    SETTLE = "Settle"
    FLAG_SUSPICIOUS = "FlagSuspicious"


@dataclass(frozen=True)
class ContractRecord:
    """
    Immutable snapshot of one active contract.

    A transition never mutates a record: it archives it on the ledger and
    yields a new record with a new `contract_id`.
    """

    contract_id: str
    template_name: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def tx_id(self) -> str:
        return str(self.fields.get("txId") or "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "contractId": self.contract_id,
            "templateName": self.template_name,
            "fields": dict(self.fields),
        }


def is_full_party_id(value: str) -> bool:
    return PARTY_ID_SEPARATOR in str(value or "")


def party_handle(full_id: str) -> str:
    return str(full_id or "").split(PARTY_ID_SEPARATOR, 1)[0]


def template_entity(template_id: str) -> str:
    """`pkg:Module:Entity` / `Module:Entity` / `Entity` -> `Entity`."""
    return str(template_id or "").rsplit(":", 1)[-1]
