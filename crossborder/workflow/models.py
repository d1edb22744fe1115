"""
Cross-border transaction workflow models.

Only non-sensitive fields are placed on the shared proposal record. Account
numbers, tax ids and the payment declaration travel off-ledger in a
`SensitiveBundle` and reach each party through its role view.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

from crossborder.ledger.models import (
    RECIPIENT_VIEW_TEMPLATE,
    REGULATOR_VIEW_TEMPLATE,
    SENDER_VIEW_TEMPLATE,
    Choice,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_ledger(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TxState(str, Enum):
    PROPOSED = "Proposed"
    APPROVED = "Approved"
    SETTLED = "Settled"
    FROZEN = "Frozen"
    WITHDRAWN = "Withdrawn"


class RoleViewKind(str, Enum):
    SENDER = "sender"
    RECIPIENT = "recipient"
    REGULATOR = "regulator"

    @property
    def template_name(self) -> str:
        return {
            RoleViewKind.SENDER: SENDER_VIEW_TEMPLATE,
            RoleViewKind.RECIPIENT: RECIPIENT_VIEW_TEMPLATE,
            RoleViewKind.REGULATOR: REGULATOR_VIEW_TEMPLATE,
        }[self]

    @property
    def create_choice(self) -> Choice:
        return {
            RoleViewKind.SENDER: Choice.CREATE_SENDER_VIEW,
            RoleViewKind.RECIPIENT: Choice.CREATE_RECIPIENT_VIEW,
            RoleViewKind.REGULATOR: Choice.CREATE_REGULATOR_VIEW,
        }[self]


class SenderInfo(_WireModel):
    sender_name: str = Field(..., min_length=1)
    sender_account: str = ""
    sender_bank_swift: str = ""
    sender_country: str = ""
    sender_tax_id: str = ""


class RecipientInfo(_WireModel):
    recipient_name: str = Field(..., min_length=1)
    recipient_account: str = ""
    recipient_bank_swift: str = ""
    recipient_country: str = ""
    recipient_tax_id: str = ""


class Declaration(_WireModel):
    purpose_of_payment: str = ""
    source_of_funds: str = ""


class CreateProposalRequest(_WireModel):
    """Body of a proposal creation, as submitted by the sender."""

    tx_id: str = Field(..., min_length=1)
    recipient: str = Field(..., min_length=1)
    regulator: str = Field(..., min_length=1)
    sender_info: SenderInfo
    recipient_info: RecipientInfo
    declaration: Declaration = Field(default_factory=Declaration)
    amount: str = Field(..., min_length=1)
    send_currency: str = Field(..., min_length=1)
    receive_currency: str = ""


class SenderBankDetails(_WireModel):
    sender_account: str = ""
    sender_bank_swift: str = ""
    sender_tax_id: str = ""


class RecipientBankDetails(_WireModel):
    recipient_account: str = ""
    recipient_bank_swift: str = ""
    recipient_tax_id: str = ""


class SensitiveBundle(_WireModel):
    """Off-ledger staging entry, keyed by txId in the sensitive-data cache."""

    sender_bank_details: SenderBankDetails = Field(default_factory=SenderBankDetails)
    recipient_bank_details: RecipientBankDetails = Field(default_factory=RecipientBankDetails)
    declaration: Declaration = Field(default_factory=Declaration)

    @classmethod
    def from_request(cls, request: CreateProposalRequest) -> "SensitiveBundle":
        s = request.sender_info
        r = request.recipient_info
        return cls(
            sender_bank_details=SenderBankDetails(
                sender_account=s.sender_account,
                sender_bank_swift=s.sender_bank_swift,
                sender_tax_id=s.sender_tax_id,
            ),
            recipient_bank_details=RecipientBankDetails(
                recipient_account=r.recipient_account,
                recipient_bank_swift=r.recipient_bank_swift,
                recipient_tax_id=r.recipient_tax_id,
            ),
            declaration=request.declaration,
        )


def proposal_ledger_fields(
    request: CreateProposalRequest,
    *,
    sender: str,
    recipient: str,
    regulator: str,
    created_at: datetime | None = None,
) -> Dict[str, Any]:
    """Non-sensitive proposal fields placed on the shared ledger record."""
    return {
        "sender": sender,
        "recipient": recipient,
        "regulator": regulator,
        "txId": request.tx_id,
        "senderName": request.sender_info.sender_name,
        "senderCountry": request.sender_info.sender_country,
        "recipientName": request.recipient_info.recipient_name,
        "recipientCountry": request.recipient_info.recipient_country,
        "amount": request.amount,
        "sendCurrency": request.send_currency,
        "receiveCurrency": request.receive_currency or request.send_currency,
        "createdAt": (created_at or utc_now()).isoformat(),
    }
