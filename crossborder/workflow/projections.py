"""
Per-role selective disclosure.

Each projection enumerates exactly the fields its role may see and builds the
choice argument for that role's view-creation choice. Nothing is filtered
client-side: fields a role is not entitled to never leave this process.

- SenderView: full sender info and full recipient info, both of which the
  sender entered in the proposal request. Declaration and screening withheld.
- RecipientView: full recipient info, plus sender name, country and bank SWIFT
  (sender account and tax id withheld).
- RegulatorView: full sender info, full recipient info, declaration, screening.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from crossborder.compliance.screening import ComplianceScreening
from crossborder.ledger.models import ContractRecord
from crossborder.workflow.models import (
    Declaration,
    RecipientInfo,
    SenderInfo,
    SensitiveBundle,
    _WireModel,
)


class CounterpartySummary(_WireModel):
    name: str = ""
    country: str = ""
    bank_swift: str = ""


class SenderViewArgs(_WireModel):
    sender_info: SenderInfo
    recipient_info: RecipientInfo


class RecipientViewArgs(_WireModel):
    recipient_info: RecipientInfo
    sender_summary: CounterpartySummary


class RegulatorViewArgs(_WireModel):
    sender_info: SenderInfo
    recipient_info: RecipientInfo
    declaration: Declaration = Field(default_factory=Declaration)
    compliance: ComplianceScreening


def _text(record: ContractRecord, key: str) -> str:
    value = record.fields.get(key)
    return "" if value is None else str(value)


def _sender_info(record: ContractRecord, bundle: SensitiveBundle) -> SenderInfo:
    d = bundle.sender_bank_details
    return SenderInfo(
        # Views require a name; fall back to the party handle if the record lacks one.
        sender_name=_text(record, "senderName") or _text(record, "sender") or "unknown",
        sender_account=d.sender_account,
        sender_bank_swift=d.sender_bank_swift,
        sender_country=_text(record, "senderCountry"),
        sender_tax_id=d.sender_tax_id,
    )


def _recipient_info(record: ContractRecord, bundle: SensitiveBundle) -> RecipientInfo:
    d = bundle.recipient_bank_details
    return RecipientInfo(
        recipient_name=_text(record, "recipientName") or _text(record, "recipient") or "unknown",
        recipient_account=d.recipient_account,
        recipient_bank_swift=d.recipient_bank_swift,
        recipient_country=_text(record, "recipientCountry"),
        recipient_tax_id=d.recipient_tax_id,
    )


def project_sender_view(record: ContractRecord, bundle: Optional[SensitiveBundle]) -> SenderViewArgs:
    bundle = bundle or SensitiveBundle()
    return SenderViewArgs(
        sender_info=_sender_info(record, bundle),
        recipient_info=_recipient_info(record, bundle),
    )


def project_recipient_view(record: ContractRecord, bundle: Optional[SensitiveBundle]) -> RecipientViewArgs:
    bundle = bundle or SensitiveBundle()
    return RecipientViewArgs(
        recipient_info=_recipient_info(record, bundle),
        sender_summary=CounterpartySummary(
            name=_text(record, "senderName"),
            country=_text(record, "senderCountry"),
            bank_swift=bundle.sender_bank_details.sender_bank_swift,
        ),
    )


def project_regulator_view(
    record: ContractRecord,
    bundle: Optional[SensitiveBundle],
    screening: ComplianceScreening,
) -> RegulatorViewArgs:
    bundle = bundle or SensitiveBundle()
    return RegulatorViewArgs(
        sender_info=_sender_info(record, bundle),
        recipient_info=_recipient_info(record, bundle),
        declaration=bundle.declaration,
        compliance=screening,
    )
