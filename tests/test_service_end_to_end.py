import pytest

from crossborder.service import CrossBorderService
from tests.conftest import RECIPIENT, REGULATOR, SENDER, make_request


@pytest.fixture
def service(ledger, cache):
    return CrossBorderService(ledger, cache)


async def _create_and_accept(service, **kw):
    created = await service.create_proposal(SENDER, make_request(**kw).to_ledger())
    assert created.ok, created.error
    (proposal,) = (await service.list_proposals(RECIPIENT)).result
    assert proposal["contractId"] == created.result["contractId"]
    return await service.accept_proposal(RECIPIENT, proposal["contractId"])


@pytest.mark.asyncio
async def test_high_value_cash_scenario(service, cache):
    accepted = await _create_and_accept(service, amount="1500000", source_of_funds="cash reserves")

    assert accepted.ok
    screening = accepted.result["screening"]
    assert screening["riskScore"] == 65
    # 65 is under the >70 high-risk threshold.
    assert accepted.result["riskBucket"] == "MEDIUM RISK — standard due diligence"
    assert screening["notes"].startswith("MEDIUM RISK — standard due diligence.")
    assert accepted.result["warnings"] == []
    assert cache.get("TX-1001") is None


@pytest.mark.asyncio
async def test_low_value_salary_scenario(service):
    accepted = await _create_and_accept(service, amount="500", source_of_funds="salary")

    assert accepted.ok
    assert accepted.result["screening"]["riskScore"] == 10
    assert accepted.result["riskBucket"] == "LOW RISK — automated approval eligible"


@pytest.mark.asyncio
async def test_full_lifecycle_through_facade(service):
    accepted = await _create_and_accept(service)
    current = accepted.result["currentContractId"]

    views = await service.list_views(REGULATOR, "regulator")
    assert [v["contractId"] for v in views.result] == [accepted.result["regulatorViewId"]]

    flagged = await service.flag_suspicious(REGULATOR, accepted.result["regulatorViewId"], "velocity anomaly")
    assert flagged.ok

    frozen = await service.freeze_transaction(REGULATOR, current)
    assert frozen.ok
    settled = await service.settle_transaction(SENDER, frozen.result["contractId"])
    assert settled.ok

    (tx,) = (await service.list_transactions(SENDER)).result
    assert tx["fields"]["status"] == "Settled"


@pytest.mark.asyncio
async def test_fatal_errors_become_structured_failures(service):
    missing = await service.accept_proposal(RECIPIENT, "00nope")
    assert missing.ok is False
    assert missing.error["kind"] == "not_found"
    assert missing.to_dict() == {"ok": False, "error": missing.error}

    bad_notes = await service.flag_suspicious(REGULATOR, "00view", "")
    assert bad_notes.error["kind"] == "invalid_request"

    bad_kind = await service.list_views(SENDER, "auditor")
    assert bad_kind.error["kind"] == "invalid_request"

    stale = await service.settle_transaction(SENDER, "00gone")
    assert stale.error["kind"] == "ledger_call_failed"
    assert stale.error["status_code"] == 404


@pytest.mark.asyncio
async def test_invalid_create_request_is_rejected_before_any_ledger_call(service, ledger, cache):
    outcome = await service.create_proposal(SENDER, {"txId": "TX-9", "amount": "10"})

    assert outcome.ok is False
    assert outcome.error["kind"] == "invalid_request"
    assert outcome.error["errors"]
    assert ledger.calls == []
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_partial_acceptance_is_still_ok(service, ledger):
    ledger.fail_choices["CreateSenderView"] = 1

    accepted = await _create_and_accept(service)

    assert accepted.ok
    assert accepted.result["senderViewId"] is None
    assert accepted.result["recipientViewId"] is not None
    assert [w["step"] for w in accepted.result["warnings"]] == ["create_sender_view"]


@pytest.mark.asyncio
async def test_withdraw_through_facade(service, cache):
    created = await service.create_proposal(SENDER, make_request(tx_id="TX-77"))
    withdrawn = await service.withdraw_proposal(SENDER, created.result["contractId"])

    assert withdrawn.ok
    assert withdrawn.result["txId"] == "TX-77"
    assert cache.get("TX-77") is None
