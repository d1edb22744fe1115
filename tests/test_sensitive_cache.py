import threading

import pytest

from crossborder.workflow.cache import SensitiveDataCache
from crossborder.workflow.models import Declaration, SensitiveBundle
from tests.conftest import make_request


def _bundle(source="salary"):
    return SensitiveBundle(declaration=Declaration(purpose_of_payment="rent", source_of_funds=source))


def test_get_does_not_remove_and_delete_does(cache):
    b = SensitiveBundle.from_request(make_request())
    cache.put("TX-1", b)

    assert cache.get("TX-1") == b
    assert cache.get("TX-1") == b
    assert "TX-1" in cache
    assert len(cache) == 1

    assert cache.delete("TX-1") is True
    assert cache.get("TX-1") is None
    assert cache.delete("TX-1") is False
    assert len(cache) == 0


def test_bundle_from_request_carries_only_sensitive_fields():
    b = SensitiveBundle.from_request(make_request())
    out = b.to_ledger()
    assert out["senderBankDetails"] == {
        "senderAccount": "DE89370400440532013000",
        "senderBankSwift": "COBADEFFXXX",
        "senderTaxId": "DE123456789",
    }
    assert out["recipientBankDetails"]["recipientAccount"] == "GB29NWBK60161331926819"
    assert out["declaration"] == {"purposeOfPayment": "Invoice 2291 settlement", "sourceOfFunds": "cash reserves"}


def test_put_requires_tx_id(cache):
    with pytest.raises(ValueError):
        cache.put("  ", _bundle())
    assert cache.get("") is None
    assert cache.delete("") is False


def test_put_replaces_existing_entry(cache):
    cache.put("TX-1", _bundle("salary"))
    cache.put("TX-1", _bundle("cash"))
    assert cache.get("TX-1").declaration.source_of_funds == "cash"
    assert len(cache) == 1


def test_ttl_expiry_with_injected_clock():
    now = [100.0]
    cache = SensitiveDataCache(shards=2, ttl_s=60, clock=lambda: now[0])
    cache.put("TX-1", _bundle())
    cache.put("TX-2", _bundle())

    now[0] = 159.0
    assert cache.get("TX-1") is not None

    now[0] = 160.0
    assert cache.get("TX-1") is None
    assert len(cache) == 1
    assert cache.purge_expired() == 1
    assert len(cache) == 0


def test_no_ttl_means_no_expiry():
    now = [0.0]
    cache = SensitiveDataCache(clock=lambda: now[0])
    cache.put("TX-1", _bundle())
    now[0] = 10**9
    assert cache.get("TX-1") is not None
    assert cache.purge_expired() == 0


@pytest.mark.parametrize("kwargs", [{"shards": 0}, {"ttl_s": 0}, {"ttl_s": -1}])
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValueError):
        SensitiveDataCache(**kwargs)


def test_clear_returns_dropped_count(cache):
    for i in range(5):
        cache.put(f"TX-{i}", _bundle())
    assert cache.clear() == 5
    assert len(cache) == 0


def test_concurrent_access_on_distinct_keys():
    cache = SensitiveDataCache(shards=8)
    errors = []

    def worker(n: int) -> None:
        try:
            for i in range(200):
                key = f"TX-{n}-{i}"
                cache.put(key, _bundle())
                assert cache.get(key) is not None
                if i % 2:
                    assert cache.delete(key) is True
        except AssertionError as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(cache) == 8 * 100
