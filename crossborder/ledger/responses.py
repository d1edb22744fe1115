"""
Normalization of heterogeneous ledger responses.

The command-submission endpoint answers in several shapes depending on the
protocol version and on which endpoint variant served the call. Every call
site goes through `extract_created_contract_id`, which tries an ordered list
of shape matchers; support for a new upstream shape is one more entry in
`CONTRACT_ID_MATCHERS`, never a new branch at a call site.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterator, Mapping, Optional

from crossborder.common.logging import log_event
from crossborder.ledger.models import ContractRecord, template_entity
from crossborder.observability.redaction import redact

logger = logging.getLogger(__name__)

ContractIdMatcher = Callable[[Any, Optional[str]], Optional[str]]

# Contract ids are opaque tokens; prose, markup or JSON text never qualifies.
_BARE_CID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9:#_.\-]*$")

_CREATED_EVENT_KEYS = ("CreatedEvent", "createdEvent", "created")
_EVENT_CONTAINER_KEYS = ("transaction", "result", "transactionTree", "transaction_tree")


def _clean_cid(v: Any) -> Optional[str]:
    if not isinstance(v, str):
        return None
    s = v.strip()
    return s or None


def _cid_of(obj: Mapping[str, Any]) -> Optional[str]:
    return _clean_cid(obj.get("contractId")) or _clean_cid(obj.get("contract_id"))


def _template_of(obj: Mapping[str, Any]) -> str:
    tid = obj.get("templateId") or obj.get("template_id") or ""
    return str(tid) if isinstance(tid, str) else ""


def _match_bare_string(payload: Any, template_name: Optional[str]) -> Optional[str]:
    cid = _clean_cid(payload)
    return cid if cid and _BARE_CID_RE.match(cid) else None


def _cid_from_exercise_result(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return _clean_cid(value)
    if isinstance(value, (list, tuple)) and value:
        # Tuple-returning choices put the successor contract first.
        return _cid_from_exercise_result(value[0])
    if isinstance(value, Mapping):
        return _cid_of(value) or _cid_from_exercise_result(value.get("_1"))
    return None


def _match_exercise_result(payload: Any, template_name: Optional[str]) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    for container in (payload.get("result"), payload):
        if not isinstance(container, Mapping):
            continue
        for key in ("exerciseResult", "exercise_result"):
            if key in container:
                cid = _cid_from_exercise_result(container.get(key))
                if cid:
                    return cid
    return None


def _iter_events(payload: Mapping[str, Any]) -> Iterator[Any]:
    containers: list[Any] = [payload]
    containers.extend(payload.get(k) for k in _EVENT_CONTAINER_KEYS)
    for container in containers:
        if not isinstance(container, Mapping):
            continue
        for key in ("events", "eventsById"):
            events = container.get(key)
            if isinstance(events, list):
                yield from events
            elif isinstance(events, Mapping):
                yield from events.values()


def _created_event(event: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(event, Mapping):
        return None
    for key in _CREATED_EVENT_KEYS:
        inner = event.get(key)
        if isinstance(inner, Mapping):
            return inner
    return None


def _match_created_event(payload: Any, template_name: Optional[str]) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    created = [ev for ev in (_created_event(e) for e in _iter_events(payload)) if ev is not None]
    if template_name:
        for ev in created:
            if template_entity(_template_of(ev)) == template_name and _cid_of(ev):
                return _cid_of(ev)
    for ev in created:
        cid = _cid_of(ev)
        if cid:
            return cid
    return None


def _match_result_contract_id(payload: Any, template_name: Optional[str]) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    result = payload.get("result")
    if isinstance(result, Mapping) and _cid_of(result):
        return _cid_of(result)
    return _cid_of(payload)


# Order matters: a choice's own return value beats whatever else it created.
CONTRACT_ID_MATCHERS: tuple[tuple[str, ContractIdMatcher], ...] = (
    ("bare_string", _match_bare_string),
    ("exercise_result", _match_exercise_result),
    ("created_event", _match_created_event),
    ("result_contract_id", _match_result_contract_id),
)


def extract_created_contract_id(payload: Any, *, template_name: Optional[str] = None) -> Optional[str]:
    """
    Return the identifier of the contract a create/exercise produced, or None.

    Never raises. When no matcher recognizes the payload, the (redacted)
    payload is logged for diagnosis.
    """
    for name, matcher in CONTRACT_ID_MATCHERS:
        try:
            cid = matcher(payload, template_name)
        except Exception:
            logger.exception("ledger.contract_id_matcher_failed matcher=%s", name)
            continue
        if cid:
            return cid

    log_event(
        logger,
        "ledger.contract_id_not_found",
        severity="WARNING",
        template_name=template_name,
        payload=redact(payload),
    )
    return None


def _iter_entries(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in ("results", "activeContracts", "active_contracts", "contractEntries", "result"):
            entries = payload.get(key)
            if isinstance(entries, list):
                return entries
    return []


def _created_event_from_entry(entry: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(entry, Mapping):
        return None
    contract_entry = entry.get("contractEntry") or entry.get("contract_entry")
    if isinstance(contract_entry, Mapping):
        for key in ("JsActiveContract", "activeContract", "active_contract"):
            active = contract_entry.get(key)
            if isinstance(active, Mapping) and isinstance(active.get("createdEvent"), Mapping):
                return active["createdEvent"]
    direct = _created_event(entry)
    if direct is not None:
        return direct
    if _cid_of(entry):
        return entry
    return None


def _fields_of(event: Mapping[str, Any]) -> dict[str, Any]:
    for key in ("createArgument", "createArguments", "create_argument", "create_arguments", "payload", "argument"):
        value = event.get(key)
        if isinstance(value, Mapping):
            return dict(value)
    return {}


def normalize_active_contracts(payload: Any, *, template_name: str) -> list[ContractRecord]:
    """
    Flatten an active-contract query response into `ContractRecord`s.

    Entries of an unrecognized shape, and entries whose template is not
    `template_name`, are skipped.
    """
    out: list[ContractRecord] = []
    for entry in _iter_entries(payload):
        event = _created_event_from_entry(entry)
        if event is None:
            continue
        cid = _cid_of(event)
        if not cid:
            continue
        entity = template_entity(_template_of(event)) or template_name
        if entity != template_name:
            continue
        out.append(ContractRecord(contract_id=cid, template_name=entity, fields=_fields_of(event)))
    return out


def discover_package_id(payload: Any) -> Optional[str]:
    """First `package:Module:Entity` template id in a query response -> `package`."""
    for entry in _iter_entries(payload):
        event = _created_event_from_entry(entry)
        if event is None:
            continue
        parts = _template_of(event).split(":")
        if len(parts) == 3 and parts[0]:
            return parts[0]
    return None
