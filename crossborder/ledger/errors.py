"""
Error taxonomy for ledger calls and the workflows built on them.

Fatal errors are raised; non-fatal step failures are folded into results as
warnings (see `crossborder.workflow.saga.StepWarning`).
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from crossborder.observability.redaction import redact


class WorkflowError(RuntimeError):
    """Base class for every error the orchestration core raises on purpose."""

    kind = "workflow_error"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class NotFound(WorkflowError):
    """The referenced contract is absent from the party's active set."""

    kind = "not_found"

    def __init__(self, *, template_name: str, contract_id: str, party: str) -> None:
        self.template_name = template_name
        self.contract_id = contract_id
        self.party = party
        super().__init__(f"{template_name} {contract_id} not found among active contracts visible to {party}")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "template_name": self.template_name,
            "contract_id": self.contract_id,
            "party": self.party,
        }


class LedgerCallFailed(WorkflowError):
    """
    Transport failure or ledger-side rejection of a write.

    `payload` carries the raw error body (decoded JSON when possible, else text)
    for diagnosis. `status_code` is None for transport errors (no response).
    """

    kind = "ledger_call_failed"

    def __init__(
        self,
        *,
        operation: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        detail: str = "",
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.payload = payload
        msg = f"ledger {operation} failed"
        if status_code is not None:
            msg += f" (HTTP {status_code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "operation": self.operation,
            "status_code": self.status_code,
            "payload": redact(self.payload),
        }


class IdentifierExtractionFailed(WorkflowError):
    """A write succeeded per the transport but no new contract id could be parsed."""

    kind = "identifier_extraction_failed"

    def __init__(self, *, step: str, payload: Any = None) -> None:
        self.step = step
        self.payload = payload
        super().__init__(f"no created contract id found in the ledger response for step '{step}'")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "step": self.step}


class PartialSagaCompletion(WorkflowError):
    """
    One or more non-fatal saga steps failed while the saga still produced a result.

    Never raised by the saga itself; see `AcceptanceResult.raise_for_partial()`.
    """

    kind = "partial_saga_completion"

    def __init__(self, *, warnings: Sequence[Any], result: Any = None) -> None:
        self.warnings = list(warnings)
        self.result = result
        steps = ", ".join(sorted({str(getattr(w, "step", w)) for w in self.warnings}))
        super().__init__(f"saga completed with {len(self.warnings)} failed step(s): {steps}")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "warnings": [w.to_dict() if hasattr(w, "to_dict") else str(w) for w in self.warnings],
        }


class InvalidRequest(WorkflowError):
    """Caller input rejected before any ledger call was made."""

    kind = "invalid_request"

    def __init__(self, message: str, *, errors: Optional[Sequence[Any]] = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out
