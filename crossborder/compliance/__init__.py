"""
Deterministic compliance screening. No I/O, no ledger dependency.
"""

from crossborder.compliance.screening import (  # noqa: F401
    ComplianceScreening,
    RiskBucket,
    ScreeningInput,
    screen_transaction,
)
