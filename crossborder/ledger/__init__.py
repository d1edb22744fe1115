"""
Ledger access layer (JSON API gateway, response normalization, record types).
"""

from crossborder.ledger.errors import (  # noqa: F401
    IdentifierExtractionFailed,
    InvalidRequest,
    LedgerCallFailed,
    NotFound,
    PartialSagaCompletion,
    WorkflowError,
)
from crossborder.ledger.gateway import LedgerGateway, new_command_id  # noqa: F401
from crossborder.ledger.models import Choice, ContractRecord  # noqa: F401
from crossborder.ledger.responses import extract_created_contract_id  # noqa: F401
