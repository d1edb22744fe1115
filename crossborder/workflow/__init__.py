"""
Proposal workflow: domain models, sensitive-data staging, per-role
projections, the acceptance saga and single-step transitions.
"""

from crossborder.workflow.cache import SensitiveDataCache  # noqa: F401
from crossborder.workflow.lifecycle import ProposalLifecycleService, TransitionResult  # noqa: F401
from crossborder.workflow.models import CreateProposalRequest, RoleViewKind, SensitiveBundle, TxState  # noqa: F401
from crossborder.workflow.saga import AcceptanceResult, ProposalAcceptanceSaga, StepWarning  # noqa: F401
