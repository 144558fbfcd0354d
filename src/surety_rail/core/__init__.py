"""
SURETY RAIL - Core Module

Membership registration and governance for an airline insurance consortium:
operational switch, caller allow-list, funding bond, membership ledger and
the bootstrap-or-quorum admission engine.
"""

from .errors import (
    SuretyError,
    NotOperationalError,
    CallerNotAuthorizedError,
    ProposerNotFundedError,
    AlreadyRegisteredError,
    AlreadyInitializedError,
    UnauthorizedError,
    InvalidFundingError,
    ReentrantCallError,
)
from .operational import OperationalGate
from .authorization import AuthorizationBridge
from .membership import Member, MembershipLedger
from .funding import FundingLedger, FundingRecord
from .consensus import (
    CandidateProposal,
    RegistrationConsensusEngine,
    RegistrationPhase,
    RegistrationResult,
)
from .receipt import GovernanceReceipt, GovernedOperation, ReceiptAction, ReceiptChain, ReceiptGenerator

__all__ = [
    "SuretyError",
    "NotOperationalError",
    "CallerNotAuthorizedError",
    "ProposerNotFundedError",
    "AlreadyRegisteredError",
    "AlreadyInitializedError",
    "UnauthorizedError",
    "InvalidFundingError",
    "ReentrantCallError",
    "OperationalGate",
    "AuthorizationBridge",
    "Member",
    "MembershipLedger",
    "FundingLedger",
    "FundingRecord",
    "CandidateProposal",
    "RegistrationConsensusEngine",
    "RegistrationPhase",
    "RegistrationResult",
    "GovernanceReceipt",
    "GovernedOperation",
    "ReceiptAction",
    "ReceiptChain",
    "ReceiptGenerator",
]
