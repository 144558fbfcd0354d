"""
Error Taxonomy for Surety Rail

Every precondition failure is raised before any state is touched. None of
these are fatal to the rail; callers retry after fixing the condition
(funding the account, re-enabling operations, authorizing the module).
"""

from typing import Any, Dict


class SuretyError(Exception):
    """Base error for every rejected governance call."""

    code = "SURETY_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class NotOperationalError(SuretyError):
    """Operations are globally suspended."""
    code = "NOT_OPERATIONAL"


class CallerNotAuthorizedError(SuretyError):
    """Calling module is not on the ledger allow-list."""
    code = "CALLER_NOT_AUTHORIZED"


class ProposerNotFundedError(SuretyError):
    """Proposer has not posted the required bond."""
    code = "PROPOSER_NOT_FUNDED"


class AlreadyRegisteredError(SuretyError):
    """Candidate is already a registered member."""
    code = "ALREADY_REGISTERED"


class AlreadyInitializedError(SuretyError):
    """Bootstrap member was already registered."""
    code = "ALREADY_INITIALIZED"


class UnauthorizedError(SuretyError):
    """Administrative action attempted by someone other than the owner."""
    code = "UNAUTHORIZED"


class InvalidFundingError(SuretyError):
    """Funding call rejected (wrong payer, non-positive amount, not a member)."""
    code = "INVALID_FUNDING"


class ReentrantCallError(SuretyError):
    """A registration call was made while another one is still being processed."""
    code = "REENTRANT_CALL"
