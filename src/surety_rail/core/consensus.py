"""
Registration Consensus Engine

Decides whether a proposed airline joins the consortium.

- Bootstrap phase (fewer than quorum_threshold_size registered members):
  the first proposal from a funded member admits the candidate outright.
- Quorum phase: each funded member casts at most one vote per candidate;
  the candidate is admitted in the call whose vote brings the tally to
  ceil(registered_count / 2).

The proposer's own call is the first vote. Calls are strictly serialized and
non-reentrant: a nested call made while another is in progress is rejected.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Optional, Set
import structlog

from .authorization import AuthorizationBridge
from .errors import (
    AlreadyRegisteredError,
    ProposerNotFundedError,
    ReentrantCallError,
)
from .funding import FundingLedger
from .membership import MembershipLedger
from .operational import OperationalGate

logger = structlog.get_logger()


class RegistrationPhase(Enum):
    """Policy applied to a registration call."""
    BOOTSTRAP = "BOOTSTRAP"
    QUORUM = "QUORUM"


@dataclass(frozen=True)
class RegistrationResult:
    """Outcome of a single register_candidate call."""
    candidate_id: str
    admitted: bool
    votes: int
    phase: RegistrationPhase
    required_votes: int
    counted: bool = True  # False when the proposer had already voted

    def __iter__(self) -> Iterator[Any]:
        # (admitted, votes) unpacking
        return iter((self.admitted, self.votes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "admitted": self.admitted,
            "votes": self.votes,
            "phase": self.phase.value,
            "required_votes": self.required_votes,
            "counted": self.counted,
        }


@dataclass
class CandidateProposal:
    """Pending vote set for one candidate."""
    candidate_id: str
    name: str
    voters: Set[str] = field(default_factory=set)
    resolved: bool = False
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    resolved_at: Optional[str] = None

    @property
    def votes(self) -> int:
        return len(self.voters)

    def has_voted(self, voter_id: str) -> bool:
        return voter_id in self.voters

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "name": self.name,
            "voters": sorted(self.voters),
            "votes": self.votes,
            "resolved": self.resolved,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateProposal":
        return cls(
            candidate_id=data["candidate_id"],
            name=data.get("name", ""),
            voters=set(data.get("voters", [])),
            resolved=bool(data.get("resolved", False)),
            created_at=data.get("created_at") or datetime.now(timezone.utc).isoformat(),
            resolved_at=data.get("resolved_at"),
        )


def required_votes_for(registered_count: int) -> int:
    """Majority rounding up: ceil(n / 2)."""
    return (registered_count + 1) // 2


class RegistrationConsensusEngine:
    """
    The admission engine.

    Owns the candidate proposals. Reads funding and membership state, and
    mutates membership only through the ledger's privileged entry points
    using its own module identity.
    """

    def __init__(
        self,
        membership: MembershipLedger,
        funding: FundingLedger,
        gate: OperationalGate,
        bridge: AuthorizationBridge,
        module_id: str,
        quorum_threshold_size: int = 4,
    ):
        if quorum_threshold_size < 1:
            raise ValueError("quorum_threshold_size must be at least 1")
        self.membership = membership
        self.funding = funding
        self.gate = gate
        self.bridge = bridge
        self.module_id = module_id
        self.quorum_threshold_size = quorum_threshold_size

        self._proposals: Dict[str, CandidateProposal] = {}
        self._lock = RLock()
        self._in_call = False
        self._listeners: List[Callable[[RegistrationResult], None]] = []

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Serialize calls and reject nested ones from the same thread."""
        with self._lock:
            if self._in_call:
                raise ReentrantCallError("register_candidate is already in progress")
            self._in_call = True
            try:
                yield
            finally:
                self._in_call = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def in_bootstrap(self) -> bool:
        return self.membership.registered_count < self.quorum_threshold_size

    def required_votes(self) -> int:
        """Votes needed to admit a candidate right now (1 during bootstrap)."""
        if self.in_bootstrap():
            return 1
        return required_votes_for(self.membership.registered_count)

    def get_proposal(self, candidate_id: str) -> Optional[CandidateProposal]:
        return self._proposals.get(candidate_id)

    def get_votes(self, candidate_id: str) -> int:
        proposal = self._proposals.get(candidate_id)
        return proposal.votes if proposal else 0

    def pending_candidates(self) -> List[CandidateProposal]:
        return [p for p in self._proposals.values() if not p.resolved]

    def register_listener(self, callback: Callable[[RegistrationResult], None]) -> None:
        """Register a callback invoked for every admission."""
        self._listeners.append(callback)

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def _check_preconditions(self, candidate_id: str, proposer_id: str, calling_module: str) -> None:
        self.gate.require_operating()
        self.bridge.require_authorized(calling_module)

        if not self.funding.is_funded(proposer_id):
            raise ProposerNotFundedError(
                f"Proposer {proposer_id} has not provided funding",
                proposer_id=proposer_id,
            )

        if self.membership.is_airline(candidate_id):
            raise AlreadyRegisteredError(
                f"Airline {candidate_id} is already registered",
                candidate_id=candidate_id,
            )

    def register_candidate(
        self,
        candidate_id: str,
        name: str,
        proposer_id: str,
        calling_module: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Propose (or vote for) a candidate airline.

        Args:
            candidate_id: Identity of the airline to admit
            name: Display name, kept from the first proposal
            proposer_id: Registered, funded member making the call
            calling_module: Module on whose behalf the call runs
                (defaults to this engine's module identity)

        Returns:
            RegistrationResult with admitted flag and current vote tally

        Raises:
            NotOperationalError, CallerNotAuthorizedError,
            ProposerNotFundedError, AlreadyRegisteredError, ReentrantCallError
        """
        module_id = self.module_id if calling_module is None else calling_module

        with self._exclusive():
            self._check_preconditions(candidate_id, proposer_id, module_id)

            if self.in_bootstrap():
                result = self._admit_bootstrap(candidate_id, name, proposer_id, module_id)
            else:
                result = self._vote(candidate_id, name, proposer_id, module_id)

            if result.admitted:
                self._notify(result)

        return result

    def _admit_bootstrap(
        self,
        candidate_id: str,
        name: str,
        proposer_id: str,
        module_id: str,
    ) -> RegistrationResult:
        self.membership.insert_pending(candidate_id, name, module_id)
        self.membership.finalize_registration(candidate_id, module_id)

        logger.info(
            "candidate_admitted",
            candidate_id=candidate_id,
            proposer_id=proposer_id,
            phase=RegistrationPhase.BOOTSTRAP.value,
            registered_count=self.membership.registered_count,
        )

        return RegistrationResult(
            candidate_id=candidate_id,
            admitted=True,
            votes=1,
            phase=RegistrationPhase.BOOTSTRAP,
            required_votes=1,
        )

    def _vote(
        self,
        candidate_id: str,
        name: str,
        proposer_id: str,
        module_id: str,
    ) -> RegistrationResult:
        registered_count = self.membership.registered_count
        needed = required_votes_for(registered_count)

        proposal = self._proposals.get(candidate_id)
        if proposal is None:
            self.membership.insert_pending(candidate_id, name, module_id)
            proposal = CandidateProposal(candidate_id=candidate_id, name=name)
            self._proposals[candidate_id] = proposal

        if proposal.has_voted(proposer_id):
            logger.warning(
                "duplicate_vote_ignored",
                candidate_id=candidate_id,
                voter_id=proposer_id,
                votes=proposal.votes,
            )
            return RegistrationResult(
                candidate_id=candidate_id,
                admitted=False,
                votes=proposal.votes,
                phase=RegistrationPhase.QUORUM,
                required_votes=needed,
                counted=False,
            )

        proposal.voters.add(proposer_id)
        logger.info(
            "vote_recorded",
            candidate_id=candidate_id,
            voter_id=proposer_id,
            votes=proposal.votes,
            required=needed,
        )

        if proposal.votes < needed:
            return RegistrationResult(
                candidate_id=candidate_id,
                admitted=False,
                votes=proposal.votes,
                phase=RegistrationPhase.QUORUM,
                required_votes=needed,
            )

        self.membership.finalize_registration(candidate_id, module_id)
        proposal.resolved = True
        proposal.resolved_at = datetime.now(timezone.utc).isoformat()

        logger.info(
            "candidate_admitted",
            candidate_id=candidate_id,
            proposer_id=proposer_id,
            phase=RegistrationPhase.QUORUM.value,
            votes=proposal.votes,
            registered_count=self.membership.registered_count,
        )

        return RegistrationResult(
            candidate_id=candidate_id,
            admitted=True,
            votes=proposal.votes,
            phase=RegistrationPhase.QUORUM,
            required_votes=needed,
        )

    def _notify(self, result: RegistrationResult) -> None:
        for callback in self._listeners:
            try:
                callback(result)
            except Exception as e:
                logger.error("admission_listener_error", candidate_id=result.candidate_id, error=str(e))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        return {
            "proposals": [p.to_dict() for p in self._proposals.values()],
        }

    def import_state(self, state: Dict[str, Any]) -> None:
        with self._lock:
            self._proposals = {}
            for data in state.get("proposals", []):
                proposal = CandidateProposal.from_dict(data)
                self._proposals[proposal.candidate_id] = proposal

        logger.info("proposals_restored", count=len(self._proposals))
