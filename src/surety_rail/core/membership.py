"""
Membership Ledger

The authoritative record of consortium members: who is known, who is
registered, who has posted bond, and how many registered members there are.
Members are never removed, so registered_count only ever grows.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Optional
import structlog

from .authorization import AuthorizationBridge
from .errors import AlreadyInitializedError, AlreadyRegisteredError, UnauthorizedError
from .operational import OperationalGate

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Member:
    """
    A consortium member (airline).

    Created pending when first proposed; registered either immediately
    during bootstrap or once the vote reaches quorum.
    """
    member_id: str
    name: str
    registered: bool = False
    funded: bool = False
    created_at: str = field(default_factory=_now)
    registered_at: Optional[str] = None

    @property
    def status(self) -> str:
        return "REGISTERED" if self.registered else "PENDING"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "registered": self.registered,
            "funded": self.funded,
            "status": self.status,
            "created_at": self.created_at,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        return cls(
            member_id=data["member_id"],
            name=data.get("name", ""),
            registered=bool(data.get("registered", False)),
            funded=bool(data.get("funded", False)),
            created_at=data.get("created_at") or _now(),
            registered_at=data.get("registered_at"),
        )


class MembershipLedger:
    """
    Member store with privileged, allow-list gated mutation.

    End users only ever reach insert_pending / finalize_registration through
    an authorized module (the consensus engine).
    """

    def __init__(
        self,
        owner_id: str,
        gate: OperationalGate,
        bridge: AuthorizationBridge,
    ):
        self.owner_id = owner_id
        self.gate = gate
        self.bridge = bridge
        self._members: Dict[str, Member] = {}
        self._registered_count = 0
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def register_first_member(self, member_id: str, name: str, caller_id: str) -> Member:
        """
        Seed the consortium with its first registered member.

        Usable once, by the owner, while nobody is registered yet.
        """
        self.gate.require_operating()
        if caller_id != self.owner_id:
            raise UnauthorizedError(
                "Only the ledger owner may register the first member",
                caller_id=caller_id,
            )

        with self._lock:
            if self._registered_count > 0:
                raise AlreadyInitializedError(
                    "First member already registered",
                    registered_count=self._registered_count,
                )

            now = _now()
            member = Member(
                member_id=member_id,
                name=name,
                registered=True,
                funded=False,
                created_at=now,
                registered_at=now,
            )
            self._members[member_id] = member
            self._registered_count = 1

        logger.info("first_member_registered", member_id=member_id, name=name)
        return member

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_registered_airlines(self) -> int:
        return self._registered_count

    @property
    def registered_count(self) -> int:
        return self._registered_count

    def is_airline(self, member_id: str) -> bool:
        member = self._members.get(member_id)
        return member is not None and member.registered

    def is_known(self, member_id: str) -> bool:
        return member_id in self._members

    def is_funded(self, member_id: str) -> bool:
        member = self._members.get(member_id)
        return member is not None and member.funded

    def get_member(self, member_id: str) -> Optional[Member]:
        return self._members.get(member_id)

    def list_members(self, registered_only: bool = False) -> List[Member]:
        members = sorted(self._members.values(), key=lambda m: (m.created_at, m.member_id))
        if registered_only:
            return [m for m in members if m.registered]
        return members

    def voting_members(self) -> List[Member]:
        """Registered members that have posted bond."""
        return [m for m in self.list_members(registered_only=True) if m.funded]

    # ------------------------------------------------------------------
    # Privileged entry points
    # ------------------------------------------------------------------

    def _require_privileged(self, module_id: str) -> None:
        self.gate.require_operating()
        self.bridge.require_authorized(module_id)

    def insert_pending(self, candidate_id: str, name: str, module_id: str) -> Member:
        """Create a pending record for a candidate; existing records are returned as-is."""
        self._require_privileged(module_id)

        with self._lock:
            member = self._members.get(candidate_id)
            if member is None:
                member = Member(member_id=candidate_id, name=name)
                self._members[candidate_id] = member
                logger.info("candidate_pending", candidate_id=candidate_id, name=name)
            return member

    def finalize_registration(self, candidate_id: str, module_id: str) -> Member:
        """Flip a known candidate to registered and bump registered_count."""
        self._require_privileged(module_id)

        with self._lock:
            member = self._members.get(candidate_id)
            if member is None:
                raise KeyError(f"Candidate not found: {candidate_id}")
            if member.registered:
                raise AlreadyRegisteredError(
                    f"Airline {candidate_id} is already registered",
                    candidate_id=candidate_id,
                )

            member.registered = True
            member.registered_at = _now()
            self._registered_count += 1

        logger.info(
            "airline_registered",
            member_id=candidate_id,
            name=member.name,
            registered_count=self._registered_count,
        )
        return member

    def mark_funded(self, member_id: str) -> None:
        """Set the funded flag. Called by the funding ledger once the bond clears."""
        with self._lock:
            member = self._members.get(member_id)
            if member is None:
                raise KeyError(f"Member not found: {member_id}")
            member.funded = True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        """Export members for persistence."""
        return {
            "registered_count": self._registered_count,
            "members": [m.to_dict() for m in self.list_members()],
        }

    def import_state(self, state: Dict[str, Any]) -> None:
        """Restore members from persistence."""
        with self._lock:
            self._members = {}
            for data in state.get("members", []):
                member = Member.from_dict(data)
                self._members[member.member_id] = member
            self._registered_count = sum(1 for m in self._members.values() if m.registered)

        logger.info(
            "membership_restored",
            members=len(self._members),
            registered_count=self._registered_count,
        )
