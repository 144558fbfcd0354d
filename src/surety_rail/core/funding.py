"""
Funding Ledger

Tracks the bond each member has posted. A member counts as funded once its
cumulative bond reaches the configured threshold; funding is never revoked.
How the bond is actually held (escrow, transfers) is outside this ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict
import structlog

from .errors import InvalidFundingError
from .membership import MembershipLedger
from .operational import OperationalGate

logger = structlog.get_logger()


@dataclass
class FundingRecord:
    """A single bond payment, as booked by fund()."""
    member_id: str
    amount: int
    total_after: int
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "amount": str(self.amount),
            "total_after": str(self.total_after),
            "timestamp": self.timestamp,
        }


class FundingLedger:
    """Cumulative bond per member against a fixed threshold."""

    def __init__(
        self,
        threshold: int,
        gate: OperationalGate,
        membership: MembershipLedger,
    ):
        if threshold <= 0:
            raise ValueError("Funding threshold must be positive")
        self.threshold = threshold
        self.gate = gate
        self.membership = membership
        self._balances: Dict[str, int] = {}
        self._lock = Lock()

    def fund(self, member_id: str, amount: int, caller_id: str) -> FundingRecord:
        """
        Post bond for a member.

        Members fund themselves: caller_id must equal member_id. Only
        registered members may post bond. Returns the booked record.
        """
        self.gate.require_operating()

        if caller_id != member_id:
            raise InvalidFundingError(
                "Members may only fund themselves",
                member_id=member_id,
                caller_id=caller_id,
            )
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidFundingError(
                "Funding amount must be a positive integer",
                member_id=member_id,
                amount=amount,
            )
        if not self.membership.is_airline(member_id):
            raise InvalidFundingError(
                f"{member_id} is not a registered airline",
                member_id=member_id,
            )

        with self._lock:
            was_funded = self._balances.get(member_id, 0) >= self.threshold
            total = self._balances.get(member_id, 0) + amount
            self._balances[member_id] = total
            record = FundingRecord(member_id=member_id, amount=amount, total_after=total)

        if not was_funded and total >= self.threshold:
            self.membership.mark_funded(member_id)
            logger.info("airline_funded", member_id=member_id, total=str(total), threshold=str(self.threshold))
        else:
            logger.info("funding_received", member_id=member_id, amount=str(amount), total=str(total))

        return record

    def is_funded(self, member_id: str) -> bool:
        return self._balances.get(member_id, 0) >= self.threshold

    def get_balance(self, member_id: str) -> int:
        return self._balances.get(member_id, 0)

    def export_state(self) -> Dict[str, Any]:
        """Export balances for persistence. Amounts are decimal strings."""
        return {
            "threshold": str(self.threshold),
            "balances": {member_id: str(total) for member_id, total in self._balances.items()},
        }

    def import_state(self, state: Dict[str, Any]) -> None:
        """Restore balances from persistence and re-derive funded flags."""
        with self._lock:
            self._balances = {
                member_id: int(total)
                for member_id, total in state.get("balances", {}).items()
            }

        for member_id, total in self._balances.items():
            if total >= self.threshold and self.membership.is_known(member_id):
                self.membership.mark_funded(member_id)

        logger.info("funding_restored", members=len(self._balances))
