"""
Operational Gate

A single owner-controlled switch. While it is off, every mutating entry point
of the rail refuses to run and leaves state untouched.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List
import structlog

from .errors import NotOperationalError, UnauthorizedError

logger = structlog.get_logger()


@dataclass
class OperatingEvent:
    """Record of an operating-status change."""
    old_status: bool
    new_status: bool
    changed_by: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by": self.changed_by,
            "timestamp": self.timestamp,
        }


class OperationalGate:
    """
    Global on/off switch.

    Only the owner given at construction may flip it. Defaults to operating.
    """

    def __init__(self, owner_id: str, operating: bool = True):
        self.owner_id = owner_id
        self._operating = operating
        self._lock = Lock()
        self._history: List[OperatingEvent] = []
        self._callbacks: List[Callable[[bool, bool], None]] = []

    def is_operating(self) -> bool:
        return self._operating

    def require_operating(self) -> None:
        """Raise unless operations are enabled."""
        if not self._operating:
            raise NotOperationalError("Operations are suspended")

    def set_operating(self, mode: bool, caller_id: str) -> None:
        """
        Flip the switch.

        Raises UnauthorizedError for anyone but the owner; the flag is left
        unchanged in that case.
        """
        if caller_id != self.owner_id:
            logger.warning("operating_status_denied", caller_id=caller_id, requested=mode)
            raise UnauthorizedError(
                "Only the contract owner may change operating status",
                caller_id=caller_id,
            )

        with self._lock:
            old_status = self._operating
            self._operating = bool(mode)
            self._history.append(OperatingEvent(
                old_status=old_status,
                new_status=self._operating,
                changed_by=caller_id,
            ))

            if self._operating:
                logger.warning("operations_resumed", changed_by=caller_id, was=old_status)
            else:
                logger.critical("operations_suspended", changed_by=caller_id, was=old_status)

            for callback in self._callbacks:
                try:
                    callback(old_status, self._operating)
                except Exception as e:
                    logger.error("operating_callback_error", error=str(e))

    def register_callback(self, callback: Callable[[bool, bool], None]) -> None:
        """Register a callback for status changes."""
        self._callbacks.append(callback)

    def get_history(self) -> List[OperatingEvent]:
        """Get status change history."""
        return self._history.copy()

    def restore(self, operating: bool) -> None:
        """Load a persisted flag without recording a change."""
        with self._lock:
            self._operating = bool(operating)
        logger.info("operating_status_restored", operating=self._operating)

    def __bool__(self) -> bool:
        return self._operating
