"""
Authorization Bridge

Allow-list of module identities that may call privileged ledger entry points
on behalf of end users. The ledger owner is the only one who edits it.
"""

from threading import Lock
from typing import List, Set
import structlog

from .errors import CallerNotAuthorizedError, UnauthorizedError
from .operational import OperationalGate

logger = structlog.get_logger()


class AuthorizationBridge:
    """Owner-managed set of authorized caller modules."""

    def __init__(self, owner_id: str, gate: OperationalGate):
        self.owner_id = owner_id
        self.gate = gate
        self._authorized: Set[str] = set()
        self._lock = Lock()

    def _require_owner(self, caller_id: str, action: str) -> None:
        if caller_id != self.owner_id:
            logger.warning("authorization_change_denied", caller_id=caller_id, action=action)
            raise UnauthorizedError(
                f"Only the ledger owner may {action} callers",
                caller_id=caller_id,
            )

    def authorize(self, module_id: str, caller_id: str) -> None:
        """Add a module to the allow-list."""
        self.gate.require_operating()
        self._require_owner(caller_id, "authorize")

        with self._lock:
            self._authorized.add(module_id)

        logger.info("caller_authorized", module_id=module_id, authorized_by=caller_id)

    def deauthorize(self, module_id: str, caller_id: str) -> None:
        """Remove a module from the allow-list. Unknown modules are ignored."""
        self.gate.require_operating()
        self._require_owner(caller_id, "deauthorize")

        with self._lock:
            self._authorized.discard(module_id)

        logger.info("caller_deauthorized", module_id=module_id, deauthorized_by=caller_id)

    def is_authorized(self, module_id: str) -> bool:
        return module_id in self._authorized

    def require_authorized(self, module_id: str) -> None:
        """Raise unless the module is on the allow-list."""
        if module_id not in self._authorized:
            raise CallerNotAuthorizedError(
                f"Module {module_id} is not an authorized caller",
                module_id=module_id,
            )

    def authorized_modules(self) -> List[str]:
        return sorted(self._authorized)

    def restore(self, modules: List[str]) -> None:
        """Replace the allow-list with a persisted one."""
        with self._lock:
            self._authorized = set(modules)
        logger.info("authorized_callers_restored", count=len(self._authorized))
