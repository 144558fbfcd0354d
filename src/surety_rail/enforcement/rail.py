"""
Surety Rail

The single entry point the outside world talks to. Wires the operational
gate, the caller allow-list, the membership and funding ledgers and the
consensus engine together; serializes every mutating call; mints a signed
receipt for each committed transition.

Flow for a registration proposal:
1. Operational gate
2. Authorization bridge (calling module on the allow-list)
3. Consensus engine (proposer funded, candidate not yet registered)
4. Bootstrap admission or quorum vote
5. Receipt
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Iterator, Optional, Tuple
import structlog

from ..config import SuretyConfig
from ..core.authorization import AuthorizationBridge
from ..core.consensus import RegistrationConsensusEngine, RegistrationResult
from ..core.errors import SuretyError
from ..core.funding import FundingLedger
from ..core.membership import Member, MembershipLedger
from ..core.operational import OperationalGate
from ..core.receipt import (
    GovernanceReceipt,
    GovernedOperation,
    ReceiptAction,
    ReceiptChain,
    ReceiptGenerator,
)
from ..crypto.signer import CryptoSigner, Ed25519Signer
from ..persistence.models import MemberRecord, ProposalRecord, ReceiptRecord
from ..persistence.repository import LedgerSnapshot, SnapshotStore

logger = structlog.get_logger()


class SuretyRail:
    """
    Membership registration and governance for the consortium.

    The owner in the config administers the operational switch, the
    allow-list and the one-time bootstrap member.
    """

    def __init__(
        self,
        config: Optional[SuretyConfig] = None,
        signer: Optional[CryptoSigner] = None,
    ):
        self.config = config or SuretyConfig()
        self.owner_id = self.config.owner_id

        self.gate = OperationalGate(self.owner_id)
        self.bridge = AuthorizationBridge(self.owner_id, self.gate)
        self.membership = MembershipLedger(self.owner_id, self.gate, self.bridge)
        self.funding = FundingLedger(self.config.funding_threshold, self.gate, self.membership)
        self.engine = RegistrationConsensusEngine(
            membership=self.membership,
            funding=self.funding,
            gate=self.gate,
            bridge=self.bridge,
            module_id=self.config.app_module_id,
            quorum_threshold_size=self.config.quorum_threshold_size,
        )

        if signer is None:
            if self.config.receipt_signing_key:
                signer = Ed25519Signer.from_hex(self.config.receipt_signing_key)
            else:
                signer = Ed25519Signer()
        self.signer = signer
        self.receipt_generator = ReceiptGenerator(self.signer)
        self.receipts = ReceiptChain()

        self._lock = RLock()
        self._total_requests = 0
        self._committed_count = 0
        self._denied: Dict[str, int] = {}
        self.start_time = datetime.now(timezone.utc)

        if self.config.authorize_app_module:
            self.authorize_caller(self.config.app_module_id, self.owner_id)

        logger.info(
            "surety_rail_started",
            owner_id=self.owner_id,
            app_module_id=self.config.app_module_id,
            funding_threshold=str(self.config.funding_threshold),
            quorum_threshold_size=self.config.quorum_threshold_size,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _governed(self, operation: str, **context: Any) -> Iterator[None]:
        """Serialize a mutating call and account for its outcome."""
        with self._lock:
            self._total_requests += 1
            try:
                yield
            except SuretyError as e:
                self._denied[e.code] = self._denied.get(e.code, 0) + 1
                logger.warning("request_denied", operation=operation, code=e.code, error=e.message, **context)
                raise
            self._committed_count += 1

    def _receipt(
        self,
        action: ReceiptAction,
        actor_id: str,
        subject_id: str,
        parameters: Optional[Dict[str, Any]] = None,
        outcome: Optional[Dict[str, Any]] = None,
    ) -> Optional[GovernanceReceipt]:
        if not self.config.enable_receipts:
            return None
        receipt = self.receipt_generator.generate(
            GovernedOperation(
                action=action,
                actor_id=actor_id,
                subject_id=subject_id,
                parameters=parameters or {},
            ),
            outcome=outcome,
        )
        self.receipts.add(receipt)
        return receipt

    # ------------------------------------------------------------------
    # Operational status
    # ------------------------------------------------------------------

    def is_operational(self) -> bool:
        return self.gate.is_operating()

    def set_operating_status(self, mode: bool, caller_id: str) -> None:
        with self._governed("set_operating_status", caller_id=caller_id):
            self.gate.set_operating(mode, caller_id)
            self._receipt(
                ReceiptAction.SET_OPERATING,
                actor_id=caller_id,
                subject_id="operational",
                parameters={"mode": bool(mode)},
                outcome={"operational": self.gate.is_operating()},
            )

    # ------------------------------------------------------------------
    # Allow-list
    # ------------------------------------------------------------------

    def authorize_caller(self, module_id: str, caller_id: str) -> None:
        with self._governed("authorize_caller", module_id=module_id, caller_id=caller_id):
            self.bridge.authorize(module_id, caller_id)
            self._receipt(ReceiptAction.AUTHORIZE, actor_id=caller_id, subject_id=module_id)

    def deauthorize_caller(self, module_id: str, caller_id: str) -> None:
        with self._governed("deauthorize_caller", module_id=module_id, caller_id=caller_id):
            self.bridge.deauthorize(module_id, caller_id)
            self._receipt(ReceiptAction.DEAUTHORIZE, actor_id=caller_id, subject_id=module_id)

    def is_authorized_caller(self, module_id: str) -> bool:
        return self.bridge.is_authorized(module_id)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def register_first_member(self, member_id: str, name: str, caller_id: str) -> Member:
        with self._governed("register_first_member", member_id=member_id, caller_id=caller_id):
            member = self.membership.register_first_member(member_id, name, caller_id)
            self._receipt(
                ReceiptAction.BOOTSTRAP,
                actor_id=caller_id,
                subject_id=member_id,
                parameters={"name": name},
                outcome={"registered_count": self.membership.registered_count},
            )
        return member

    def register_candidate(
        self,
        candidate_id: str,
        name: str,
        proposer_id: str,
        calling_module: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Propose or vote for a candidate airline.

        Returns the engine's RegistrationResult; unpacks as (admitted, votes).
        """
        with self._governed(
            "register_candidate",
            candidate_id=candidate_id,
            proposer_id=proposer_id,
        ):
            result = self.engine.register_candidate(candidate_id, name, proposer_id, calling_module)
            if result.admitted:
                self._receipt(
                    ReceiptAction.ADMIT,
                    actor_id=proposer_id,
                    subject_id=candidate_id,
                    parameters={"name": name, "phase": result.phase.value},
                    outcome={
                        "votes": result.votes,
                        "registered_count": self.membership.registered_count,
                    },
                )
            elif result.counted:
                self._receipt(
                    ReceiptAction.VOTE,
                    actor_id=proposer_id,
                    subject_id=candidate_id,
                    parameters={"name": name},
                    outcome={"votes": result.votes, "required_votes": result.required_votes},
                )
        return result

    def is_airline(self, member_id: str) -> bool:
        return self.membership.is_airline(member_id)

    def get_registered_airlines(self) -> int:
        return self.membership.get_registered_airlines()

    def get_votes(self, candidate_id: str) -> int:
        return self.engine.get_votes(candidate_id)

    def on_admission(self, callback: Callable[[RegistrationResult], None]) -> None:
        self.engine.register_listener(callback)

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    def fund(self, member_id: str, amount: int, caller_id: str) -> None:
        with self._governed("fund", member_id=member_id, caller_id=caller_id):
            record = self.funding.fund(member_id, amount, caller_id)
            self._receipt(
                ReceiptAction.FUND,
                actor_id=caller_id,
                subject_id=member_id,
                parameters={"amount": amount},
                outcome={
                    "total": str(record.total_after),
                    "funded": self.funding.is_funded(member_id),
                },
            )

    def is_airline_funded(self, member_id: str) -> bool:
        return self.funding.is_funded(member_id)

    def get_funding_balance(self, member_id: str) -> int:
        return self.funding.get_balance(member_id)

    # ------------------------------------------------------------------
    # Audit and metrics
    # ------------------------------------------------------------------

    def verify_audit_trail(self) -> Tuple[bool, Optional[str]]:
        """Check chain linkage and that every receipt is signed by this rail's key."""
        is_valid, error = self.receipts.verify_chain_integrity()
        if not is_valid:
            return (False, error)
        sig_valid, sig_error, _ = self.receipts.verify_signatures(self.signer)
        return (sig_valid, sig_error)

    def get_metrics(self) -> Dict[str, Any]:
        denied_total = sum(self._denied.values())
        return {
            "total_requests": self._total_requests,
            "committed": self._committed_count,
            "denied": denied_total,
            "denied_by_code": dict(self._denied),
            "registered_airlines": self.membership.registered_count,
            "pending_candidates": len(self.engine.pending_candidates()),
            "operational": self.gate.is_operating(),
            "receipts": len(self.receipts),
            "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Capture the current state in persistence form."""
        with self._lock:
            membership = self.membership.export_state()
            return LedgerSnapshot(
                owner_id=self.owner_id,
                operational=self.gate.is_operating(),
                registered_count=membership["registered_count"],
                members=[MemberRecord.from_dict(m) for m in membership["members"]],
                proposals=[ProposalRecord.from_dict(p) for p in self.engine.export_state()["proposals"]],
                balances={m: int(v) for m, v in self.funding.export_state()["balances"].items()},
                authorized_modules=self.bridge.authorized_modules(),
                receipts=[ReceiptRecord.from_dict(r) for r in self.receipts.export()],
            )

    def save(self, store: SnapshotStore) -> None:
        store.save(self.snapshot())

    @classmethod
    def restore(
        cls,
        store: SnapshotStore,
        config: Optional[SuretyConfig] = None,
        signer: Optional[CryptoSigner] = None,
    ) -> "SuretyRail":
        """
        Rebuild a rail from a saved snapshot.

        The stored receipt chain must link up, otherwise ValueError. Supply
        the original key (config.receipt_signing_key or signer) for
        verify_audit_trail() to accept the receipts minted before the save.
        """
        config = config or SuretyConfig()
        snapshot = store.load()

        if snapshot.owner_id is not None and snapshot.owner_id != config.owner_id:
            raise ValueError(
                f"Snapshot owner {snapshot.owner_id} does not match configured owner {config.owner_id}"
            )

        receipts = ReceiptChain.from_export([r.to_dict() for r in snapshot.receipts])
        is_valid, error = receipts.verify_chain_integrity()
        if not is_valid:
            raise ValueError(f"Stored receipt chain is corrupt: {error}")

        rail = cls(config.model_copy(update={"authorize_app_module": False}), signer=signer)
        rail.config = config

        with rail._lock:
            rail.membership.import_state({"members": [m.to_dict() for m in snapshot.members]})
            rail.funding.import_state({"balances": {m: str(v) for m, v in snapshot.balances.items()}})
            rail.engine.import_state({"proposals": [p.to_dict() for p in snapshot.proposals]})
            rail.bridge.restore(snapshot.authorized_modules)
            rail.receipts = receipts
            rail.receipt_generator.resume(rail.receipts)
            rail.gate.restore(snapshot.operational)

        if rail.membership.registered_count != snapshot.registered_count:
            logger.warning(
                "registered_count_mismatch",
                stored=snapshot.registered_count,
                derived=rail.membership.registered_count,
            )

        logger.info(
            "surety_rail_restored",
            registered_count=rail.membership.registered_count,
            receipts=len(rail.receipts),
        )
        return rail
