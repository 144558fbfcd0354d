"""
Repository Layer for Surety Rail

CRUD for each persisted entity, plus a snapshot store that writes or reads
the whole ledger state in one transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import structlog

from .database import Database, get_database
from .models import MemberRecord, ProposalRecord, ReceiptRecord

logger = structlog.get_logger()


class MemberRepository:
    """Repository for member records."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def upsert(self, member: MemberRecord) -> MemberRecord:
        self.db.execute(
            """INSERT OR REPLACE INTO members
               (member_id, name, registered, funded, created_at, registered_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            member.to_db_tuple()
        )
        return member

    def get(self, member_id: str) -> Optional[MemberRecord]:
        results = self.db.execute(
            "SELECT * FROM members WHERE member_id = ?",
            (member_id,)
        )
        return MemberRecord.from_row(results[0]) if results else None

    def list_all(self) -> List[MemberRecord]:
        results = self.db.execute("SELECT * FROM members ORDER BY created_at ASC, member_id ASC")
        return [MemberRecord.from_row(r) for r in results]

    def count_registered(self) -> int:
        results = self.db.execute("SELECT COUNT(*) as cnt FROM members WHERE registered = 1")
        return results[0]["cnt"] if results else 0


class ProposalRepository:
    """Repository for candidate proposals and their vote sets."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def upsert(self, proposal: ProposalRecord) -> ProposalRecord:
        with self.db.connection():
            self.db.execute(
                """INSERT OR REPLACE INTO proposals
                   (candidate_id, name, resolved, created_at, resolved_at)
                   VALUES (?, ?, ?, ?, ?)""",
                proposal.to_db_tuple()
            )
            self.db.execute(
                "DELETE FROM proposal_votes WHERE candidate_id = ?",
                (proposal.candidate_id,)
            )
            if proposal.voters:
                self.db.execute_many(
                    "INSERT INTO proposal_votes (candidate_id, voter_id) VALUES (?, ?)",
                    proposal.vote_tuples()
                )
        return proposal

    def get_voters(self, candidate_id: str) -> List[str]:
        results = self.db.execute(
            "SELECT voter_id FROM proposal_votes WHERE candidate_id = ? ORDER BY voter_id",
            (candidate_id,)
        )
        return [r["voter_id"] for r in results]

    def get(self, candidate_id: str) -> Optional[ProposalRecord]:
        results = self.db.execute(
            "SELECT * FROM proposals WHERE candidate_id = ?",
            (candidate_id,)
        )
        if not results:
            return None
        return ProposalRecord.from_row(results[0], self.get_voters(candidate_id))

    def list_all(self) -> List[ProposalRecord]:
        results = self.db.execute("SELECT * FROM proposals ORDER BY created_at ASC")
        return [ProposalRecord.from_row(r, self.get_voters(r["candidate_id"])) for r in results]

    def list_pending(self) -> List[ProposalRecord]:
        return [p for p in self.list_all() if not p.resolved]


class FundingRepository:
    """Repository for cumulative bond balances."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def set_balance(self, member_id: str, amount: int) -> None:
        self.db.execute(
            "INSERT OR REPLACE INTO funding_balances (member_id, amount) VALUES (?, ?)",
            (member_id, str(amount))
        )

    def get_balance(self, member_id: str) -> int:
        results = self.db.execute(
            "SELECT amount FROM funding_balances WHERE member_id = ?",
            (member_id,)
        )
        return int(results[0]["amount"]) if results else 0

    def get_all(self) -> Dict[str, int]:
        results = self.db.execute("SELECT member_id, amount FROM funding_balances")
        return {r["member_id"]: int(r["amount"]) for r in results}


class SettingsRepository:
    """Key/value scalars (registered_count, operational, owner_id)."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def set(self, key: str, value: Any) -> None:
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, str(value))
        )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        results = self.db.execute("SELECT value FROM settings WHERE key = ?", (key,))
        return results[0]["value"] if results else default

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value == "True"


class AuthorizationRepository:
    """Repository for the authorized caller set."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def replace_all(self, module_ids: List[str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self.db.connection():
            self.db.execute("DELETE FROM authorized_callers")
            if module_ids:
                self.db.execute_many(
                    "INSERT INTO authorized_callers (module_id, authorized_at) VALUES (?, ?)",
                    [(module_id, now) for module_id in module_ids]
                )

    def list_all(self) -> List[str]:
        results = self.db.execute("SELECT module_id FROM authorized_callers ORDER BY module_id")
        return [r["module_id"] for r in results]


class ReceiptRepository:
    """Repository for governance receipts."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def create(self, receipt: ReceiptRecord) -> ReceiptRecord:
        self.db.execute(
            """INSERT INTO receipts
               (receipt_id, chain_sequence, timestamp, action, actor_id, subject_id,
                operation_hash, prev_hash, signature, signature_algorithm, key_id, outcome)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            receipt.to_db_tuple()
        )
        return receipt

    def get(self, receipt_id: str) -> Optional[ReceiptRecord]:
        results = self.db.execute(
            "SELECT * FROM receipts WHERE receipt_id = ?",
            (receipt_id,)
        )
        return ReceiptRecord.from_row(results[0]) if results else None

    def get_chain(self, limit: int = 100000) -> List[ReceiptRecord]:
        results = self.db.execute(
            "SELECT * FROM receipts ORDER BY chain_sequence ASC LIMIT ?",
            (limit,)
        )
        return [ReceiptRecord.from_row(r) for r in results]

    def get_by_subject(self, subject_id: str) -> List[ReceiptRecord]:
        results = self.db.execute(
            "SELECT * FROM receipts WHERE subject_id = ? ORDER BY chain_sequence ASC",
            (subject_id,)
        )
        return [ReceiptRecord.from_row(r) for r in results]

    def count(self) -> int:
        results = self.db.execute("SELECT COUNT(*) as cnt FROM receipts")
        return results[0]["cnt"] if results else 0


@dataclass
class LedgerSnapshot:
    """Everything needed to rebuild a rail."""
    owner_id: Optional[str] = None
    operational: bool = True
    registered_count: int = 0
    members: List[MemberRecord] = field(default_factory=list)
    proposals: List[ProposalRecord] = field(default_factory=list)
    balances: Dict[str, int] = field(default_factory=dict)
    authorized_modules: List[str] = field(default_factory=list)
    receipts: List[ReceiptRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.members and not self.authorized_modules and not self.receipts


class SnapshotStore:
    """
    Saves and loads the full ledger state.

    save() runs in a single transaction: either the whole snapshot lands or
    nothing does.
    """

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        self.db.initialize()
        self.members = MemberRepository(self.db)
        self.proposals = ProposalRepository(self.db)
        self.funding = FundingRepository(self.db)
        self.settings = SettingsRepository(self.db)
        self.authorization = AuthorizationRepository(self.db)
        self.receipts = ReceiptRepository(self.db)

    def clear(self) -> None:
        """Delete all ledger state. Joins the caller's transaction if one is open."""
        with self.db.connection():
            for table in ("proposal_votes", "proposals", "members", "funding_balances",
                          "authorized_callers", "receipts", "settings"):
                self.db.execute(f"DELETE FROM {table}")

    def save(self, snapshot: LedgerSnapshot) -> None:
        """Replace whatever the store holds with this snapshot."""
        with self.db.connection():
            self.clear()
            if snapshot.owner_id is not None:
                self.settings.set("owner_id", snapshot.owner_id)
            self.settings.set("operational", snapshot.operational)
            self.settings.set("registered_count", snapshot.registered_count)

            for member in snapshot.members:
                self.members.upsert(member)
            for proposal in snapshot.proposals:
                self.proposals.upsert(proposal)
            for member_id, amount in snapshot.balances.items():
                self.funding.set_balance(member_id, amount)
            self.authorization.replace_all(snapshot.authorized_modules)
            for receipt in snapshot.receipts:
                self.receipts.create(receipt)

        logger.info(
            "snapshot_saved",
            members=len(snapshot.members),
            proposals=len(snapshot.proposals),
            receipts=len(snapshot.receipts),
        )

    def load(self) -> LedgerSnapshot:
        snapshot = LedgerSnapshot(
            owner_id=self.settings.get("owner_id"),
            operational=self.settings.get_bool("operational", True),
            registered_count=int(self.settings.get("registered_count", "0")),
            members=self.members.list_all(),
            proposals=self.proposals.list_all(),
            balances=self.funding.get_all(),
            authorized_modules=self.authorization.list_all(),
            receipts=self.receipts.get_chain(),
        )
        logger.info(
            "snapshot_loaded",
            members=len(snapshot.members),
            proposals=len(snapshot.proposals),
            receipts=len(snapshot.receipts),
        )
        return snapshot
