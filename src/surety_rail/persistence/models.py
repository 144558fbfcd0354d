"""
Data Models for Persistence Layer

These mirror the ledger objects but are shaped for database rows.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json


@dataclass
class MemberRecord:
    """Persisted member row."""
    member_id: str
    name: str
    registered: bool
    funded: bool
    created_at: str
    registered_at: Optional[str] = None

    def to_db_tuple(self) -> tuple:
        return (
            self.member_id,
            self.name,
            1 if self.registered else 0,
            1 if self.funded else 0,
            self.created_at,
            self.registered_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "registered": self.registered,
            "funded": self.funded,
            "created_at": self.created_at,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemberRecord":
        return cls(
            member_id=data["member_id"],
            name=data.get("name", ""),
            registered=bool(data.get("registered", False)),
            funded=bool(data.get("funded", False)),
            created_at=data["created_at"],
            registered_at=data.get("registered_at"),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MemberRecord":
        return cls(
            member_id=row["member_id"],
            name=row["name"],
            registered=bool(row.get("registered", 0)),
            funded=bool(row.get("funded", 0)),
            created_at=row["created_at"],
            registered_at=row.get("registered_at"),
        )


@dataclass
class ProposalRecord:
    """Persisted candidate proposal with its voters."""
    candidate_id: str
    name: str
    resolved: bool
    created_at: str
    resolved_at: Optional[str] = None
    voters: List[str] = field(default_factory=list)

    def to_db_tuple(self) -> tuple:
        return (
            self.candidate_id,
            self.name,
            1 if self.resolved else 0,
            self.created_at,
            self.resolved_at,
        )

    def vote_tuples(self) -> List[tuple]:
        return [(self.candidate_id, voter_id) for voter_id in sorted(self.voters)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "name": self.name,
            "resolved": self.resolved,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "voters": sorted(self.voters),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProposalRecord":
        return cls(
            candidate_id=data["candidate_id"],
            name=data.get("name", ""),
            resolved=bool(data.get("resolved", False)),
            created_at=data["created_at"],
            resolved_at=data.get("resolved_at"),
            voters=list(data.get("voters", [])),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any], voters: List[str]) -> "ProposalRecord":
        return cls(
            candidate_id=row["candidate_id"],
            name=row["name"],
            resolved=bool(row.get("resolved", 0)),
            created_at=row["created_at"],
            resolved_at=row.get("resolved_at"),
            voters=voters,
        )


@dataclass
class ReceiptRecord:
    """Persisted governance receipt."""
    receipt_id: str
    chain_sequence: int
    timestamp: str
    action: str
    actor_id: str
    subject_id: str
    operation_hash: str
    prev_hash: str
    signature: str
    signature_algorithm: str
    key_id: Optional[str] = None
    outcome: Optional[Dict[str, Any]] = None

    def to_db_tuple(self) -> tuple:
        return (
            self.receipt_id,
            self.chain_sequence,
            self.timestamp,
            self.action,
            self.actor_id,
            self.subject_id,
            self.operation_hash,
            self.prev_hash,
            self.signature,
            self.signature_algorithm,
            self.key_id,
            json.dumps(self.outcome, sort_keys=True) if self.outcome else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "chain_sequence": self.chain_sequence,
            "timestamp": self.timestamp,
            "action": self.action,
            "actor_id": self.actor_id,
            "subject_id": self.subject_id,
            "operation_hash": self.operation_hash,
            "prev_hash": self.prev_hash,
            "signature": self.signature,
            "signature_algorithm": self.signature_algorithm,
            "key_id": self.key_id,
            "outcome": self.outcome or {},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReceiptRecord":
        return cls(
            receipt_id=data["receipt_id"],
            chain_sequence=int(data["chain_sequence"]),
            timestamp=data["timestamp"],
            action=data["action"],
            actor_id=data["actor_id"],
            subject_id=data["subject_id"],
            operation_hash=data["operation_hash"],
            prev_hash=data["prev_hash"],
            signature=data["signature"],
            signature_algorithm=data["signature_algorithm"],
            key_id=data.get("key_id"),
            outcome=data.get("outcome") or None,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ReceiptRecord":
        outcome = row.get("outcome")
        if isinstance(outcome, str) and outcome:
            outcome = json.loads(outcome)

        return cls(
            receipt_id=row["receipt_id"],
            chain_sequence=row["chain_sequence"],
            timestamp=row["timestamp"],
            action=row["action"],
            actor_id=row["actor_id"],
            subject_id=row["subject_id"],
            operation_hash=row["operation_hash"],
            prev_hash=row["prev_hash"],
            signature=row["signature"],
            signature_algorithm=row["signature_algorithm"],
            key_id=row.get("key_id"),
            outcome=outcome or None,
        )
