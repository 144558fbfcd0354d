"""
Governance Receipts

Every committed transition (bootstrap, admission, vote, funding, operating
switch, allow-list edit) mints a signed receipt. Receipts are hash-chained so
the membership history can be audited and tampering detected.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..crypto.signer import CryptoSigner, Ed25519Signer, SignatureAlgorithm

logger = structlog.get_logger()

GENESIS_HASH = "GENESIS"


class ReceiptAction(Enum):
    """Kinds of governed transitions."""
    BOOTSTRAP = "BOOTSTRAP"
    ADMIT = "ADMIT"
    VOTE = "VOTE"
    FUND = "FUND"
    SET_OPERATING = "SET_OPERATING"
    AUTHORIZE = "AUTHORIZE"
    DEAUTHORIZE = "DEAUTHORIZE"


def _canonical(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(',', ':'))


@dataclass
class GovernedOperation:
    """A transition to be receipted."""
    action: ReceiptAction
    actor_id: str
    subject_id: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def canonicalize(self) -> str:
        """Deterministic JSON: sorted keys, no whitespace, values as strings."""
        return _canonical({
            "action": self.action.value,
            "actor_id": self.actor_id,
            "subject_id": self.subject_id,
            "parameters": {k: str(v) for k, v in sorted(self.parameters.items())},
            "timestamp": self.timestamp,
        })

    def compute_hash(self) -> str:
        """SHA3-256 of the canonical form."""
        return hashlib.sha3_256(self.canonicalize().encode('utf-8')).hexdigest()


@dataclass
class GovernanceReceipt:
    """Signed, chained record of one committed transition."""
    receipt_id: str
    timestamp: str
    action: ReceiptAction
    actor_id: str
    subject_id: str
    operation_hash: str
    chain_sequence: int
    prev_hash: str
    signature: str
    signature_algorithm: SignatureAlgorithm
    key_id: str = ""
    outcome: Dict[str, Any] = field(default_factory=dict)

    def signing_payload(self) -> bytes:
        """Bytes covered by the signature."""
        return _canonical({
            "receipt_id": self.receipt_id,
            "timestamp": self.timestamp,
            "action": self.action.value,
            "actor_id": self.actor_id,
            "subject_id": self.subject_id,
            "operation_hash": self.operation_hash,
            "chain_sequence": self.chain_sequence,
            "prev_hash": self.prev_hash,
            "outcome": self.outcome,
        }).encode('utf-8')

    def compute_hash(self) -> str:
        """Hash used to link the next receipt. Covers every stored field."""
        content = _canonical({
            "payload": self.signing_payload().decode('utf-8'),
            "signature": self.signature,
            "signature_algorithm": self.signature_algorithm.value,
            "key_id": self.key_id,
        })
        return hashlib.sha3_256(content.encode('utf-8')).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "timestamp": self.timestamp,
            "action": self.action.value,
            "actor_id": self.actor_id,
            "subject_id": self.subject_id,
            "operation_hash": self.operation_hash,
            "chain_sequence": self.chain_sequence,
            "prev_hash": self.prev_hash,
            "signature": self.signature,
            "signature_algorithm": self.signature_algorithm.value,
            "key_id": self.key_id,
            "outcome": self.outcome,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceReceipt":
        return cls(
            receipt_id=data["receipt_id"],
            timestamp=data["timestamp"],
            action=ReceiptAction(data["action"]),
            actor_id=data["actor_id"],
            subject_id=data["subject_id"],
            operation_hash=data["operation_hash"],
            chain_sequence=int(data["chain_sequence"]),
            prev_hash=data["prev_hash"],
            signature=data["signature"],
            signature_algorithm=SignatureAlgorithm(data["signature_algorithm"]),
            key_id=data.get("key_id", ""),
            outcome=data.get("outcome") or {},
        )


class ReceiptGenerator:
    """Mints receipts and keeps the chain head."""

    def __init__(self, signer: Optional[CryptoSigner] = None):
        self.signer = signer or Ed25519Signer()
        self._chain_sequence = 0
        self._prev_hash = GENESIS_HASH

    def generate(
        self,
        operation: GovernedOperation,
        outcome: Optional[Dict[str, Any]] = None,
    ) -> GovernanceReceipt:
        receipt = GovernanceReceipt(
            receipt_id=f"RCP-{uuid.uuid4().hex[:12].upper()}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=operation.action,
            actor_id=operation.actor_id,
            subject_id=operation.subject_id,
            operation_hash=operation.compute_hash(),
            chain_sequence=self._chain_sequence,
            prev_hash=self._prev_hash,
            signature="",
            signature_algorithm=self.signer.algorithm,
            key_id=self.signer.key_id,
            outcome=outcome or {},
        )
        receipt.signature = self.signer.sign_b64(receipt.signing_payload())

        self._prev_hash = receipt.compute_hash()
        self._chain_sequence += 1

        logger.debug(
            "receipt_generated",
            receipt_id=receipt.receipt_id,
            action=operation.action.value,
            subject_id=operation.subject_id,
            chain_sequence=receipt.chain_sequence,
        )
        return receipt

    def resume(self, chain: "ReceiptChain") -> None:
        """Continue numbering after the last receipt of a restored chain."""
        if chain.receipts:
            last = chain.receipts[-1]
            self._chain_sequence = last.chain_sequence + 1
            self._prev_hash = last.compute_hash()
        else:
            self._chain_sequence = 0
            self._prev_hash = GENESIS_HASH


class ReceiptChain:
    """Hash-chained collection of receipts."""

    def __init__(self):
        self.receipts: List[GovernanceReceipt] = []
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.receipts)

    def add(self, receipt: GovernanceReceipt) -> None:
        self.receipts.append(receipt)
        self._index[receipt.receipt_id] = len(self.receipts) - 1

    def get_receipt(self, receipt_id: str) -> Optional[GovernanceReceipt]:
        idx = self._index.get(receipt_id)
        return self.receipts[idx] if idx is not None else None

    def for_subject(self, subject_id: str) -> List[GovernanceReceipt]:
        return [r for r in self.receipts if r.subject_id == subject_id]

    def verify_chain_integrity(self) -> Tuple[bool, Optional[str]]:
        """
        Verify sequence numbers and hash links.

        Returns (is_valid, error_message)
        """
        prev_hash = GENESIS_HASH
        for i, receipt in enumerate(self.receipts):
            if receipt.chain_sequence != i:
                return (False, f"Chain sequence mismatch at position {i}")
            if receipt.prev_hash != prev_hash:
                return (False, f"Hash chain broken at position {i}")
            prev_hash = receipt.compute_hash()
        return (True, None)

    def verify_signatures(self, signer: CryptoSigner) -> Tuple[bool, Optional[str], int]:
        """
        Verify every receipt's signature with the given key.

        A receipt claiming any other key cannot be verified and fails the
        check like a bad signature does.

        Returns (is_valid, error_message, receipts_checked)
        """
        checked = 0
        for receipt in self.receipts:
            checked += 1
            if receipt.key_id != signer.key_id:
                return (False, f"Unverifiable key {receipt.key_id} on {receipt.receipt_id}", checked)
            if not signer.verify_b64(receipt.signing_payload(), receipt.signature):
                return (False, f"Invalid signature on {receipt.receipt_id}", checked)
        return (True, None, checked)

    def to_merkle_root(self) -> str:
        """Merkle root over receipt hashes (last leaf duplicated on odd levels)."""
        if not self.receipts:
            return hashlib.sha3_256(b"EMPTY").hexdigest()

        hashes = [r.compute_hash() for r in self.receipts]
        while len(hashes) > 1:
            if len(hashes) % 2 == 1:
                hashes.append(hashes[-1])
            hashes = [
                hashlib.sha3_256((hashes[i] + hashes[i + 1]).encode()).hexdigest()
                for i in range(0, len(hashes), 2)
            ]
        return hashes[0]

    def export(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.receipts]

    @classmethod
    def from_export(cls, data: List[Dict[str, Any]]) -> "ReceiptChain":
        chain = cls()
        for item in sorted(data, key=lambda d: int(d["chain_sequence"])):
            chain.add(GovernanceReceipt.from_dict(item))
        return chain
