"""
Persistence Layer for Surety Rail

SQLite-backed snapshots of the consortium ledgers.
"""

from .database import Database, get_database
from .models import MemberRecord, ProposalRecord, ReceiptRecord
from .repository import (
    MemberRepository,
    ProposalRepository,
    FundingRepository,
    SettingsRepository,
    AuthorizationRepository,
    ReceiptRepository,
    LedgerSnapshot,
    SnapshotStore,
)

__all__ = [
    "Database",
    "get_database",
    "MemberRecord",
    "ProposalRecord",
    "ReceiptRecord",
    "MemberRepository",
    "ProposalRepository",
    "FundingRepository",
    "SettingsRepository",
    "AuthorizationRepository",
    "ReceiptRepository",
    "LedgerSnapshot",
    "SnapshotStore",
]
