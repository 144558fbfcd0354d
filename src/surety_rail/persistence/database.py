"""
Database Connection Layer

SQLite storage for the consortium ledgers, with schema creation on first use.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Optional, Iterator, Any, Dict, List
from datetime import datetime, timezone
import threading
import structlog

logger = structlog.get_logger()

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Consortium members (pending and registered)
CREATE TABLE IF NOT EXISTS members (
    member_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    registered INTEGER NOT NULL DEFAULT 0,
    funded INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    registered_at TEXT
);

-- Candidate proposals in the quorum phase
CREATE TABLE IF NOT EXISTS proposals (
    candidate_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    resolved INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    resolved_at TEXT
);

-- One row per distinct voter per candidate
CREATE TABLE IF NOT EXISTS proposal_votes (
    candidate_id TEXT NOT NULL,
    voter_id TEXT NOT NULL,
    PRIMARY KEY (candidate_id, voter_id),
    FOREIGN KEY (candidate_id) REFERENCES proposals(candidate_id) ON DELETE CASCADE
);

-- Cumulative bond, decimal text (wei overflow 64-bit integers)
CREATE TABLE IF NOT EXISTS funding_balances (
    member_id TEXT PRIMARY KEY,
    amount TEXT NOT NULL
);

-- Scalars: registered_count, operational, owner_id
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Authorized caller modules
CREATE TABLE IF NOT EXISTS authorized_callers (
    module_id TEXT PRIMARY KEY,
    authorized_at TEXT NOT NULL
);

-- Governance receipts (audit trail)
CREATE TABLE IF NOT EXISTS receipts (
    receipt_id TEXT PRIMARY KEY,
    chain_sequence INTEGER NOT NULL UNIQUE,
    timestamp TEXT NOT NULL,
    action TEXT NOT NULL,
    actor_id TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    operation_hash TEXT NOT NULL,
    prev_hash TEXT NOT NULL,
    signature TEXT NOT NULL,
    signature_algorithm TEXT NOT NULL,
    key_id TEXT,
    outcome TEXT  -- JSON object
);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_members_registered ON members(registered);
CREATE INDEX IF NOT EXISTS idx_votes_candidate ON proposal_votes(candidate_id);
CREATE INDEX IF NOT EXISTS idx_receipts_subject ON receipts(subject_id);
"""


class Database:
    """
    SQLite connection manager.

    Connections are per thread. Nested connection() blocks share one
    transaction, committed when the outermost block exits.

    Usage:
        db = Database("sqlite:///surety_rail.db")
        with db.connection() as conn:
            conn.execute("SELECT * FROM members")
    """

    _instance: Optional["Database"] = None
    _lock = threading.Lock()

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or os.environ.get(
            "DATABASE_URL",
            "sqlite:///surety_rail.db"
        )
        if not self.database_url.startswith("sqlite:///"):
            raise ValueError(f"Unsupported database URL: {self.database_url}")
        self._local = threading.local()
        self._initialized = False

    @classmethod
    def get_instance(cls, database_url: Optional[str] = None) -> "Database":
        """Get singleton database instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls(database_url)
        return cls._instance

    @property
    def path(self) -> str:
        return self.database_url[len("sqlite:///"):]

    def _connect(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._local.conn = conn
            self._local.depth = 0
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection (thread-local, transactional)."""
        conn = self._connect()
        self._local.depth += 1
        try:
            yield conn
        except Exception:
            self._local.depth -= 1
            if self._local.depth == 0:
                conn.rollback()
            raise
        else:
            self._local.depth -= 1
            if self._local.depth == 0:
                conn.commit()

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            with self.connection() as conn:
                conn.executescript(SCHEMA_SQL)
                conn.execute(
                    "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat())
                )

            self._initialized = True
            logger.info("database_initialized", path=self.path, schema_version=SCHEMA_VERSION)

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            if cursor.description:
                return [dict(row) for row in cursor.fetchall()]
            return []

    def execute_many(self, query: str, params_list: List[tuple]) -> int:
        """Execute a query with multiple parameter sets."""
        with self.connection() as conn:
            cursor = conn.executemany(query, params_list)
            return cursor.rowcount

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
            self._local.depth = 0


def get_database(database_url: Optional[str] = None) -> Database:
    """Get the database singleton instance."""
    db = Database.get_instance(database_url)
    db.initialize()
    return db
