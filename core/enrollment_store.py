"""
Enrollment Store Module

This module handles persistence and retrieval of enrolled face embeddings.

Each identity owns one embedding set, stored as JSON text in the
`user_faces` table. The JSON is decoded into a SingleEmbedding or
MultipleEmbeddings exactly once, here, at the storage boundary.
Re-enrollment replaces the entire set; stored sets are never patched.

Verification attempts are written to `face_verification_events` for
auditing and for labelling genuine/impostor attempts during calibration.

Two implementations share the EnrollmentStore interface:
- SQLiteEnrollmentStore: the persistent store
- InMemoryEnrollmentStore: dict-backed, for tests and offline corpora

Usage:
    from core.enrollment_store import SQLiteEnrollmentStore

    store = SQLiteEnrollmentStore(db_path="storage/faces.sqlite")
    store.save_embedding_set(42, make_embedding_set([[...], [...]]))
    es = store.get_embedding_set(42)
    corpus = store.get_all_embedding_sets()
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

from core.embedding_set import (
    EmbeddingSet,
    MultipleEmbeddings,
    SingleEmbedding,
    decode_embedding_set,
    encode_embedding_set,
)
from core.exceptions import InvalidEmbeddingError, StorageUnavailableError

# Setup logging
logger = logging.getLogger(__name__)

VERIFICATION_SOURCES = ("login", "vote", "enroll", "identify", "other")
ATTEMPT_LABELS = ("genuine", "impostor", "unknown")


class EnrollmentStore(ABC):
    """
    Read/write interface to the enrollment corpus.

    Reads return decoded embedding sets; implementations raise
    StorageUnavailableError on infrastructure failure and never retry.
    """

    def open(self) -> None:
        """Prepare the store for use. Idempotent."""

    def close(self) -> None:
        """Release any held resources."""

    @abstractmethod
    def get_embedding_set(self, identity_id: int) -> Optional[EmbeddingSet]:
        """Return the identity's embedding set, or None if nothing is enrolled."""
        pass

    @abstractmethod
    def get_all_embedding_sets(self) -> List[Tuple[int, EmbeddingSet]]:
        """Return (identity_id, embedding_set) for every enrolled identity, by id."""
        pass

    @abstractmethod
    def save_embedding_set(self, identity_id: int, embedding_set: EmbeddingSet) -> None:
        """Store an identity's embedding set, replacing any previous one."""
        pass

    @abstractmethod
    def delete_embedding_set(self, identity_id: int) -> bool:
        """Remove an identity's enrollment. Returns False if it did not exist."""
        pass

    def list_identities(self) -> List[Dict[str, Any]]:
        """Summaries of all enrolled identities."""
        return [
            {"identity_id": identity_id, "n_embeddings": len(es)}
            for identity_id, es in self.get_all_embedding_sets()
        ]

    def log_verification(
        self,
        identity_id: Optional[int],
        score: float,
        matched: bool,
        threshold: float,
        source: str = "login",
        attempt_label: str = "unknown",
    ) -> Optional[int]:
        """Record a verification attempt. Stores without an audit trail ignore it."""
        return None

    def get_verification_events(
        self, identity_id: Optional[int] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        return []

    def get_stats(self) -> Dict[str, Any]:
        corpus = self.get_all_embedding_sets()
        return {
            "total_identities": len(corpus),
            "total_embeddings": sum(len(es) for _, es in corpus),
        }


class InMemoryEnrollmentStore(EnrollmentStore):
    """
    Dict-backed enrollment store.

    Accepts embedding sets directly or raw JSON values, which are decoded on
    insertion the same way the SQLite store decodes rows.
    """

    def __init__(self, embedding_sets: Optional[Dict[int, Any]] = None):
        self._sets: Dict[int, EmbeddingSet] = {}
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        for identity_id, raw in (embedding_sets or {}).items():
            if isinstance(raw, (SingleEmbedding, MultipleEmbeddings)):
                es = raw
            else:
                es = decode_embedding_set(raw)
            if es is not None:
                self._sets[int(identity_id)] = es

    def get_embedding_set(self, identity_id: int) -> Optional[EmbeddingSet]:
        return self._sets.get(identity_id)

    def get_all_embedding_sets(self) -> List[Tuple[int, EmbeddingSet]]:
        with self._lock:
            return sorted(self._sets.items())

    def save_embedding_set(self, identity_id: int, embedding_set: EmbeddingSet) -> None:
        with self._lock:
            self._sets[identity_id] = embedding_set

    def delete_embedding_set(self, identity_id: int) -> bool:
        with self._lock:
            return self._sets.pop(identity_id, None) is not None

    def log_verification(
        self,
        identity_id: Optional[int],
        score: float,
        matched: bool,
        threshold: float,
        source: str = "login",
        attempt_label: str = "unknown",
    ) -> Optional[int]:
        with self._lock:
            event_id = len(self._events) + 1
            self._events.append({
                "id": event_id,
                "user_id": identity_id,
                "source": source,
                "attempt_label": attempt_label,
                "score": score,
                "matched": matched,
                "threshold": threshold,
                "created_at": datetime.now().isoformat(),
            })
        return event_id

    def get_verification_events(
        self, identity_id: Optional[int] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        events = [
            e for e in reversed(self._events)
            if identity_id is None or e["user_id"] == identity_id
        ]
        return events[:limit]


class SQLiteEnrollmentStore(EnrollmentStore):
    """
    Persistent enrollment store backed by SQLite.

    The connection is created lazily and shared between threads behind a
    lock; any sqlite3.Error surfaces as StorageUnavailableError.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str):
        """
        Initialize the store. No file is touched until open() or the first query.

        Args:
            db_path: Path to SQLite database file (":memory:" is accepted).
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get or create the SQLite connection.

        Returns:
            SQLite connection with Row factory for dict-like access.
        """
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        if not self._initialized:
            self._init_database(self._conn)
            self._initialized = True
        return self._conn

    def _init_database(self, conn: sqlite3.Connection) -> None:
        """
        Initialize the SQLite database schema.

        Creates tables if they don't exist:
        - user_faces: One JSON-encoded embedding set per identity
        - face_verification_events: Verification attempt history
        """
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_faces (
                user_id INTEGER PRIMARY KEY,
                face_embedding TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS face_verification_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                source TEXT DEFAULT 'login',
                attempt_label TEXT DEFAULT 'unknown',
                score REAL,
                matched BOOLEAN,
                threshold REAL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_face_verification_user
            ON face_verification_events(user_id)
        """)

        conn.commit()
        logger.debug("Database schema initialized")

    def _execute(self, sql: str, params: tuple = (), commit: bool = False) -> sqlite3.Cursor:
        with self._lock:
            try:
                conn = self._get_connection()
                cursor = conn.execute(sql, params)
                if commit:
                    conn.commit()
                return cursor
            except sqlite3.Error as e:
                logger.error(f"Enrollment store query failed ({self.db_path}): {e}")
                raise StorageUnavailableError(f"Enrollment store unavailable: {e}") from e

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            cursor = self._execute(sql, params)
            try:
                return cursor.fetchall()
            except sqlite3.Error as e:
                raise StorageUnavailableError(f"Enrollment store unavailable: {e}") from e

    def open(self) -> None:
        """Connect and create the schema if needed."""
        with self._lock:
            try:
                self._get_connection()
            except sqlite3.Error as e:
                raise StorageUnavailableError(f"Enrollment store unavailable: {e}") from e
        logger.info(f"Enrollment store ready: db={self.db_path}")

    def get_embedding_set(self, identity_id: int) -> Optional[EmbeddingSet]:
        """
        Load one identity's embedding set.

        Returns:
            The decoded set, or None if the identity has nothing enrolled.

        Raises:
            InvalidEmbeddingError: If the stored JSON is malformed.
            StorageUnavailableError: On database failure.
        """
        rows = self._fetchall(
            "SELECT face_embedding FROM user_faces WHERE user_id = ?", (identity_id,)
        )
        if not rows:
            return None
        return decode_embedding_set(rows[0]["face_embedding"])

    def get_all_embedding_sets(self) -> List[Tuple[int, EmbeddingSet]]:
        """
        Load every enrolled identity's embedding set, ordered by identity id.

        Rows that cannot be decoded are skipped with a warning so one corrupt
        enrollment does not take down identification for everyone.
        """
        rows = self._fetchall("SELECT user_id, face_embedding FROM user_faces ORDER BY user_id")

        corpus = []
        for row in rows:
            try:
                es = decode_embedding_set(row["face_embedding"])
            except InvalidEmbeddingError as e:
                logger.warning(f"Skipping identity {row['user_id']}: {e}")
                continue
            if es is None:
                logger.debug(f"Identity {row['user_id']} has an empty embedding set")
                continue
            corpus.append((int(row["user_id"]), es))

        logger.info(f"Loaded {len(corpus)} embedding sets")
        return corpus

    def save_embedding_set(self, identity_id: int, embedding_set: EmbeddingSet) -> None:
        """Insert or replace an identity's embedding set."""
        payload = encode_embedding_set(embedding_set)
        self._execute(
            """
            INSERT INTO user_faces (user_id, face_embedding)
            VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                face_embedding = excluded.face_embedding,
                updated_at = CURRENT_TIMESTAMP
            """,
            (identity_id, payload),
            commit=True,
        )
        logger.info(f"Saved {len(embedding_set)} embedding(s) for identity {identity_id}")

    def delete_embedding_set(self, identity_id: int) -> bool:
        """
        Delete an identity's enrollment and its verification history.

        Returns:
            True if deletion was successful, False if identity not found.
        """
        with self._lock:
            cursor = self._execute(
                "DELETE FROM user_faces WHERE user_id = ?", (identity_id,), commit=True
            )
            if cursor.rowcount == 0:
                logger.warning(f"Cannot delete: identity {identity_id} not found")
                return False
            self._execute(
                "DELETE FROM face_verification_events WHERE user_id = ?",
                (identity_id,),
                commit=True,
            )
        logger.info(f"Deleted enrollment for identity {identity_id}")
        return True

    def list_identities(self) -> List[Dict[str, Any]]:
        """
        List enrolled identities with enrollment timestamps.

        Returns:
            List of dicts with identity_id, n_embeddings, created_at, updated_at.
        """
        rows = self._fetchall(
            "SELECT user_id, face_embedding, created_at, updated_at "
            "FROM user_faces ORDER BY user_id"
        )
        identities = []
        for row in rows:
            try:
                es = decode_embedding_set(row["face_embedding"])
                n_embeddings = len(es) if es is not None else 0
            except InvalidEmbeddingError:
                n_embeddings = 0
            identities.append({
                "identity_id": int(row["user_id"]),
                "n_embeddings": n_embeddings,
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            })
        return identities

    def log_verification(
        self,
        identity_id: Optional[int],
        score: float,
        matched: bool,
        threshold: float,
        source: str = "login",
        attempt_label: str = "unknown",
    ) -> Optional[int]:
        """
        Log a verification attempt for auditing and calibration.

        Args:
            identity_id: Identity verified against (or matched, for 1:N).
            score: Best similarity score.
            matched: Decision.
            threshold: Threshold used.
            source: One of login, vote, enroll, identify, other.
            attempt_label: genuine, impostor or unknown.

        Returns:
            The event id.
        """
        if source not in VERIFICATION_SOURCES:
            raise ValueError(f"Unknown verification source: {source}")
        if attempt_label not in ATTEMPT_LABELS:
            raise ValueError(f"Unknown attempt label: {attempt_label}")

        cursor = self._execute(
            """
            INSERT INTO face_verification_events
            (user_id, source, attempt_label, score, matched, threshold)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (identity_id, source, attempt_label, float(score), bool(matched), float(threshold)),
            commit=True,
        )
        event_id = cursor.lastrowid
        logger.debug(f"Logged verification event: id={event_id}, identity={identity_id}, "
                     f"matched={matched}, score={score:.3f}")
        return event_id

    def get_verification_events(
        self, identity_id: Optional[int] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Most recent verification events, optionally for one identity."""
        if identity_id is not None:
            rows = self._fetchall(
                "SELECT * FROM face_verification_events WHERE user_id = ? "
                "ORDER BY id DESC LIMIT ?",
                (identity_id, limit),
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM face_verification_events ORDER BY id DESC LIMIT ?",
                (limit,),
            )
        return [
            {
                "id": row["id"],
                "user_id": row["user_id"],
                "source": row["source"],
                "attempt_label": row["attempt_label"],
                "score": row["score"],
                "matched": bool(row["matched"]),
                "threshold": row["threshold"],
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the enrollment database.

        Returns:
            Dictionary with total_identities, total_embeddings,
            total_verifications and successful_verifications.
        """
        stats = super().get_stats()
        row = self._fetchall(
            "SELECT COUNT(*) AS total, SUM(matched) AS successes FROM face_verification_events"
        )[0]
        stats["total_verifications"] = row["total"] or 0
        stats["successful_verifications"] = int(row["successes"] or 0)
        return stats

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._initialized = False
                logger.debug("Database connection closed")
