"""
Tests for the enrollment store implementations.

This test suite verifies:
- Save/load of single and multiple embedding sets
- Re-enrollment replaces the stored set
- Corpus ordering and corrupt-row handling
- Deletion and identity listing
- Verification event logging
- Storage failures surfacing as StorageUnavailableError

Run with: pytest tests/test_enrollment_store.py -v
"""

import os
import shutil
import sys
import tempfile

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.embedding_set import MultipleEmbeddings, SingleEmbedding, make_embedding_set
from core.enrollment_store import InMemoryEnrollmentStore, SQLiteEnrollmentStore
from core.exceptions import InvalidEmbeddingError, StorageUnavailableError


class TestSQLiteEnrollmentStore:
    """Tests for the SQLite-backed store."""

    @pytest.fixture
    def temp_storage(self):
        """Create a temporary directory for testing."""
        temp_dir = tempfile.mkdtemp(prefix="enrollment_test_")
        yield {
            "db_path": os.path.join(temp_dir, "faces.sqlite"),
            "temp_dir": temp_dir,
        }
        # Cleanup
        shutil.rmtree(temp_dir)

    @pytest.fixture
    def store(self, temp_storage):
        """Create an opened SQLiteEnrollmentStore instance for testing."""
        s = SQLiteEnrollmentStore(temp_storage["db_path"])
        s.open()
        yield s
        s.close()

    def test_open_creates_database(self, temp_storage):
        """Test that open() creates the database file and schema."""
        s = SQLiteEnrollmentStore(temp_storage["db_path"])
        s.open()
        s.open()  # idempotent
        assert os.path.exists(temp_storage["db_path"])
        assert s.get_all_embedding_sets() == []
        s.close()

    def test_save_and_load_multiple(self, store):
        es = make_embedding_set([[0.1, 0.2], [0.3, 0.4]])
        store.save_embedding_set(1, es)

        loaded = store.get_embedding_set(1)
        assert isinstance(loaded, MultipleEmbeddings)
        assert loaded == es

    def test_save_and_load_single(self, store):
        store.save_embedding_set(2, SingleEmbedding((0.6, 0.8)))
        assert store.get_embedding_set(2) == SingleEmbedding((0.6, 0.8))

    def test_missing_identity_returns_none(self, store):
        assert store.get_embedding_set(999) is None

    def test_reenrollment_replaces_set(self, store):
        """Test that saving again replaces, never appends."""
        store.save_embedding_set(1, make_embedding_set([[1.0, 0.0], [0.0, 1.0]]))
        store.save_embedding_set(1, SingleEmbedding((0.5, 0.5)))

        assert store.get_embedding_set(1) == SingleEmbedding((0.5, 0.5))
        assert len(store.get_all_embedding_sets()) == 1

    def test_corpus_ordered_by_id(self, store):
        for identity_id in (5, 1, 3):
            store.save_embedding_set(identity_id, SingleEmbedding((1.0, float(identity_id))))
        assert [i for i, _ in store.get_all_embedding_sets()] == [1, 3, 5]

    def test_corrupt_row_skipped_in_corpus(self, store):
        """Test that one bad row does not break bulk reads."""
        store.save_embedding_set(1, SingleEmbedding((1.0, 0.0)))
        store._execute(
            "INSERT INTO user_faces (user_id, face_embedding) VALUES (?, ?)",
            (2, "not json"),
            commit=True,
        )
        store._execute(
            "INSERT INTO user_faces (user_id, face_embedding) VALUES (?, ?)",
            (3, "[]"),
            commit=True,
        )

        corpus = store.get_all_embedding_sets()
        assert [i for i, _ in corpus] == [1]

        with pytest.raises(InvalidEmbeddingError):
            store.get_embedding_set(2)
        assert store.get_embedding_set(3) is None

    def test_mixed_length_row_skipped_in_corpus(self, store):
        """Test that a set with vectors of different lengths is treated as corrupt."""
        store.save_embedding_set(1, SingleEmbedding((0.0, 0.0, 1.0)))
        store._execute(
            "INSERT INTO user_faces (user_id, face_embedding) VALUES (?, ?)",
            (2, "[[1, 0, 0], [0, 1]]"),
            commit=True,
        )
        store.save_embedding_set(3, SingleEmbedding((0.0, 1.0, 0.0)))

        assert [i for i, _ in store.get_all_embedding_sets()] == [1, 3]
        with pytest.raises(InvalidEmbeddingError):
            store.get_embedding_set(2)

    def test_delete(self, store):
        store.save_embedding_set(1, SingleEmbedding((1.0, 0.0)))
        store.log_verification(1, 0.9, True, 0.85)

        assert store.delete_embedding_set(1) is True
        assert store.get_embedding_set(1) is None
        assert store.get_verification_events(identity_id=1) == []

    def test_delete_nonexistent(self, store):
        assert store.delete_embedding_set(42) is False

    def test_list_identities(self, store):
        store.save_embedding_set(1, make_embedding_set([[1.0, 0.0], [0.0, 1.0]]))
        store.save_embedding_set(2, SingleEmbedding((1.0, 0.0)))

        identities = store.list_identities()

        assert [i["identity_id"] for i in identities] == [1, 2]
        assert [i["n_embeddings"] for i in identities] == [2, 1]
        assert identities[0]["created_at"] is not None

    def test_log_verification(self, store):
        """Test that events are recorded newest first."""
        first = store.log_verification(1, 0.91, True, 0.85, source="login")
        second = store.log_verification(1, 0.40, False, 0.85, source="vote",
                                        attempt_label="impostor")

        events = store.get_verification_events(identity_id=1)
        assert [e["id"] for e in events] == [second, first]
        assert events[0]["source"] == "vote"
        assert events[0]["attempt_label"] == "impostor"
        assert events[0]["matched"] is False
        assert events[1]["score"] == pytest.approx(0.91)

    def test_log_verification_rejects_unknown_source(self, store):
        with pytest.raises(ValueError):
            store.log_verification(1, 0.9, True, 0.85, source="kiosk")

    def test_get_stats(self, store):
        store.save_embedding_set(1, make_embedding_set([[1.0, 0.0], [0.0, 1.0]]))
        store.save_embedding_set(2, SingleEmbedding((1.0, 0.0)))
        store.log_verification(1, 0.9, True, 0.85)
        store.log_verification(2, 0.1, False, 0.85)

        stats = store.get_stats()

        assert stats["total_identities"] == 2
        assert stats["total_embeddings"] == 3
        assert stats["total_verifications"] == 2
        assert stats["successful_verifications"] == 1

    def test_persists_across_connections(self, temp_storage):
        s = SQLiteEnrollmentStore(temp_storage["db_path"])
        s.save_embedding_set(7, SingleEmbedding((0.6, 0.8)))
        s.close()

        reopened = SQLiteEnrollmentStore(temp_storage["db_path"])
        assert reopened.get_embedding_set(7) == SingleEmbedding((0.6, 0.8))
        reopened.close()

    def test_unreachable_database_raises(self, temp_storage):
        """Test that a path that cannot be opened surfaces as StorageUnavailableError."""
        s = SQLiteEnrollmentStore(temp_storage["temp_dir"])
        with pytest.raises(StorageUnavailableError):
            s.open()
        with pytest.raises(StorageUnavailableError):
            s.get_all_embedding_sets()


class TestInMemoryEnrollmentStore:
    """Tests for the dict-backed store."""

    def test_decodes_raw_values(self):
        store = InMemoryEnrollmentStore({
            2: [[0.1, 0.2], [0.3, 0.4]],
            1: "[0.5, 0.5]",
            3: [],
        })

        corpus = store.get_all_embedding_sets()

        assert [i for i, _ in corpus] == [1, 2]
        assert isinstance(store.get_embedding_set(1), SingleEmbedding)
        assert store.get_embedding_set(3) is None

    def test_accepts_embedding_sets(self):
        es = SingleEmbedding((1.0, 0.0))
        store = InMemoryEnrollmentStore({1: es})
        assert store.get_embedding_set(1) is es

    def test_save_delete(self):
        store = InMemoryEnrollmentStore()
        store.save_embedding_set(1, SingleEmbedding((1.0, 0.0)))
        assert store.delete_embedding_set(1) is True
        assert store.delete_embedding_set(1) is False

    def test_events(self):
        store = InMemoryEnrollmentStore()
        store.log_verification(1, 0.9, True, 0.85)
        store.log_verification(2, 0.2, False, 0.85, source="identify")

        assert len(store.get_verification_events()) == 2
        assert store.get_verification_events(identity_id=2)[0]["source"] == "identify"

    def test_get_stats(self):
        store = InMemoryEnrollmentStore({1: [[1.0, 0.0], [0.0, 1.0]], 2: [1.0, 0.0]})
        assert store.get_stats() == {"total_identities": 2, "total_embeddings": 3}
