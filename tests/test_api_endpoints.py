"""
Tests for API Endpoints

This test suite verifies:
- Health check and root endpoints
- Verification and identification endpoints
- Identity management endpoints (enroll, list, delete)
- Evaluation endpoint
- Mapping of engine errors onto HTTP status codes

Run with: pytest tests/test_api_endpoints.py -v

The application is built around an in-memory enrollment store so no
database or config file is touched.
"""

import math
import os
import sys
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from api.app import create_app
from core.enrollment_store import InMemoryEnrollmentStore
from core.exceptions import InvalidEmbeddingError, StorageUnavailableError
from core.verification_service import FaceVerificationService


def face(theta: float) -> list:
    return [math.cos(theta), math.sin(theta), 0.0, 0.0]


@pytest.fixture
def service():
    store = InMemoryEnrollmentStore({
        1: [face(0.0), face(0.05)],
        2: [face(1.5), face(1.55)],
    })
    return FaceVerificationService(store, threshold=0.85, min_enrollment_samples=3)


@pytest.fixture
def client(service):
    """Create test client around an injected service."""
    with TestClient(create_app(service)) as c:
        yield c


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_status(self, client):
        """Test that health check returns valid response."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["store_ready"] is True
        assert data["enrolled_identities"] == 2
        assert data["threshold"] == 0.85

    def test_health_reports_unhealthy_store(self, service):
        """Test that a failing store is reported rather than raised."""
        with TestClient(create_app(service)) as c:
            service.store.get_stats = MagicMock(
                side_effect=StorageUnavailableError("database is locked")
            )
            data = c.get("/health").json()

        assert data["status"] == "unhealthy"
        assert data["enrolled_identities"] == 0

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"


class TestVerificationEndpoints:
    """Tests for /verify and /identify."""

    def test_verify_match(self, client):
        response = client.post("/verify", json={"identity_id": 1, "embedding": face(0.02)})
        assert response.status_code == 200

        data = response.json()
        assert data["matched"] is True
        assert data["score"] == pytest.approx(math.cos(0.02))
        assert data["best_index"] == 0
        assert data["threshold"] == 0.85

    def test_verify_not_enrolled_is_ok(self, client):
        """Test that an unknown identity is a non-match, not an error."""
        response = client.post("/verify", json={"identity_id": 42, "embedding": face(0.0)})
        assert response.status_code == 200
        assert response.json()["matched"] is False
        assert response.json()["score"] == 0.0

    def test_verify_threshold_override(self, client):
        response = client.post(
            "/verify", json={"identity_id": 2, "embedding": face(0.0), "threshold": 0.0}
        )
        assert response.json()["matched"] is True

    def test_verify_dimension_mismatch(self, client):
        response = client.post("/verify", json={"identity_id": 1, "embedding": [1.0, 0.0]})
        assert response.status_code == 400
        assert response.json()["code"] == "DIMENSION_MISMATCH"

    def test_verify_invalid_threshold(self, client):
        response = client.post(
            "/verify", json={"identity_id": 1, "embedding": face(0.0), "threshold": 1.5}
        )
        assert response.status_code == 422

    def test_verify_non_numeric_embedding(self, client):
        response = client.post("/verify", json={"identity_id": 1, "embedding": ["a", "b"]})
        assert response.status_code == 422

    def test_identify(self, client):
        response = client.post("/identify", json={"embedding": face(1.52)})
        assert response.status_code == 200
        data = response.json()
        assert data["matched"] is True
        assert data["identity_id"] == 2

    def test_identify_below_threshold(self, client):
        response = client.post("/identify", json={"embedding": face(0.8)})
        data = response.json()
        assert data["matched"] is False
        assert data["identity_id"] is None
        assert data["score"] > 0


class TestManagementEndpoints:
    """Tests for identity management endpoints."""

    def test_list_identities(self, client):
        response = client.get("/identities")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == 2
        assert [i["identity_id"] for i in data["identities"]] == [1, 2]
        assert data["identities"][0]["n_embeddings"] == 2

    def test_enroll(self, client):
        response = client.put(
            "/identities/3/embeddings",
            json={"embeddings": [face(3.0), face(3.02), face(3.04)]},
        )
        assert response.status_code == 200
        assert response.json()["n_embeddings"] == 3

        verify = client.post("/verify", json={"identity_id": 3, "embedding": face(3.01)})
        assert verify.json()["matched"] is True

    def test_enroll_too_few_samples(self, client):
        response = client.put(
            "/identities/3/embeddings",
            json={"embeddings": [face(3.0), face(3.0)]},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "ENROLLMENT_REJECTED"

    def test_enroll_duplicate_face(self, client):
        response = client.put(
            "/identities/3/embeddings",
            json={"embeddings": [face(0.01), face(0.02), face(0.03)]},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_FACE"

    def test_enroll_empty_list(self, client):
        response = client.put("/identities/3/embeddings", json={"embeddings": []})
        assert response.status_code == 422

    def test_delete_identity(self, client):
        response = client.delete("/identities/1")
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert client.get("/identities").json()["total"] == 1

    def test_delete_nonexistent_identity(self, client):
        response = client.delete("/identities/999")
        assert response.status_code == 404


class TestEvaluationEndpoint:
    """Tests for POST /evaluate."""

    def test_evaluate(self, client):
        response = client.post(
            "/evaluate", json={"threshold": 0.9, "impostor_samples_per_identity": 20, "seed": 3}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["usersWithEmbeddings"] == 2
        assert data["genuinePairs"] == 2
        assert data["threshold"] == 0.9
        assert data["FRR"] == 0.0
        assert data["FAR"] == 0.0
        assert data["eerEstimate"]["threshold"] == 0.4

    def test_evaluate_insufficient_data(self, client):
        client.delete("/identities/2")
        response = client.post("/evaluate", json={})
        assert response.status_code == 422
        assert response.json()["code"] == "INSUFFICIENT_DATA"


class TestStorageErrors:
    """Tests for infrastructure failures."""

    def test_storage_unavailable_maps_to_503(self, service):
        with TestClient(create_app(service)) as c:
            service.store.get_embedding_set = MagicMock(
                side_effect=StorageUnavailableError("disk I/O error")
            )
            response = c.post("/verify", json={"identity_id": 1, "embedding": face(0.0)})

        assert response.status_code == 503
        assert response.json()["code"] == "STORAGE_UNAVAILABLE"

    def test_corrupt_enrollment_is_server_error(self, service):
        """Test that unreadable stored data is not blamed on the client."""
        with TestClient(create_app(service)) as c:
            service.store.get_embedding_set = MagicMock(
                side_effect=InvalidEmbeddingError("Stored embedding mixes vectors and scalars")
            )
            response = c.post("/verify", json={"identity_id": 1, "embedding": face(0.0)})

        assert response.status_code == 500
        assert response.json()["code"] == "CORRUPT_ENROLLMENT"
