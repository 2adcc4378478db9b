"""
Core Module for the Face Verification Matching Engine

This package contains embedding normalization, similarity scoring, match
decisions, enrollment storage and the offline calibration harness.

Main components:
    - config: Configuration loading and management
    - exceptions: Error types raised by the engine
    - matching: Normalizer, cosine scorer and match decision engine
    - embedding_set: Decoding of stored embedding sets
    - enrollment_store: Enrollment persistence (SQLite / in-memory)
    - evaluation: FAR / FRR / EER calibration harness
    - verification_service: Caller-owned facade over all of the above

Usage:
    from core.enrollment_store import SQLiteEnrollmentStore
    from core.verification_service import FaceVerificationService

    service = FaceVerificationService(SQLiteEnrollmentStore("storage/faces.sqlite"))
    result = service.verify(42, embedding)
"""

from core.config import (
    get_config,
    get_section,
    get_matching_config,
    get_evaluation_config,
    get_enrollment_config,
    get_storage_config,
    get_api_config,
    get_server_config,
)

from core.exceptions import (
    FaceMatchError,
    InvalidEmbeddingError,
    DimensionMismatchError,
    StorageUnavailableError,
    CorruptEnrollmentError,
    InsufficientDataError,
    EvaluationCancelledError,
    EnrollmentRejectedError,
    DuplicateFaceError,
)

# matching must be imported before embedding_set (embedding_set uses the normalizer)
from core.matching import (
    EmbeddingNormalizer,
    CosineSimilarityScorer,
    MatchDecisionEngine,
    MatchResult,
)

from core.embedding_set import (
    SingleEmbedding,
    MultipleEmbeddings,
    EmbeddingSet,
    decode_embedding_set,
    encode_embedding_set,
    make_embedding_set,
)

from core.enrollment_store import (
    EnrollmentStore,
    SQLiteEnrollmentStore,
    InMemoryEnrollmentStore,
)

from core.evaluation import (
    EvaluationHarness,
    EvaluationConfig,
    EvaluationReport,
)

from core.verification_service import FaceVerificationService

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_matching_config",
    "get_evaluation_config",
    "get_enrollment_config",
    "get_storage_config",
    "get_api_config",
    "get_server_config",
    # Errors
    "FaceMatchError",
    "InvalidEmbeddingError",
    "DimensionMismatchError",
    "StorageUnavailableError",
    "CorruptEnrollmentError",
    "InsufficientDataError",
    "EvaluationCancelledError",
    "EnrollmentRejectedError",
    "DuplicateFaceError",
    # Matching
    "EmbeddingNormalizer",
    "CosineSimilarityScorer",
    "MatchDecisionEngine",
    "MatchResult",
    # Embedding sets
    "SingleEmbedding",
    "MultipleEmbeddings",
    "EmbeddingSet",
    "decode_embedding_set",
    "encode_embedding_set",
    "make_embedding_set",
    # Storage
    "EnrollmentStore",
    "SQLiteEnrollmentStore",
    "InMemoryEnrollmentStore",
    # Evaluation
    "EvaluationHarness",
    "EvaluationConfig",
    "EvaluationReport",
    # Service
    "FaceVerificationService",
]
