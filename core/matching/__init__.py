"""
Matching Module for Face Verification

This package contains the scoring and decision logic for comparing face
embeddings.

Components:
    - normalizer: Embedding validation and L2 normalization
    - interfaces: MatchResult and the abstract SimilarityScorer
    - embedding_matcher: Cosine similarity scorer
    - decision_engine: 1:1 verification and 1:N identification

Usage:
    from core.matching import MatchDecisionEngine, CosineSimilarityScorer
"""

from core.matching.normalizer import (
    EmbeddingNormalizer,
    l2_normalize,
    validate_embedding,
)

from core.matching.interfaces import (
    MatchResult,
    SimilarityScorer,
)

from core.matching.embedding_matcher import (
    CosineSimilarityScorer,
    cosine_similarity,
)

from core.matching.decision_engine import (
    MatchDecisionEngine,
    DEFAULT_THRESHOLD,
    validate_threshold,
)

__all__ = [
    # Normalization
    "EmbeddingNormalizer",
    "l2_normalize",
    "validate_embedding",
    # Data classes and interfaces
    "MatchResult",
    "SimilarityScorer",
    # Scoring
    "CosineSimilarityScorer",
    "cosine_similarity",
    # Decisions
    "MatchDecisionEngine",
    "DEFAULT_THRESHOLD",
    "validate_threshold",
]
