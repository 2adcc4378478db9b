"""
Embedding Matcher: compare face embeddings via cosine similarity.

Concrete SimilarityScorer used by every call site in the engine: 1:1
verification, 1:N identification, identity comparison, enrollment duplicate
checks and the offline evaluation harness.

The full cosine formula is computed, not a bare dot product, so the score is
correct even when a caller hands over vectors that are not unit length.
"""

import logging

import numpy as np

from core.exceptions import DimensionMismatchError
from core.matching.interfaces import SimilarityScorer

logger = logging.getLogger(__name__)


class CosineSimilarityScorer(SimilarityScorer):
    """
    Cosine similarity between two equal-length vectors.

    cos(a, b) = dot(a, b) / (||a|| * ||b||)

    A zero denominator is replaced by 1, so comparing against a zero vector
    scores 0. The result is clamped to [-1, 1] to absorb floating-point
    overshoot.
    """

    def compare(self, a, b) -> float:
        """
        Compare two embeddings.

        Args:
            a: (D,) vector.
            b: (D,) vector.

        Returns:
            Cosine similarity in [-1, 1].

        Raises:
            DimensionMismatchError: If the vectors differ in length.
        """
        a = np.asarray(a, dtype=np.float64).ravel()
        b = np.asarray(b, dtype=np.float64).ravel()

        if a.shape[0] != b.shape[0]:
            logger.error(
                f"Embedding dimension mismatch: a={a.shape[0]}, b={b.shape[0]}"
            )
            raise DimensionMismatchError(a.shape[0], b.shape[0])

        denom = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
        if denom == 0.0:
            denom = 1.0

        similarity = float(np.dot(a, b)) / denom

        # Clamp to [-1, 1] for numerical stability
        return max(-1.0, min(1.0, similarity))


_default_scorer = CosineSimilarityScorer()


def cosine_similarity(a, b) -> float:
    """Cosine similarity using the shared default scorer."""
    return _default_scorer.compare(a, b)
