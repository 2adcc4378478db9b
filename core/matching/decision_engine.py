"""
Match Decision Engine: 1:1 verification and 1:N identification.

The engine normalizes the query once, normalizes every enrolled template,
scores the query against each template and keeps the maximum. The decision
is `score >= threshold`.

Identification runs verification against every enrolled identity and keeps
the global best. Equal top scores are broken by the lowest identity id, so
the outcome never depends on the order the corpus was read in.

Usage:
    from core.matching.decision_engine import MatchDecisionEngine

    engine = MatchDecisionEngine(threshold=0.85)
    result = engine.verify(query, embedding_set)
    result = engine.identify(query, store.get_all_embedding_sets())
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Any

import numpy as np

from core.embedding_set import EmbeddingSet, embeddings_of
from core.matching.embedding_matcher import CosineSimilarityScorer
from core.matching.interfaces import MatchResult, SimilarityScorer
from core.matching.normalizer import EmbeddingNormalizer

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85
DEFAULT_ANALYSIS_THRESHOLDS = (0.85, 0.90, 0.92, 0.95)


def validate_threshold(threshold: float) -> float:
    """Reject thresholds outside the cosine similarity range."""
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise ValueError(f"Threshold must be a number, got {threshold!r}")
    if not math.isfinite(value) or value < -1.0 or value > 1.0:
        raise ValueError(f"Threshold must be within [-1, 1], got {threshold}")
    return value


class MatchDecisionEngine:
    """
    Applies the decision threshold over one or many enrolled templates.

    The engine holds no per-request state, so one instance can serve
    concurrent requests.

    Args:
        threshold: Default decision threshold (overridable per call).
        scorer: SimilarityScorer, CosineSimilarityScorer by default.
        normalizer: EmbeddingNormalizer, created if omitted.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        scorer: Optional[SimilarityScorer] = None,
        normalizer: Optional[EmbeddingNormalizer] = None,
    ):
        self.threshold = validate_threshold(threshold)
        self.scorer = scorer if scorer is not None else CosineSimilarityScorer()
        self.normalizer = normalizer if normalizer is not None else EmbeddingNormalizer()

    def _resolve_threshold(self, threshold: Optional[float]) -> float:
        if threshold is None:
            return self.threshold
        return validate_threshold(threshold)

    def _score_templates(
        self, probe: np.ndarray, embedding_set: Optional[EmbeddingSet]
    ) -> List[float]:
        """Score an already-normalized probe against every enrolled template."""
        templates = self.normalizer.normalize_many(embeddings_of(embedding_set))
        return [self.scorer.compare(probe, t) for t in templates]

    def verify(
        self,
        query,
        embedding_set: Optional[EmbeddingSet],
        threshold: Optional[float] = None,
        identity_id: Optional[int] = None,
    ) -> MatchResult:
        """
        Verify a query embedding against one identity's templates.

        Args:
            query: Raw query embedding.
            embedding_set: The identity's enrolled embeddings (None if nothing
                           is enrolled yet).
            threshold: Optional per-call threshold override.
            identity_id: Used for logging only.

        Returns:
            MatchResult with the maximum similarity and the index of the
            template that produced it. An empty set yields matched=False,
            score=0.0.

        Raises:
            InvalidEmbeddingError: Malformed query or stored embedding.
            DimensionMismatchError: Query and a template differ in length.
        """
        threshold = self._resolve_threshold(threshold)
        probe = self.normalizer.normalize(query)

        scores = self._score_templates(probe, embedding_set)
        if not scores:
            logger.info(f"Verify identity={identity_id}: nothing enrolled")
            return MatchResult(
                matched=False,
                score=0.0,
                threshold=threshold,
                details={"templates_checked": 0, "reason": "not_enrolled"},
            )

        best_index = int(np.argmax(scores))
        best_score = scores[best_index]
        matched = best_score >= threshold

        logger.info(
            f"Verify identity={identity_id}: score={best_score:.4f}, "
            f"threshold={threshold}, matched={matched}"
        )
        logger.debug(f"Per-template scores: {[round(s, 4) for s in scores]}")

        return MatchResult(
            matched=matched,
            score=best_score,
            threshold=threshold,
            best_index=best_index,
            details={"templates_checked": len(scores), "template_scores": scores},
        )

    def identify(
        self,
        query,
        corpus: Iterable[Tuple[int, Optional[EmbeddingSet]]],
        threshold: Optional[float] = None,
    ) -> MatchResult:
        """
        Identify a query embedding among all enrolled identities.

        Args:
            query: Raw query embedding.
            corpus: Iterable of (identity_id, embedding_set) pairs.
            threshold: Optional per-call threshold override.

        Returns:
            MatchResult carrying the best global score. identity_id and
            best_index are set only when the score reaches the threshold.
            Ties on the top score go to the lowest identity id.
        """
        threshold = self._resolve_threshold(threshold)
        probe = self.normalizer.normalize(query)

        best_id: Optional[int] = None
        best_score = 0.0
        best_index: Optional[int] = None
        identities_checked = 0

        for identity_id, embedding_set in corpus:
            scores = self._score_templates(probe, embedding_set)
            if not scores:
                logger.debug(f"Skipping identity {identity_id}: nothing enrolled")
                continue

            identities_checked += 1
            index = int(np.argmax(scores))
            score = scores[index]

            if (
                best_id is None
                or score > best_score
                or (score == best_score and identity_id < best_id)
            ):
                best_id = identity_id
                best_score = score
                best_index = index

        details: Dict[str, Any] = {"identities_checked": identities_checked}

        if best_id is None:
            logger.info("Identify: no enrolled identities to compare against")
            details["reason"] = "not_enrolled"
            return MatchResult(matched=False, score=0.0, threshold=threshold, details=details)

        details["best_candidate"] = best_id
        if best_score < threshold:
            logger.info(
                f"Identify: best score {best_score:.4f} below threshold {threshold}"
            )
            return MatchResult(matched=False, score=best_score, threshold=threshold, details=details)

        logger.info(f"Identify: matched identity {best_id} with score {best_score:.4f}")
        return MatchResult(
            matched=True,
            score=best_score,
            threshold=threshold,
            best_index=best_index,
            identity_id=best_id,
            details=details,
        )

    def compare_sets(
        self,
        set_a: Optional[EmbeddingSet],
        set_b: Optional[EmbeddingSet],
    ) -> np.ndarray:
        """
        Pairwise similarity matrix between two identities' templates.

        Returns:
            (len(a), len(b)) float64 matrix; shape (0, n) or (n, 0) when one
            side has nothing enrolled.
        """
        a = self.normalizer.normalize_many(embeddings_of(set_a))
        b = self.normalizer.normalize_many(embeddings_of(set_b))
        matrix = np.zeros((len(a), len(b)), dtype=np.float64)
        for i, ea in enumerate(a):
            for j, eb in enumerate(b):
                matrix[i, j] = self.scorer.compare(ea, eb)
        return matrix

    @staticmethod
    def threshold_analysis(
        score: float,
        thresholds: Sequence[float] = DEFAULT_ANALYSIS_THRESHOLDS,
    ) -> Dict[float, bool]:
        """Match decision for a score at each candidate threshold."""
        return {float(t): score >= t for t in thresholds}
