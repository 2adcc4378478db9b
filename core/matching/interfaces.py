"""
Matching Interfaces Module

This module defines the result type and the abstract scorer interface used
by the match decision engine and the evaluation harness.

The matching pipeline has three pieces:
1. EmbeddingNormalizer - validates and unit-normalizes raw vectors
2. SimilarityScorer - compares two vectors
3. MatchDecisionEngine - aggregates scores over enrolled templates and
   applies the decision threshold

Usage:
    from core.matching.interfaces import MatchResult, SimilarityScorer

    class MyScorer(SimilarityScorer):
        def compare(self, a, b):
            ...
"""

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass
class MatchResult:
    """
    Result of a verification or identification request.

    Attributes:
        matched: Decision. Equals score >= threshold, except when nothing
                 is enrolled, which is always a non-match with score 0.
        score: Maximum cosine similarity over the enrolled templates,
               clamped to [-1, 1]. Never an average.
        threshold: Threshold the decision was taken with.
        best_index: Index of the template that produced the score (1:1).
        identity_id: Matched identity (1:N, only present when matched).
        details: Diagnostic information (per-template scores, counts).
    """

    matched: bool
    score: float
    threshold: float
    best_index: Optional[int] = None
    identity_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the transport shape, omitting absent optional fields."""
        data: Dict[str, Any] = {"matched": self.matched, "score": self.score}
        if self.best_index is not None:
            data["bestIndex"] = self.best_index
        if self.identity_id is not None:
            data["identityId"] = self.identity_id
        return data


class SimilarityScorer(ABC):
    """
    Abstract base class for vector similarity scoring.

    Implementations must raise DimensionMismatchError when the two vectors
    differ in length rather than return a score.
    """

    @abstractmethod
    def compare(self, a: np.ndarray, b: np.ndarray) -> float:
        """
        Compare two vectors.

        Args:
            a: (D,) vector, normally already L2-normalized by the caller.
            b: (D,) vector.

        Returns:
            Similarity in [-1, 1].
        """
        pass
