"""
Embedding Normalizer: validate raw embeddings and scale them to unit L2 norm.

Embeddings arrive from the extraction model (or from storage) without any
guarantee of being unit length; every consumer normalizes before scoring.

Usage:
    from core.matching.normalizer import EmbeddingNormalizer

    normalizer = EmbeddingNormalizer()
    unit = normalizer.normalize([3.0, 4.0])   # -> array([0.6, 0.8])
"""

import logging
from typing import Iterable, List

import numpy as np

from core.exceptions import InvalidEmbeddingError

logger = logging.getLogger(__name__)


def validate_embedding(values) -> np.ndarray:
    """
    Convert a raw embedding into a float64 vector, rejecting malformed input.

    Args:
        values: List, tuple or 1-D numpy array of real numbers.

    Returns:
        (D,) float64 array.

    Raises:
        InvalidEmbeddingError: If the input is not a flat sequence of
            finite numbers (scalars, strings, nested or ragged lists,
            booleans, None, NaN and Infinity are all rejected).
    """
    if values is None or isinstance(values, (str, bytes, dict)):
        raise InvalidEmbeddingError(
            f"Embedding must be a sequence of numbers, got {type(values).__name__}"
        )

    try:
        arr = np.asarray(values)
    except (TypeError, ValueError) as e:
        raise InvalidEmbeddingError(f"Embedding could not be read as a vector: {e}") from e

    if arr.ndim != 1:
        raise InvalidEmbeddingError(
            f"Embedding must be a flat sequence, got array with {arr.ndim} dimensions"
        )

    # Integer, unsigned and float only; bool/object/str are rejected
    if arr.size > 0 and arr.dtype.kind not in "iuf":
        raise InvalidEmbeddingError(
            f"Embedding elements must be numeric, got dtype {arr.dtype}"
        )

    arr = arr.astype(np.float64)

    if not np.all(np.isfinite(arr)):
        raise InvalidEmbeddingError("Embedding contains NaN or infinite values")

    return arr


def l2_normalize(values) -> np.ndarray:
    """
    Scale a vector to unit Euclidean norm.

    A zero vector is divided by 1 instead of 0 and comes back unchanged.

    Raises:
        InvalidEmbeddingError: See validate_embedding.
    """
    vec = validate_embedding(values)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        logger.debug("Zero-norm embedding left unnormalized")
        norm = 1.0
    return vec / norm


class EmbeddingNormalizer:
    """
    Collaborator that turns raw embeddings into unit vectors.

    The engine and the evaluation harness both take a normalizer so the
    validation rules live in exactly one place.
    """

    def normalize(self, values) -> np.ndarray:
        return l2_normalize(values)

    def normalize_many(self, vectors: Iterable) -> List[np.ndarray]:
        return [l2_normalize(v) for v in vectors]
