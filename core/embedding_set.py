"""
Embedding Set Module

The storage representation attached to one identity is either a single
embedding or an ordered list of embeddings (several enrollment samples).
The raw JSON is decoded exactly once, at the storage boundary, into one of
two explicit variants:

    SingleEmbedding(vector)
    MultipleEmbeddings(vectors)

Everything past the boundary works on the uniform `embeddings` list view.
A MultipleEmbeddings with one element is the same thing as a SingleEmbedding.

Usage:
    from core.embedding_set import decode_embedding_set, embeddings_of

    es = decode_embedding_set('[[0.1, 0.2], [0.3, 0.4]]')
    for vec in embeddings_of(es):
        ...
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from core.exceptions import InvalidEmbeddingError
from core.matching.normalizer import validate_embedding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleEmbedding:
    """An identity enrolled with exactly one embedding."""

    vector: Tuple[float, ...]

    @property
    def embeddings(self) -> List[np.ndarray]:
        return [np.asarray(self.vector, dtype=np.float64)]

    def __len__(self) -> int:
        return 1


@dataclass(frozen=True)
class MultipleEmbeddings:
    """An identity enrolled with a non-empty ordered list of embeddings."""

    vectors: Tuple[Tuple[float, ...], ...]

    def __post_init__(self):
        if len(self.vectors) == 0:
            raise InvalidEmbeddingError("MultipleEmbeddings requires at least one vector")
        lengths = {len(v) for v in self.vectors}
        if len(lengths) > 1:
            raise InvalidEmbeddingError(
                f"Embedding set mixes vector lengths {sorted(lengths)}"
            )

    @property
    def embeddings(self) -> List[np.ndarray]:
        return [np.asarray(v, dtype=np.float64) for v in self.vectors]

    def __len__(self) -> int:
        return len(self.vectors)


EmbeddingSet = Union[SingleEmbedding, MultipleEmbeddings]


def _as_tuple(values) -> Tuple[float, ...]:
    return tuple(float(x) for x in validate_embedding(values))


def make_embedding_set(vectors: Sequence) -> EmbeddingSet:
    """
    Build an embedding set from one or more raw vectors.

    Args:
        vectors: Non-empty sequence of flat numeric vectors.

    Returns:
        SingleEmbedding when one vector is given, MultipleEmbeddings otherwise.

    Raises:
        InvalidEmbeddingError: If the sequence is empty or any vector is malformed.
    """
    vectors = list(vectors)
    if not vectors:
        raise InvalidEmbeddingError("At least one embedding is required")
    if len(vectors) == 1:
        return SingleEmbedding(_as_tuple(vectors[0]))
    return MultipleEmbeddings(tuple(_as_tuple(v) for v in vectors))


def decode_embedding_set(raw: Any) -> Optional[EmbeddingSet]:
    """
    Decode a stored embedding set.

    Args:
        raw: JSON string as stored, or an already-parsed JSON value.

    Returns:
        SingleEmbedding for a flat list, MultipleEmbeddings for a list of
        lists, or None for an empty list (nothing enrolled).

    Raises:
        InvalidEmbeddingError: If the value is not valid JSON or has neither shape.
    """
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            raise InvalidEmbeddingError(f"Stored embedding is not valid JSON: {e}") from e
    else:
        parsed = raw

    if isinstance(parsed, np.ndarray):
        parsed = parsed.tolist()

    if not isinstance(parsed, (list, tuple)):
        raise InvalidEmbeddingError(
            f"Stored embedding must be a list, got {type(parsed).__name__}"
        )

    if len(parsed) == 0:
        return None

    if all(isinstance(e, (list, tuple)) for e in parsed):
        return MultipleEmbeddings(tuple(_as_tuple(e) for e in parsed))

    if any(isinstance(e, (list, tuple)) for e in parsed):
        raise InvalidEmbeddingError("Stored embedding mixes vectors and scalars")

    return SingleEmbedding(_as_tuple(parsed))


def encode_embedding_set(embedding_set: EmbeddingSet) -> str:
    """Serialize an embedding set to the JSON form kept in storage."""
    if isinstance(embedding_set, SingleEmbedding):
        return json.dumps(list(embedding_set.vector))
    return json.dumps([list(v) for v in embedding_set.vectors])


def embeddings_of(embedding_set: Optional[EmbeddingSet]) -> List[np.ndarray]:
    """Uniform list view; empty for an identity with nothing enrolled."""
    if embedding_set is None:
        return []
    return embedding_set.embeddings
