"""
Exception Types for the Face Matching Engine

Only structurally invalid input and infrastructure failures are raised as
exceptions. "Nothing enrolled" and "below threshold" are ordinary non-match
results and never raise.

Usage:
    from core.exceptions import DimensionMismatchError

    try:
        score = scorer.compare(probe, template)
    except DimensionMismatchError as e:
        logger.error(f"Rejected comparison: {e}")
"""

from typing import Optional


class FaceMatchError(Exception):
    """Base class for all errors raised by the matching engine."""


class InvalidEmbeddingError(FaceMatchError, ValueError):
    """Embedding is not a flat sequence of finite numbers, or cannot be decoded."""


class DimensionMismatchError(FaceMatchError, ValueError):
    """
    Two vectors of different length were compared.

    Attributes:
        expected: Length of the first vector.
        actual: Length of the second vector.
    """

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


class StorageUnavailableError(FaceMatchError, RuntimeError):
    """The enrollment store could not be read or written."""


class CorruptEnrollmentError(FaceMatchError):
    """
    An identity's stored embedding set could not be decoded.

    Raised on targeted reads of server-side data; bulk reads skip such rows.

    Attributes:
        identity_id: Identity whose enrollment is unreadable.
    """

    def __init__(self, identity_id: int, reason: str):
        self.identity_id = identity_id
        super().__init__(f"Stored enrollment for identity {identity_id} is corrupt: {reason}")


class InsufficientDataError(FaceMatchError):
    """The evaluation corpus is too small to produce meaningful statistics."""


class EvaluationCancelledError(FaceMatchError):
    """An evaluation run was cancelled between identity iterations."""


class EnrollmentRejectedError(FaceMatchError, ValueError):
    """An enrollment request does not carry enough usable samples."""


class DuplicateFaceError(FaceMatchError):
    """
    The face being enrolled is already registered to another identity.

    Attributes:
        identity_id: The existing identity the samples collide with.
        similarity: Median similarity against that identity's templates.
    """

    def __init__(self, identity_id: int, similarity: float, message: Optional[str] = None):
        self.identity_id = identity_id
        self.similarity = similarity
        super().__init__(
            message
            or f"Face already registered to identity {identity_id} "
               f"(median similarity {similarity:.4f})"
        )
