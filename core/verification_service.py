"""
Face Verification Service

Caller-owned facade tying the enrollment store to the match decision engine
and the evaluation harness. Deployments construct one instance explicitly
(there is no module-level singleton) and share it between request handlers.

Exposed operations:
- verify(identity_id, query_embedding, threshold)   -> MatchResult
- identify(query_embedding, threshold)              -> MatchResult
- evaluate(threshold, impostor_samples_per_identity) -> EvaluationReport
- enroll(identity_id, embeddings)                   -> EmbeddingSet
- compare_identities(identity_a, identity_b)        -> dict

Usage:
    from core.verification_service import FaceVerificationService
    from core.enrollment_store import SQLiteEnrollmentStore

    service = FaceVerificationService(SQLiteEnrollmentStore("storage/faces.sqlite"))
    result = service.verify(42, embedding)
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from core.embedding_set import EmbeddingSet, embeddings_of, make_embedding_set
from core.enrollment_store import EnrollmentStore
from core.evaluation import EvaluationConfig, EvaluationHarness, EvaluationReport
from core.exceptions import (
    CorruptEnrollmentError,
    DimensionMismatchError,
    DuplicateFaceError,
    EnrollmentRejectedError,
    InvalidEmbeddingError,
)
from core.matching.decision_engine import DEFAULT_THRESHOLD, MatchDecisionEngine
from core.matching.embedding_matcher import CosineSimilarityScorer
from core.matching.interfaces import MatchResult
from core.matching.normalizer import EmbeddingNormalizer

logger = logging.getLogger(__name__)


class FaceVerificationService:
    """
    Face verification operations over one enrollment store.

    Args:
        store: EnrollmentStore collaborator.
        threshold: Default decision threshold.
        evaluation_config: Defaults for evaluate(); per-call arguments win.
        min_enrollment_samples: Unique samples required to enroll.
        duplicate_threshold: Median similarity to another identity at or
            above which an enrollment is rejected as a duplicate face.
    """

    def __init__(
        self,
        store: EnrollmentStore,
        threshold: float = DEFAULT_THRESHOLD,
        evaluation_config: Optional[EvaluationConfig] = None,
        min_enrollment_samples: int = 3,
        duplicate_threshold: float = 0.92,
    ):
        self.store = store
        self.normalizer = EmbeddingNormalizer()
        self.scorer = CosineSimilarityScorer()
        self.engine = MatchDecisionEngine(
            threshold=threshold, scorer=self.scorer, normalizer=self.normalizer
        )
        self.evaluation_config = (
            evaluation_config if evaluation_config is not None
            else EvaluationConfig(threshold=threshold)
        )
        self.min_enrollment_samples = min_enrollment_samples
        self.duplicate_threshold = duplicate_threshold

        self._ready_lock = threading.Lock()
        self._ready_future: Optional[Future] = None
        self._enroll_lock = threading.Lock()

    @classmethod
    def from_config(cls, store: EnrollmentStore, config: Dict[str, Any]) -> "FaceVerificationService":
        """Build from the loaded config.yaml dictionary."""
        matching = config.get("matching", {})
        enrollment = config.get("enrollment", {})
        threshold = matching.get("threshold", DEFAULT_THRESHOLD)

        evaluation = dict(config.get("evaluation", {}))
        evaluation.setdefault("threshold", threshold)

        return cls(
            store,
            threshold=threshold,
            evaluation_config=EvaluationConfig.from_dict(evaluation),
            min_enrollment_samples=enrollment.get("min_samples", 3),
            duplicate_threshold=enrollment.get("duplicate_threshold", 0.92),
        )

    @property
    def threshold(self) -> float:
        return self.engine.threshold

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ensure_ready(self) -> None:
        """
        Open the store exactly once, however many callers race here.

        The first caller runs the initialization; everyone else waits on the
        same future. A failed initialization is re-raised to every waiter and
        may be retried by a later call.
        """
        with self._ready_lock:
            future = self._ready_future
            owner = future is None
            if owner:
                future = Future()
                self._ready_future = future

        if owner:
            try:
                self.store.open()
            except Exception as e:
                with self._ready_lock:
                    self._ready_future = None
                future.set_exception(e)
            else:
                future.set_result(True)
                logger.info("Face verification service ready")

        future.result()

    @property
    def is_ready(self) -> bool:
        future = self._ready_future
        return future is not None and future.done() and future.exception() is None

    def close(self) -> None:
        self.store.close()
        with self._ready_lock:
            self._ready_future = None

    # ------------------------------------------------------------------
    # Online operations
    # ------------------------------------------------------------------

    def _load_embedding_set(self, identity_id: int) -> Optional[EmbeddingSet]:
        """Targeted read; undecodable stored data is a server-side fault."""
        try:
            return self.store.get_embedding_set(identity_id)
        except InvalidEmbeddingError as e:
            logger.error(f"Stored enrollment for identity {identity_id} is corrupt: {e}")
            raise CorruptEnrollmentError(identity_id, str(e)) from e

    def verify(
        self,
        identity_id: int,
        query_embedding,
        threshold: Optional[float] = None,
        source: str = "login",
    ) -> MatchResult:
        """
        1:1 verification of a query embedding against one identity.

        Raises:
            InvalidEmbeddingError: Malformed query.
            DimensionMismatchError: Query and enrollment differ in length.
            CorruptEnrollmentError: The stored enrollment cannot be decoded.
            StorageUnavailableError: On database failure.
        """
        self.ensure_ready()
        embedding_set = self._load_embedding_set(identity_id)
        result = self.engine.verify(
            query_embedding, embedding_set, threshold=threshold, identity_id=identity_id
        )
        self.store.log_verification(
            identity_id, result.score, result.matched, result.threshold, source=source
        )
        return result

    def identify(self, query_embedding, threshold: Optional[float] = None) -> MatchResult:
        """1:N identification of a query embedding across the corpus."""
        self.ensure_ready()
        corpus = self.store.get_all_embedding_sets()
        result = self.engine.identify(query_embedding, corpus, threshold=threshold)
        self.store.log_verification(
            result.identity_id, result.score, result.matched, result.threshold,
            source="identify",
        )
        return result

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll(self, identity_id: int, embeddings: Sequence) -> EmbeddingSet:
        """
        Enroll (or re-enroll) an identity, replacing any previous embedding set.

        Samples that are identical once normalized are dropped. The remaining
        samples must number at least min_enrollment_samples, and their median
        similarity to every other identity must stay below duplicate_threshold.
        Enrollments are serialized so the duplicate check and the save see
        the same corpus.

        Raises:
            InvalidEmbeddingError: A sample is malformed.
            DimensionMismatchError: Samples differ in length.
            EnrollmentRejectedError: Too few unique samples.
            DuplicateFaceError: The face is already enrolled under another identity.
        """
        self.ensure_ready()

        unique: List[np.ndarray] = []
        seen = set()
        for raw in embeddings:
            vec = self.normalizer.normalize(raw)
            key = tuple(np.round(vec, 12).tolist())
            if key in seen:
                logger.warning(f"Dropping duplicate enrollment sample for identity {identity_id}")
                continue
            seen.add(key)
            if unique and len(vec) != len(unique[0]):
                raise DimensionMismatchError(len(unique[0]), len(vec))
            unique.append(vec)

        if len(unique) < self.min_enrollment_samples:
            raise EnrollmentRejectedError(
                f"Only {len(unique)} unique face samples provided. "
                f"Minimum {self.min_enrollment_samples} required."
            )

        embedding_set = make_embedding_set(unique)

        with self._enroll_lock:
            for other_id, other_set in self.store.get_all_embedding_sets():
                if other_id == identity_id:
                    continue
                similarities = [
                    self.scorer.compare(new, stored)
                    for new in unique
                    for stored in self.normalizer.normalize_many(embeddings_of(other_set))
                ]
                if not similarities:
                    continue
                median = float(np.median(similarities))
                if median >= self.duplicate_threshold:
                    logger.warning(
                        f"Duplicate face for identity {identity_id}: matches identity {other_id} "
                        f"(median={median:.4f}, threshold={self.duplicate_threshold})"
                    )
                    raise DuplicateFaceError(other_id, median)

            self.store.save_embedding_set(identity_id, embedding_set)
        logger.info(f"Enrolled identity {identity_id} with {len(unique)} embedding(s)")
        return embedding_set

    def compare_identities(
        self,
        identity_a: int,
        identity_b: int,
        thresholds: Optional[Sequence[float]] = None,
    ) -> Dict[str, Any]:
        """
        Pairwise similarity matrix between two identities' templates.

        Returns:
            Dict with the matrix, max_similarity (None if either side has
            nothing enrolled) and the match decision at each threshold.
        """
        self.ensure_ready()
        set_a = self._load_embedding_set(identity_a)
        set_b = self._load_embedding_set(identity_b)
        matrix = self.engine.compare_sets(set_a, set_b)

        max_similarity = float(matrix.max()) if matrix.size else None
        analysis = {}
        if max_similarity is not None:
            if thresholds is None:
                analysis = self.engine.threshold_analysis(max_similarity)
            else:
                analysis = self.engine.threshold_analysis(max_similarity, thresholds)

        return {
            "identity_a": identity_a,
            "identity_b": identity_b,
            "matrix": matrix,
            "max_similarity": max_similarity,
            "threshold_analysis": analysis,
        }

    # ------------------------------------------------------------------
    # Offline calibration
    # ------------------------------------------------------------------

    def evaluate(
        self,
        threshold: Optional[float] = None,
        impostor_samples_per_identity: Optional[int] = None,
        seed: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        plot_dir: Optional[str] = None,
    ) -> EvaluationReport:
        """
        Run the evaluation harness over the whole enrollment corpus.

        Raises:
            InsufficientDataError: Fewer than 2 identities have embeddings.
            EvaluationCancelledError: cancel_event was set.
        """
        self.ensure_ready()
        base = self.evaluation_config
        config = EvaluationConfig(
            threshold=base.threshold if threshold is None else threshold,
            impostor_samples_per_identity=(
                base.impostor_samples_per_identity
                if impostor_samples_per_identity is None
                else impostor_samples_per_identity
            ),
            max_impostor_attempts=base.max_impostor_attempts,
            sweep_start=base.sweep_start,
            sweep_stop=base.sweep_stop,
            sweep_step=base.sweep_step,
            seed=base.seed if seed is None else seed,
        )
        harness = EvaluationHarness(config, scorer=self.scorer, normalizer=self.normalizer)
        return harness.run(
            self.store.get_all_embedding_sets(), cancel_event=cancel_event, plot_dir=plot_dir
        )
