"""
Evaluation Module for Face Verification Threshold Calibration.

Offline batch harness that measures how well the match threshold separates
genuine attempts from impostors over the full enrollment corpus:

1. Load every identity with at least one embedding and normalize it.
2. Genuine pairs: every unordered pair (i < j) of one identity's embeddings.
3. Impostor pairs: K random samples per identity, each against a random
   embedding of a different, randomly drawn identity. A draw that lands on
   the same identity is retried a bounded number of times; when the attempts
   run out the sample is discarded, never compared against itself.
4. FRR(t) = fraction of genuine scores < t, FAR(t) = fraction of impostor
   scores >= t.
5. EER estimate: the grid threshold minimizing |FAR - FRR|. This is a grid
   approximation, not an exact crossing point.

Usage:
    from core.evaluation import EvaluationHarness, EvaluationConfig

    harness = EvaluationHarness(EvaluationConfig(threshold=0.85, seed=7))
    report = harness.run(store.get_all_embedding_sets())
    print(json.dumps(report.to_dict(), indent=2))
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Any

import numpy as np
import matplotlib.pyplot as plt
from sklearn.metrics import roc_auc_score

from core.embedding_set import EmbeddingSet, embeddings_of
from core.exceptions import EvaluationCancelledError, InsufficientDataError
from core.matching.decision_engine import validate_threshold
from core.matching.embedding_matcher import CosineSimilarityScorer
from core.matching.interfaces import SimilarityScorer
from core.matching.normalizer import EmbeddingNormalizer

logger = logging.getLogger(__name__)


@dataclass
class EvaluationConfig:
    """
    Parameters of one evaluation run.

    Attributes:
        threshold: Operating threshold FAR/FRR are reported at.
        impostor_samples_per_identity: Impostor samples drawn per identity (K).
        max_impostor_attempts: Draws allowed to find a different identity
            before a sample is discarded.
        sweep_start, sweep_stop, sweep_step: Inclusive threshold grid for
            the EER estimate.
        seed: Seed for the impostor sampler; None for a fresh random run.
    """

    threshold: float = 0.85
    impostor_samples_per_identity: int = 50
    max_impostor_attempts: int = 5
    sweep_start: float = 0.40
    sweep_stop: float = 0.80
    sweep_step: float = 0.01
    seed: Optional[int] = None

    def __post_init__(self):
        self.threshold = validate_threshold(self.threshold)
        if self.impostor_samples_per_identity < 0:
            raise ValueError("impostor_samples_per_identity must be >= 0")
        if self.max_impostor_attempts < 1:
            raise ValueError("max_impostor_attempts must be >= 1")
        if self.sweep_step <= 0:
            raise ValueError("sweep_step must be positive")
        if self.sweep_stop < self.sweep_start:
            raise ValueError("sweep_stop must not be below sweep_start")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "EvaluationConfig":
        """Build from a config.yaml `evaluation` section, ignoring unknown keys."""
        known = {k: v for k, v in config.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class ErrorRatePoint:
    """FAR and FRR at one threshold."""

    threshold: float
    far: float
    frr: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "threshold": round(self.threshold, 6),
            "FAR": round(self.far, 4),
            "FRR": round(self.frr, 4),
        }


@dataclass
class EvaluationReport:
    """Container for evaluation results."""

    users_with_embeddings: int
    genuine_pairs: int
    impostor_pairs: int
    threshold: float
    frr: Optional[float]
    far: Optional[float]
    eer_estimate: Optional[ErrorRatePoint]
    discarded_impostor_samples: int = 0
    auc: Optional[float] = None
    sweep: List[ErrorRatePoint] = field(default_factory=list, repr=False)
    genuine_scores: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)
    impostor_scores: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the report shape printed by the evaluation script."""
        return {
            "usersWithEmbeddings": self.users_with_embeddings,
            "genuinePairs": self.genuine_pairs,
            "impostorPairs": self.impostor_pairs,
            "threshold": self.threshold,
            "FRR": None if self.frr is None else round(self.frr, 4),
            "FAR": None if self.far is None else round(self.far, 4),
            "eerEstimate": self.eer_estimate.to_dict() if self.eer_estimate else None,
            "discardedImpostorSamples": self.discarded_impostor_samples,
            "auc": None if self.auc is None else round(self.auc, 4),
        }


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("Evaluation cancelled")
        raise EvaluationCancelledError("Evaluation run was cancelled")


class EvaluationHarness:
    """
    Offline FAR / FRR / EER estimation over an enrollment corpus.

    Args:
        config: EvaluationConfig (defaults if omitted).
        scorer: SimilarityScorer shared with the online engine.
        normalizer: EmbeddingNormalizer shared with the online engine.
    """

    def __init__(
        self,
        config: Optional[EvaluationConfig] = None,
        scorer: Optional[SimilarityScorer] = None,
        normalizer: Optional[EmbeddingNormalizer] = None,
    ):
        self.config = config if config is not None else EvaluationConfig()
        self.scorer = scorer if scorer is not None else CosineSimilarityScorer()
        self.normalizer = normalizer if normalizer is not None else EmbeddingNormalizer()

    # ------------------------------------------------------------------
    # Corpus and pair construction
    # ------------------------------------------------------------------

    def load_corpus(
        self,
        embedding_sets: Iterable[Tuple[int, Optional[EmbeddingSet]]],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[int, List[np.ndarray]]:
        """Normalize every embedding, keeping identities with at least one, by id."""
        corpus: Dict[int, List[np.ndarray]] = {}
        for identity_id, embedding_set in sorted(embedding_sets, key=lambda item: item[0]):
            _check_cancelled(cancel_event)
            vectors = self.normalizer.normalize_many(embeddings_of(embedding_set))
            if vectors:
                corpus[identity_id] = vectors
        return corpus

    def genuine_scores(
        self,
        corpus: Dict[int, List[np.ndarray]],
        cancel_event: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """Scores of every unordered same-identity pair."""
        scores = []
        for identity_id, vectors in corpus.items():
            _check_cancelled(cancel_event)
            for i in range(len(vectors)):
                for j in range(i + 1, len(vectors)):
                    scores.append(self.scorer.compare(vectors[i], vectors[j]))
        return np.asarray(scores, dtype=np.float64)

    def impostor_scores(
        self,
        corpus: Dict[int, List[np.ndarray]],
        rng: np.random.Generator,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[np.ndarray, int]:
        """
        Sample different-identity pairs.

        Returns:
            (scores, discarded) where discarded counts samples dropped
            because every partner draw landed on the same identity.
        """
        identity_ids = list(corpus.keys())
        scores = []
        discarded = 0

        for identity_id in identity_ids:
            _check_cancelled(cancel_event)
            own = corpus[identity_id]

            for _ in range(self.config.impostor_samples_per_identity):
                probe = own[rng.integers(len(own))]

                partner = None
                for _attempt in range(self.config.max_impostor_attempts):
                    candidate = identity_ids[rng.integers(len(identity_ids))]
                    if candidate != identity_id:
                        partner = candidate
                        break

                if partner is None:
                    discarded += 1
                    continue

                others = corpus[partner]
                scores.append(self.scorer.compare(probe, others[rng.integers(len(others))]))

        if discarded:
            logger.warning(
                f"Discarded {discarded} impostor samples after "
                f"{self.config.max_impostor_attempts} same-identity draws"
            )
        return np.asarray(scores, dtype=np.float64), discarded

    # ------------------------------------------------------------------
    # Error rates
    # ------------------------------------------------------------------

    @staticmethod
    def compute_frr(genuine: np.ndarray, threshold: float) -> Optional[float]:
        """Fraction of genuine scores below threshold; None without genuine pairs."""
        genuine = np.asarray(genuine)
        if genuine.size == 0:
            return None
        return float(np.mean(genuine < threshold))

    @staticmethod
    def compute_far(impostor: np.ndarray, threshold: float) -> Optional[float]:
        """Fraction of impostor scores at or above threshold; None without impostor pairs."""
        impostor = np.asarray(impostor)
        if impostor.size == 0:
            return None
        return float(np.mean(impostor >= threshold))

    def threshold_grid(self) -> np.ndarray:
        """Inclusive sweep grid, e.g. 0.40, 0.41, ..., 0.80."""
        cfg = self.config
        n_steps = int(round((cfg.sweep_stop - cfg.sweep_start) / cfg.sweep_step))
        grid = cfg.sweep_start + cfg.sweep_step * np.arange(n_steps + 1)
        return np.round(grid, 6)

    def sweep(self, genuine: np.ndarray, impostor: np.ndarray) -> List[ErrorRatePoint]:
        """FAR/FRR at every grid threshold; empty when either population is empty."""
        points = []
        for t in self.threshold_grid():
            far = self.compute_far(impostor, t)
            frr = self.compute_frr(genuine, t)
            if far is None or frr is None:
                continue
            points.append(ErrorRatePoint(threshold=float(t), far=far, frr=frr))
        return points

    @staticmethod
    def estimate_eer(points: List[ErrorRatePoint]) -> Optional[ErrorRatePoint]:
        """Grid point minimizing |FAR - FRR|; the lowest threshold wins ties."""
        if not points:
            return None
        return min(points, key=lambda p: abs(p.far - p.frr))

    @staticmethod
    def compute_auc(genuine: np.ndarray, impostor: np.ndarray) -> Optional[float]:
        """ROC AUC of genuine vs impostor scores; None unless both populations exist."""
        if len(genuine) == 0 or len(impostor) == 0:
            return None
        labels = np.concatenate([np.ones(len(genuine)), np.zeros(len(impostor))])
        scores = np.concatenate([genuine, impostor])
        return float(roc_auc_score(labels, scores))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        embedding_sets: Iterable[Tuple[int, Optional[EmbeddingSet]]],
        cancel_event: Optional[threading.Event] = None,
        plot_dir: Optional[str] = None,
    ) -> EvaluationReport:
        """
        Evaluate the configured threshold over a corpus.

        Args:
            embedding_sets: (identity_id, embedding_set) pairs, e.g. from
                            EnrollmentStore.get_all_embedding_sets().
            cancel_event: Checked between identity iterations.
            plot_dir: If provided, diagnostic plots are saved here.

        Returns:
            EvaluationReport.

        Raises:
            InsufficientDataError: Fewer than 2 identities have embeddings.
            EvaluationCancelledError: cancel_event was set during the run.
        """
        cfg = self.config
        corpus = self.load_corpus(embedding_sets, cancel_event)

        if len(corpus) < 2:
            raise InsufficientDataError(
                f"Need at least 2 identities with embeddings to compute FAR/FRR, "
                f"found {len(corpus)}"
            )

        logger.info(f"Evaluating {len(corpus)} identities at threshold {cfg.threshold}")

        rng = np.random.default_rng(cfg.seed)
        genuine = self.genuine_scores(corpus, cancel_event)
        impostor, discarded = self.impostor_scores(corpus, rng, cancel_event)

        if genuine.size == 0:
            logger.warning("No identity has 2+ embeddings; FRR cannot be estimated")

        points = self.sweep(genuine, impostor)
        eer = self.estimate_eer(points)

        report = EvaluationReport(
            users_with_embeddings=len(corpus),
            genuine_pairs=int(genuine.size),
            impostor_pairs=int(impostor.size),
            threshold=cfg.threshold,
            frr=self.compute_frr(genuine, cfg.threshold),
            far=self.compute_far(impostor, cfg.threshold),
            eer_estimate=eer,
            discarded_impostor_samples=discarded,
            auc=self.compute_auc(genuine, impostor),
            sweep=points,
            genuine_scores=genuine,
            impostor_scores=impostor,
        )

        logger.info(
            f"Evaluation done: genuine={report.genuine_pairs}, "
            f"impostor={report.impostor_pairs}, FAR={report.far}, FRR={report.frr}"
        )

        if plot_dir:
            self.plot(report, save_dir=plot_dir)

        return report

    # ------------------------------------------------------------------
    # Visualization
    # ------------------------------------------------------------------

    def plot(self, report: EvaluationReport, save_dir: str, show: bool = False) -> List[str]:
        """Save score distribution and FAR/FRR sweep plots; returns the written paths."""
        os.makedirs(save_dir, exist_ok=True)
        paths = [
            self._plot_score_distribution(
                report, os.path.join(save_dir, "score_distributions.png"), show
            ),
        ]
        if report.sweep:
            paths.append(
                self._plot_error_rates(report, os.path.join(save_dir, "far_frr_sweep.png"), show)
            )
        return paths

    def _plot_score_distribution(self, report: EvaluationReport, save_path: str, show: bool) -> str:
        plt.figure(figsize=(8, 5))
        if report.genuine_scores.size:
            plt.hist(report.genuine_scores, bins=25, alpha=0.7, label="Genuine", color="green")
        if report.impostor_scores.size:
            plt.hist(report.impostor_scores, bins=25, alpha=0.7, label="Impostor", color="red")
        plt.axvline(report.threshold, color="black", linestyle="--",
                    label=f"Threshold ({report.threshold:.2f})")
        if report.eer_estimate is not None:
            plt.axvline(report.eer_estimate.threshold, color="blue", linestyle=":",
                        label=f"EER estimate ({report.eer_estimate.threshold:.2f})")
        plt.xlabel("Cosine Similarity")
        plt.ylabel("Count")
        plt.title("Similarity Score Distribution")
        plt.legend()
        plt.tight_layout()
        plt.savefig(save_path, dpi=150)
        if show:
            plt.show()
        else:
            plt.close()
        return save_path

    def _plot_error_rates(self, report: EvaluationReport, save_path: str, show: bool) -> str:
        thresholds = [p.threshold for p in report.sweep]
        plt.figure(figsize=(8, 5))
        plt.plot(thresholds, [p.far for p in report.sweep], label="FAR", color="red")
        plt.plot(thresholds, [p.frr for p in report.sweep], label="FRR", color="green")
        if report.eer_estimate is not None:
            plt.axvline(report.eer_estimate.threshold, color="blue", linestyle=":",
                        label="EER estimate")
        plt.ylim(-0.02, 1.02)
        plt.xlabel("Threshold")
        plt.ylabel("Error Rate")
        plt.title("FAR / FRR Threshold Sweep")
        plt.legend()
        plt.tight_layout()
        plt.savefig(save_path, dpi=150)
        if show:
            plt.show()
        else:
            plt.close()
        return save_path
