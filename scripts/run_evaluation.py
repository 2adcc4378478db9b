"""
FAR / FRR / EER Evaluation over the Enrollment Corpus

Builds genuine and impostor similarity populations from every enrolled
identity, reports FAR and FRR at the operating threshold and estimates the
Equal Error Rate on a 0.40..0.80 threshold grid. Use it to validate or
re-derive the `matching.threshold` in config.yaml.

Usage:
    # Evaluate the configured SQLite store
    python scripts/run_evaluation.py

    # Custom threshold and sample count, reproducible sampling
    python scripts/run_evaluation.py --threshold 0.80 --impostor-samples 100 --seed 7

    # Offline corpus exported as JSON: {"<identity_id>": <embedding set>, ...}
    python scripts/run_evaluation.py --corpus-json export.json --plot-dir storage/eval

Environment:
    THRESHOLD, IMPOSTOR_SAMPLES_PER_USER override the config defaults;
    command-line flags override both.

Exit codes:
    0 on success, 1 if the corpus has fewer than 2 enrolled identities,
    130 if interrupted.
"""

import argparse
import json
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import get_config, get_storage_config, resolve_db_path
from core.enrollment_store import InMemoryEnrollmentStore, SQLiteEnrollmentStore
from core.evaluation import EvaluationConfig
from core.exceptions import EvaluationCancelledError, InsufficientDataError
from core.verification_service import FaceVerificationService

logger = logging.getLogger("run_evaluation")


def load_corpus_json(path: str) -> InMemoryEnrollmentStore:
    """Load an exported {identity_id: embedding_set} JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return InMemoryEnrollmentStore({int(k): v for k, v in data.items()})


def build_parser(defaults: EvaluationConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Estimate FAR, FRR and EER of the face match threshold",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--threshold", type=float, default=defaults.threshold,
        help=f"Operating threshold (default: {defaults.threshold})",
    )
    parser.add_argument(
        "--impostor-samples", type=int, default=defaults.impostor_samples_per_identity,
        help=f"Impostor samples per identity (default: {defaults.impostor_samples_per_identity})",
    )
    parser.add_argument(
        "--seed", type=int, default=defaults.seed,
        help="Seed for impostor sampling (default: random)",
    )
    parser.add_argument(
        "--db-path", type=str, default=None,
        help="SQLite enrollment database (default: storage.db_path from config)",
    )
    parser.add_argument(
        "--corpus-json", type=str, default=None,
        help="Evaluate an exported JSON corpus instead of the database",
    )
    parser.add_argument(
        "--plot-dir", type=str, default=None,
        help="Save score distribution and FAR/FRR plots to this directory",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Enable debug logging",
    )
    return parser


def default_evaluation_config(config: dict) -> EvaluationConfig:
    """Config file values, overridden by THRESHOLD / IMPOSTOR_SAMPLES_PER_USER."""
    section = dict(config.get("evaluation", {}))
    if "THRESHOLD" in os.environ:
        section["threshold"] = float(os.environ["THRESHOLD"])
    if "IMPOSTOR_SAMPLES_PER_USER" in os.environ:
        section["impostor_samples_per_identity"] = int(os.environ["IMPOSTOR_SAMPLES_PER_USER"])
    return EvaluationConfig.from_dict(section)


def main(argv: Optional[List[str]] = None) -> int:
    config = get_config()
    defaults = default_evaluation_config(config)
    args = build_parser(defaults).parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.corpus_json:
        store = load_corpus_json(args.corpus_json)
    else:
        db_path = args.db_path or resolve_db_path(get_storage_config())
        store = SQLiteEnrollmentStore(db_path)

    service = FaceVerificationService(store, threshold=args.threshold, evaluation_config=defaults)

    cancel_event = threading.Event()

    def request_cancel(signum, frame):
        logger.warning("Interrupt received, stopping after the current identity...")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)
    try:
        report = service.evaluate(
            threshold=args.threshold,
            impostor_samples_per_identity=args.impostor_samples,
            seed=args.seed,
            cancel_event=cancel_event,
            plot_dir=args.plot_dir,
        )
    except InsufficientDataError as e:
        print(f"Not enough users with embeddings to compute FAR/FRR: {e}", file=sys.stderr)
        return 1
    except EvaluationCancelledError:
        print("Evaluation cancelled.", file=sys.stderr)
        return 130
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        service.close()

    print(json.dumps(report.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
