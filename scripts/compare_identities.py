"""
Compare the enrolled embeddings of two identities.

Prints the full pairwise similarity matrix, the maximum similarity and the
match decision at a few candidate thresholds. Useful when two accounts are
suspected to share a face or when a genuine user keeps failing verification.

Usage:
    python scripts/compare_identities.py 12 34
    python scripts/compare_identities.py 12 34 --thresholds 0.8 0.85 0.9
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import get_storage_config, resolve_db_path
from core.enrollment_store import SQLiteEnrollmentStore
from core.verification_service import FaceVerificationService


def format_report(comparison: dict) -> str:
    """Render a compare_identities() result as text."""
    a, b = comparison["identity_a"], comparison["identity_b"]
    matrix = comparison["matrix"]
    lines = [f"Identity {a}: {matrix.shape[0]} embeddings",
             f"Identity {b}: {matrix.shape[1]} embeddings"]

    if comparison["max_similarity"] is None:
        lines.append("One of the identities has no embeddings enrolled.")
        return "\n".join(lines)

    lines.append("")
    lines.append("Similarity matrix:")
    lines.append("       " + "  ".join(f"Emb{j:<3}" for j in range(matrix.shape[1])))
    for i, row in enumerate(matrix):
        lines.append(f"Emb{i:<3} " + "  ".join(f"{v:6.4f}" for v in row))

    lines.append("")
    lines.append(f"Maximum similarity: {comparison['max_similarity']:.4f}")
    lines.append("")
    lines.append("Threshold analysis:")
    for threshold, matched in comparison["threshold_analysis"].items():
        lines.append(f"  {threshold:.2f}: {'MATCH' if matched else 'NO MATCH'}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Compare two identities' face embeddings")
    parser.add_argument("identity_a", type=int, help="First identity id")
    parser.add_argument("identity_b", type=int, help="Second identity id")
    parser.add_argument(
        "--thresholds", type=float, nargs="+", default=None,
        help="Thresholds to analyse (default: 0.85 0.90 0.92 0.95)",
    )
    parser.add_argument(
        "--db-path", type=str, default=None,
        help="SQLite enrollment database (default: storage.db_path from config)",
    )
    args = parser.parse_args(argv)

    db_path = args.db_path or resolve_db_path(get_storage_config())
    service = FaceVerificationService(SQLiteEnrollmentStore(db_path))
    try:
        comparison = service.compare_identities(
            args.identity_a, args.identity_b, thresholds=args.thresholds
        )
    finally:
        service.close()

    print(format_report(comparison))
    return 0 if comparison["max_similarity"] is not None else 1


if __name__ == "__main__":
    sys.exit(main())
