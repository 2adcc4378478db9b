"""
Evaluation API Route

POST /evaluate runs the FAR / FRR / EER harness over the current enrollment
corpus and returns the report. Intended for administrators calibrating the
threshold; it is a batch job and can take a while on large corpora.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_service
from api.schemas import EvaluateRequest, EvaluationReportResponse
from core.verification_service import FaceVerificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["evaluation"])


@router.post("/evaluate", response_model=EvaluationReportResponse)
def evaluate(
    request: EvaluateRequest,
    service: FaceVerificationService = Depends(get_service),
):
    """
    Estimate FAR and FRR at a threshold and the grid EER.

    Raises:
        422: Fewer than 2 identities have embeddings.
    """
    report = service.evaluate(
        threshold=request.threshold,
        impostor_samples_per_identity=request.impostor_samples_per_identity,
        seed=request.seed,
    )
    logger.info(f"Evaluation report: {report.to_dict()}")
    return EvaluationReportResponse(**report.to_dict())
