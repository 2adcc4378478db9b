"""
Verification API Routes

- POST /verify: compare a query embedding with one identity's enrollment
- POST /identify: find the best matching identity across all enrollments

Non-matches ("nothing enrolled", "below threshold") are ordinary 200
responses with matched=false. Malformed embeddings and dimension mismatches
are rejected by the application's exception handlers.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_service
from api.schemas import IdentifyRequest, MatchResponse, VerifyRequest
from core.matching.interfaces import MatchResult
from core.verification_service import FaceVerificationService

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["verification"])


def to_response(result: MatchResult) -> MatchResponse:
    return MatchResponse(
        matched=result.matched,
        score=result.score,
        threshold=result.threshold,
        best_index=result.best_index,
        identity_id=result.identity_id,
    )


@router.post("/verify", response_model=MatchResponse)
def verify(
    request: VerifyRequest,
    service: FaceVerificationService = Depends(get_service),
):
    """
    Verify a face embedding against one enrolled identity (1:1).

    The score is the maximum similarity over all of the identity's enrolled
    templates.
    """
    result = service.verify(
        request.identity_id,
        request.embedding,
        threshold=request.threshold,
        source=request.source,
    )
    return to_response(result)


@router.post("/identify", response_model=MatchResponse)
def identify(
    request: IdentifyRequest,
    service: FaceVerificationService = Depends(get_service),
):
    """
    Identify a face embedding among all enrolled identities (1:N).

    identity_id is present only when the best score reaches the threshold.
    """
    result = service.identify(request.embedding, threshold=request.threshold)
    return to_response(result)
