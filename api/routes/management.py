"""
Identity Management API Routes

This module provides REST endpoints for managing enrolled identities:
- GET /identities: List all enrolled identities
- PUT /identities/{identity_id}/embeddings: Enroll or re-enroll an identity
- DELETE /identities/{identity_id}: Delete an enrolled identity
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_service
from api.schemas import (
    DeleteIdentityResponse,
    EnrollRequest,
    EnrollResponse,
    IdentityInfo,
    IdentityListResponse,
)
from core.verification_service import FaceVerificationService

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["identities"])


@router.get("/identities", response_model=IdentityListResponse)
def list_identities(service: FaceVerificationService = Depends(get_service)):
    """List all enrolled identities with their template counts."""
    service.ensure_ready()
    identities = service.store.list_identities()

    return IdentityListResponse(
        identities=[
            IdentityInfo(
                identity_id=i["identity_id"],
                n_embeddings=i["n_embeddings"],
                created_at=i.get("created_at"),
                updated_at=i.get("updated_at"),
            )
            for i in identities
        ],
        total=len(identities),
    )


@router.put("/identities/{identity_id}/embeddings", response_model=EnrollResponse)
def enroll_identity(
    identity_id: int,
    request: EnrollRequest,
    service: FaceVerificationService = Depends(get_service),
):
    """
    Enroll an identity, replacing any previously stored embeddings.

    Raises:
        400: Too few unique samples or malformed embeddings.
        409: The face is already registered to another identity.
    """
    embedding_set = service.enroll(identity_id, request.embeddings)

    return EnrollResponse(
        identity_id=identity_id,
        n_embeddings=len(embedding_set),
        message=f"Identity {identity_id} enrolled with {len(embedding_set)} embedding(s)",
    )


@router.delete("/identities/{identity_id}", response_model=DeleteIdentityResponse)
def delete_identity(
    identity_id: int,
    service: FaceVerificationService = Depends(get_service),
):
    """
    Delete an enrolled identity and its verification history.

    Raises:
        404: If the identity is not found.
    """
    service.ensure_ready()
    success = service.store.delete_embedding_set(identity_id)

    if not success:
        raise HTTPException(status_code=404, detail=f"Identity {identity_id} not found")

    return DeleteIdentityResponse(
        success=True,
        identity_id=identity_id,
        message=f"Identity {identity_id} deleted successfully",
    )
