"""
Pydantic Schemas for API Request/Response Models

This module defines the data models used by the verification API.

These schemas provide:
- Type validation
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


# ============================================================
# Verification Schemas
# ============================================================

class VerifyRequest(BaseModel):
    """Request body for POST /verify (1:1 verification)."""
    identity_id: int = Field(..., description="Identity to verify against")
    embedding: List[float] = Field(..., description="Query face embedding")
    threshold: Optional[float] = Field(
        None, ge=-1.0, le=1.0, description="Override of the configured threshold"
    )
    source: Literal["login", "vote", "other"] = Field(
        "login", description="Where the attempt came from"
    )


class IdentifyRequest(BaseModel):
    """Request body for POST /identify (1:N identification)."""
    embedding: List[float] = Field(..., description="Query face embedding")
    threshold: Optional[float] = Field(
        None, ge=-1.0, le=1.0, description="Override of the configured threshold"
    )


class MatchResponse(BaseModel):
    """Match decision for verify and identify."""
    matched: bool = Field(..., description="Whether the score reached the threshold")
    score: float = Field(..., description="Best cosine similarity in [-1, 1]")
    threshold: float = Field(..., description="Threshold the decision was taken with")
    best_index: Optional[int] = Field(None, description="Index of the best enrolled template")
    identity_id: Optional[int] = Field(None, description="Matched identity (identify only)")


# ============================================================
# Enrollment Schemas
# ============================================================

class EnrollRequest(BaseModel):
    """Request body for PUT /identities/{identity_id}/embeddings."""
    embeddings: List[List[float]] = Field(
        ..., min_length=1, description="Face embeddings captured during enrollment"
    )


class EnrollResponse(BaseModel):
    """Result of an enrollment."""
    identity_id: int = Field(..., description="Enrolled identity")
    n_embeddings: int = Field(..., description="Unique embeddings stored")
    message: str = Field(..., description="Status message")


class IdentityInfo(BaseModel):
    """Enrolled identity summary."""
    identity_id: int = Field(..., description="Identity identifier")
    n_embeddings: int = Field(..., description="Number of enrolled embeddings")
    created_at: Optional[str] = Field(None, description="Timestamp of first enrollment")
    updated_at: Optional[str] = Field(None, description="Timestamp of last re-enrollment")


class IdentityListResponse(BaseModel):
    """Response containing list of enrolled identities."""
    identities: List[IdentityInfo] = Field(default_factory=list)
    total: int = Field(0, description="Total number of enrolled identities")


class DeleteIdentityResponse(BaseModel):
    """Response from identity deletion."""
    success: bool = Field(..., description="Whether deletion was successful")
    identity_id: int = Field(..., description="ID of deleted identity")
    message: str = Field(..., description="Status message")


# ============================================================
# Evaluation Schemas
# ============================================================

class EvaluateRequest(BaseModel):
    """Request body for POST /evaluate."""
    threshold: Optional[float] = Field(None, ge=-1.0, le=1.0)
    impostor_samples_per_identity: Optional[int] = Field(None, ge=0)
    seed: Optional[int] = Field(None, description="Seed for reproducible impostor sampling")


class ErrorRatePointSchema(BaseModel):
    threshold: float
    FAR: float
    FRR: float


class EvaluationReportResponse(BaseModel):
    """FAR / FRR / EER report."""
    usersWithEmbeddings: int
    genuinePairs: int
    impostorPairs: int
    threshold: float
    FRR: Optional[float] = None
    FAR: Optional[float] = None
    eerEstimate: Optional[ErrorRatePointSchema] = None
    discardedImpostorSamples: int = 0
    auc: Optional[float] = None


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="Overall status: 'healthy' or 'unhealthy'")
    store_ready: bool = Field(..., description="Whether the enrollment store is open")
    enrolled_identities: int = Field(..., description="Number of enrolled identities")
    threshold: float = Field(..., description="Configured decision threshold")
