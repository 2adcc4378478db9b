"""
API Layer for the Face Verification Matching Engine

This package provides a thin FastAPI transport over the core engine:
- REST endpoints for 1:1 verification and 1:N identification
- REST endpoints for enrollment and identity management
- REST endpoint for running the FAR / FRR calibration harness
- Health check

The API only maps requests onto FaceVerificationService calls and engine
errors onto HTTP status codes; all decisions are taken in `core`.
"""
