"""
Request Dependencies

The verification service is created once per application and kept on
`app.state`; route handlers receive it through FastAPI dependency injection.
"""

from fastapi import Request

from core.verification_service import FaceVerificationService


def get_service(request: Request) -> FaceVerificationService:
    """Return the application's FaceVerificationService."""
    return request.app.state.service
