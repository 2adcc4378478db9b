"""
API Routes Package

This package contains route handlers organized by feature:
- verification.py: 1:1 verification and 1:N identification
- management.py: Enrollment and identity management
- evaluation.py: Threshold calibration report
"""

from api.routes.verification import router as verification_router
from api.routes.management import router as management_router
from api.routes.evaluation import router as evaluation_router

__all__ = [
    "verification_router",
    "management_router",
    "evaluation_router",
]
