"""
API routes aggregation.
"""

from fastapi import APIRouter

from .permissions import router as permissions_router
from .roles import router as roles_router

router = APIRouter()

router.include_router(permissions_router, prefix="/permissions", tags=["permissions"])
router.include_router(roles_router, prefix="/permissions", tags=["roles"])
