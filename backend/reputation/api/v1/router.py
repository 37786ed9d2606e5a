"""API v1 root router."""

from __future__ import annotations

from fastapi import APIRouter

from reputation.api.v1.admin import router as admin_router
from reputation.api.v1.sources import router as sources_router


router = APIRouter()
router.include_router(sources_router, tags=["sources"])
router.include_router(admin_router, tags=["review"])
