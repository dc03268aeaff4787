from __future__ import annotations

import os
from fastapi import APIRouter, Depends

from ..dependencies import get_service
from ...services.compile_service import CompilationService


router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthcheck(service: CompilationService = Depends(get_service)):
    return {
        "status": "ok",
        "service": "stepgen",
        "version": os.getenv("APP_VERSION", "dev"),
        "catalogVersion": service.catalog.version,
        "knowledgeBase": "ok" if service.knowledge.available else "degraded",
    }
