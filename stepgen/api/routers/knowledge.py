from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, ValidationError

from ..dependencies import get_service, http_error
from ...core.errors import CompilationError, StepgenError
from ...services.compile_service import CompilationService


router = APIRouter(prefix="/knowledge", tags=["knowledge"])


class FeedbackRequest(BaseModel):
    text: str = Field(..., description="Step text as written in the journey")
    success: bool = Field(..., description="Whether the generated step passed at runtime")
    primitive: Dict[str, Any] | None = Field(None, description="IR primitive that was executed (learned on success)")
    context: str | None = Field(None, description="Journey or suite the outcome came from")
    patternId: str | None = Field(None, description="Learned pattern that produced the step, if known")


@router.post("/feedback")
async def record_feedback(req: FeedbackRequest, service: CompilationService = Depends(get_service)) -> dict:
    try:
        event = service.record_feedback(
            req.text,
            success=req.success,
            primitive=req.primitive,
            context=req.context,
            pattern_id=req.patternId,
        )
    except ValidationError as exc:
        raise http_error(CompilationError(f"Invalid primitive: {exc.errors()[0]['msg']}")) from exc
    except StepgenError as exc:
        raise http_error(exc) from exc
    return {
        "recorded": event is not None,
        "event": event.to_dict() if event is not None else None,
        "knowledgeBase": "ok" if service.knowledge.available else "degraded",
    }


@router.post("/maintenance")
async def run_maintenance(service: CompilationService = Depends(get_service)) -> dict:
    try:
        report = service.run_maintenance()
    except StepgenError as exc:
        raise http_error(exc) from exc
    return report.to_dict()


@router.get("/stats")
async def knowledge_stats(service: CompilationService = Depends(get_service)) -> dict:
    return {
        "knowledge": service.knowledge.stats(),
        "catalog": service.catalog.stats(),
    }


@router.get("/promotion-report")
async def promotion_report(service: CompilationService = Depends(get_service)) -> dict:
    return service.knowledge.promotion_report()
