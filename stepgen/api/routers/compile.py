from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..dependencies import get_service, http_error
from ...core.errors import StepgenError
from ...services.compile_service import CompilationService, JourneyInput, StepInput


router = APIRouter(tags=["compile"])


class HintModel(BaseModel):
    attribute: str
    value: str


class StepModel(BaseModel):
    text: str = Field(..., description="Natural-language step text")
    hints: List[HintModel] | None = Field(None, description="Locator/timing overrides for this step")


class CompileRequest(BaseModel):
    id: str = Field(..., description="Journey identifier, used for the file name and managed block id")
    title: str | None = Field(None, description="Human-readable test title (defaults to the id)")
    steps: List[StepModel]
    variant: str | Dict[str, Any] | None = Field(None, description="Variant profile name or capability map (snake_case or camelCase flags)")
    existingCode: str | None = Field(None, description="Previously generated file to merge into")
    strategy: str = Field("blocks", description="'blocks' to replace the managed block only, 'full' to regenerate")
    context: str | None = Field(None, description="Usage context recorded on learned patterns")
    autoFix: bool = Field(False, description="Apply high-confidence diagnostic suggestions to blocked steps")


class MapRequest(BaseModel):
    text: str
    hints: List[HintModel] | None = None
    useKnowledgeBase: bool | None = Field(None, description="Override the configured learned-pattern lookup")


class DiagnoseRequest(BaseModel):
    steps: List[str]


@router.post("/compile")
async def compile_journey(req: CompileRequest, service: CompilationService = Depends(get_service)) -> dict:
    journey = JourneyInput(
        id=req.id,
        title=req.title,
        steps=[
            StepInput(text=s.text, hints=[h.model_dump() for h in s.hints] if s.hints else None)
            for s in req.steps
        ],
        variant=req.variant,
        existing_code=req.existingCode,
        strategy=req.strategy,
        context=req.context,
        auto_fix=req.autoFix,
    )
    try:
        result = service.compile(journey)
    except StepgenError as exc:
        raise http_error(exc) from exc
    return result.to_dict()


@router.post("/map")
async def map_step(req: MapRequest, service: CompilationService = Depends(get_service)) -> dict:
    overrides: Dict[str, Any] = {}
    if req.useKnowledgeBase is not None:
        overrides["use_knowledge_base"] = req.useKnowledgeBase
    hints = [h.model_dump() for h in req.hints] if req.hints else None
    try:
        result = service.map_step(req.text, hints, **overrides)
    except StepgenError as exc:
        raise http_error(exc) from exc
    return result.to_dict()


@router.post("/diagnose")
async def diagnose(req: DiagnoseRequest, service: CompilationService = Depends(get_service)) -> dict:
    analyses = service.diagnose(req.steps)
    return {"blocked": len(analyses), "analyses": [a.to_dict() for a in analyses]}
