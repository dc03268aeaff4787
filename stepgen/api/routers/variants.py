from __future__ import annotations

from fastapi import APIRouter

from ..dependencies import http_error
from ...core.errors import UnknownVariantError
from ...generators.variants import PROFILES, get_variant


router = APIRouter(prefix="/variants", tags=["variants"])


@router.get("")
async def list_variants() -> dict:
    return {"variants": [profile.to_dict() for profile in PROFILES.values()]}


@router.get("/{name}")
async def variant_detail(name: str) -> dict:
    try:
        return get_variant(name).to_dict()
    except UnknownVariantError as exc:
        raise http_error(exc) from exc
