from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException

from ..core.errors import (
    CompilationError,
    LockTimeoutError,
    StepgenError,
    UnknownVariantError,
)
from ..services.compile_service import CompilationService

_STATUS = (
    (UnknownVariantError, 404),
    (CompilationError, 400),
    (LockTimeoutError, 409),
)


@lru_cache()
def get_service() -> CompilationService:
    """Process-wide service; routes receive it through ``Depends`` so tests can override it."""
    return CompilationService()


def http_error(exc: StepgenError) -> HTTPException:
    status = next((code for kind, code in _STATUS if isinstance(exc, kind)), 500)
    return HTTPException(status_code=status, detail=exc.to_dict())
