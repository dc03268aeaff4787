"""Exception types shared across the compilation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class StepgenError(RuntimeError):
    """Base class for failures that abort a compilation run."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class AmbiguousCatalogError(StepgenError):
    """Raised when two core rules overlap without a priority ordering."""

    def __init__(self, conflicts: List[tuple]) -> None:
        pairs = ", ".join(f"{a} <-> {b}" for a, b in conflicts)
        super().__init__(
            f"Ambiguous core patterns (same category and priority, overlapping prefix): {pairs}",
            details={"conflicts": [list(pair) for pair in conflicts]},
        )
        self.conflicts = conflicts


class GlossaryError(StepgenError):
    """Raised when a glossary file cannot be parsed."""


class CorruptKnowledgeBaseError(StepgenError):
    """Raised by the knowledge store when persisted state cannot be read."""


class LockTimeoutError(StepgenError):
    """Raised when the knowledge base write lock cannot be acquired in time."""


class CompilationError(StepgenError):
    """Raised when a journey cannot be compiled at all (bad input, not bad steps)."""


@dataclass
class MergeMarkerError:
    """Malformed managed-block markers found in a regeneration target.

    This is reported, never raised: the affected region is kept verbatim.
    """

    message: str
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "merge-marker", "message": self.message, "line": self.line}


@dataclass
class CapabilityFallback:
    """A primitive was emitted in degraded form because the target lacks a capability."""

    primitive_type: str
    capability: str
    message: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": "unsupported-capability",
            "primitiveType": self.primitive_type,
            "capability": self.capability,
            "message": self.message,
        }


class UnknownVariantError(StepgenError):
    """Raised when a variant profile name is not known."""
