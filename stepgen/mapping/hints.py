"""Author-supplied locator hints attached to individual steps."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..ir import models as ir

logger = logging.getLogger(__name__)

STRATEGY_HINTS = ("role", "testid", "label", "text", "css", "placeholder")
HINT_ATTRIBUTES = STRATEGY_HINTS + ("name", "exact", "timeout")


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def hint_dict(hints: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Collapse ``[{attribute, value}]`` (dicts or objects) into a dict; later entries win."""
    result: Dict[str, str] = {}
    for hint in hints or []:
        if isinstance(hint, dict):
            attribute, value = hint.get("attribute"), hint.get("value")
        else:
            attribute, value = getattr(hint, "attribute", None), getattr(hint, "value", None)
        if not attribute:
            continue
        result[str(attribute).strip().lower()] = "" if value is None else str(value)
    return result


def apply_hints(primitive, hints: Optional[Iterable[Any]]):
    """
    Return ``primitive`` with its locator/timeout overridden by the hints.

    Primitives without a locator only accept ``timeout``. Unknown attributes
    are ignored.
    """
    values = hint_dict(hints)
    if not values or primitive is None or primitive.type == "blocked":
        return primitive

    for attribute in values:
        if attribute not in HINT_ATTRIBUTES:
            logger.debug("Ignoring unknown hint attribute %r", attribute)

    update: Dict[str, Any] = {}
    locator = ir.primitive_locator(primitive)
    if locator is not None:
        strategy_hints = [a for a in STRATEGY_HINTS if a in values]
        fields = locator.model_dump()
        if strategy_hints:
            strategy = strategy_hints[0]
            fields = {"strategy": strategy, "value": values[strategy], "name": None, "exact": None}
            if strategy == "role" and locator.strategy == "role" and "name" not in values:
                fields["name"] = locator.name
            elif strategy == "role" and "name" not in values and locator.strategy in ("text", "label"):
                fields["name"] = locator.value
        if "name" in values:
            fields["name"] = values["name"]
        if "exact" in values:
            fields["exact"] = _as_bool(values["exact"])
        update["locator"] = ir.LocatorSpec(**fields)

    if "timeout" in values and "timeout" in type(primitive).model_fields:
        try:
            update["timeout"] = int(values["timeout"])
        except ValueError:
            logger.warning("Ignoring non-numeric timeout hint %r", values["timeout"])

    if not update:
        return primitive
    return primitive.model_copy(update=update)


_INLINE_HINT_RE = re.compile(r"`\(([^`]*)\)`")


def extract_inline_hints(text: str) -> Tuple[str, List[Dict[str, str]]]:
    """
    Split backtick hints such as ``Click 'Save' `(role=button, name=Save)` ``
    off the step text.

    Returns the text without hint groups and the hints in order.
    """
    hints: List[Dict[str, str]] = []
    for group in _INLINE_HINT_RE.findall(text or ""):
        for part in group.split(","):
            if "=" not in part:
                continue
            attribute, value = part.split("=", 1)
            hints.append({"attribute": attribute.strip(), "value": value.strip().strip("'\"")})
    clean = _INLINE_HINT_RE.sub(" ", text or "")
    return re.sub(r"\s+", " ", clean).strip(), hints


def format_inline_hints(values: Dict[str, str]) -> str:
    return "`(" + ", ".join(f"{k}={v}" for k, v in values.items()) + ")`"
