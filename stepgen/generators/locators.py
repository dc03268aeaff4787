"""Locator and value rendering: IR locator specs to Playwright expressions."""
from __future__ import annotations

import re
from typing import List, Optional

from ..ir.models import LocatorSpec, ValueSpec


def escape_string(text: str) -> str:
    """Escape text for a single-quoted JavaScript string literal."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def quote(text: str) -> str:
    return f"'{escape_string(text)}'"


def escape_regex(text: str) -> str:
    """Escape text for a JavaScript regex literal body."""
    return re.sub(r"[.*+?^${}()|\[\]\\/]", lambda m: "\\" + m.group(0), text)


def _options(name: Optional[str], exact: Optional[bool]) -> str:
    parts: List[str] = []
    if name:
        parts.append(f"name: {quote(name)}")
    if exact is not None:
        parts.append(f"exact: {'true' if exact else 'false'}")
    return ", { " + ", ".join(parts) + " }" if parts else ""


def render_locator(loc: LocatorSpec) -> str:
    """
    Convert a locator description into a Playwright locator call, e.g.
    ``getByRole('button', { name: 'Submit' })``.

    The result has no receiver; callers prefix ``page.``.
    """
    strategy = loc.strategy
    if strategy == "role":
        return f"getByRole({quote(loc.value)}{_options(loc.name, loc.exact)})"
    if strategy == "label":
        return f"getByLabel({quote(loc.value)}{_options(None, loc.exact)})"
    if strategy == "placeholder":
        return f"getByPlaceholder({quote(loc.value)}{_options(None, loc.exact)})"
    if strategy == "text":
        return f"getByText({quote(loc.value)}{_options(None, loc.exact)})"
    if strategy == "testid":
        return f"getByTestId({quote(loc.value)})"
    return f"locator({quote(loc.value)})"


def render_value(value: ValueSpec) -> str:
    if value.kind == "actor":
        return f"actor.{value.value}"
    if value.kind == "testData":
        return f"testData.{value.value}"
    if value.kind == "generated":
        return "`" + value.value.replace("`", "\\`") + "`"
    return quote(value.value)


def locator_candidates(loc: LocatorSpec) -> List[str]:
    """
    Alternative locator expressions for the same target, most specific first.
    Used when the target runtime can combine them with ``.or()``.
    """
    cands: List[str] = [render_locator(loc)]
    label = loc.name or loc.value
    if loc.strategy == "role" and loc.name:
        cands.append(render_locator(LocatorSpec(strategy="text", value=loc.name, exact=True)))
    elif loc.strategy == "label":
        cands.append(render_locator(LocatorSpec(strategy="placeholder", value=label)))
    elif loc.strategy == "testid":
        cands.append(render_locator(LocatorSpec(strategy="label", value=label)))

    seen = set()
    uniq: List[str] = []
    for x in cands:
        if x not in seen:
            uniq.append(x)
            seen.add(x)
    return uniq
