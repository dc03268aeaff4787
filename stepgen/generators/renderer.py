"""
IR primitive -> Playwright statements.

Each primitive has one ideal emission. When the target variant lacks a
capability the ideal form needs, the renderer emits a marked fallback and
records a :class:`CapabilityFallback`; it never emits code the target cannot
run.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core.errors import CapabilityFallback
from ..ir import models as ir
from .locators import escape_regex, escape_string, locator_candidates, quote, render_locator, render_value
from .variants import CAPABILITY_ALTERNATIVES, VariantContext, get_variant

logger = logging.getLogger(__name__)

BLOCKED_MARKER = "STEPGEN BLOCKED"
FALLBACK_MARKER = "STEPGEN FALLBACK"

_EPOCH_RE = re.compile(r"^\d{10,13}$")


@dataclass
class Emission:
    lines: List[str]
    warnings: List[CapabilityFallback] = field(default_factory=list)

    @property
    def code(self) -> str:
        return "\n".join(self.lines)


def _timeout_opts(timeout: Optional[int], **extra: str) -> str:
    parts = [f"{k}: {v}" for k, v in extra.items()]
    if timeout is not None:
        parts.append(f"timeout: {timeout}")
    return "{ " + ", ".join(parts) + " }" if parts else ""


def _time_literal(value: str) -> str:
    if _EPOCH_RE.match(value):
        return value
    return f"new Date({quote(value)})"


class PrimitiveRenderer:
    def __init__(self, variant: Optional[VariantContext] = None, resilient_locators: bool = False) -> None:
        self.variant = variant or get_variant()
        self.resilient_locators = resilient_locators
        self._handlers: Dict[str, Callable] = {
            "navigate": self._navigate,
            "waitForUrl": self._wait_for_url,
            "reload": lambda p: ["await page.reload();"],
            "goBack": lambda p: ["await page.goBack();"],
            "goForward": lambda p: ["await page.goForward();"],
            "click": lambda p: self._action(p, "click"),
            "doubleClick": lambda p: self._action(p, "dblclick"),
            "rightClick": lambda p: self._action(p, "click", button="'right'"),
            "fill": self._fill,
            "clear": lambda p: self._action(p, "clear"),
            "selectOption": self._select,
            "check": lambda p: self._action(p, "check"),
            "uncheck": lambda p: self._action(p, "uncheck"),
            "hover": lambda p: self._action(p, "hover"),
            "focus": lambda p: self._action(p, "focus"),
            "pressKey": self._press,
            "dismissModal": lambda p: [
                "await page.getByRole('dialog').getByRole('button', { name: /close|cancel|dismiss/i }).click();"
            ],
            "acceptAlert": lambda p: ["page.once('dialog', dialog => dialog.accept());"],
            "dismissAlert": lambda p: ["page.once('dialog', dialog => dialog.dismiss());"],
            "waitForVisible": lambda p: self._wait_state(p, "visible"),
            "waitForHidden": lambda p: self._wait_state(p, "hidden"),
            "waitForTimeout": lambda p: [f"await page.waitForTimeout({p.ms});"],
            "waitForNetworkIdle": self._network_idle,
            "expectVisible": lambda p: self._expect(p, "toBeVisible"),
            "expectHidden": lambda p: self._expect(p, "toBeHidden"),
            "expectText": self._expect_text,
            "expectUrl": self._expect_url,
            "expectTitle": lambda p: [f"await expect(page).toHaveTitle({quote(p.title)});"],
            "blocked": self._blocked,
        }

    def render(self, primitive) -> Emission:
        missing = self.variant.missing_for(primitive.type)
        if missing is not None:
            return self._fallback(primitive, missing)
        if primitive.type == "expectAriaSnapshot":
            return Emission(self._aria_snapshot(primitive))
        if primitive.type == "setClock":
            return Emission([f"await page.clock.setFixedTime({_time_literal(primitive.time)});"])
        handler = self._handlers.get(primitive.type)
        if handler is None:
            return Emission([f"// Unknown primitive type: {primitive.type}"])
        return Emission(handler(primitive))

    # locators

    def locator(self, loc: ir.LocatorSpec) -> str:
        if self.resilient_locators and self.variant.has("locator_or"):
            cands = locator_candidates(loc)
            return "page." + ".or(page.".join(cands) + ")" * (len(cands) - 1)
        return f"page.{render_locator(loc)}"

    # emitters

    def _navigate(self, p: ir.Navigate) -> List[str]:
        return [f"await page.goto({quote(p.url)});"]

    def _wait_for_url(self, p: ir.WaitForUrl) -> List[str]:
        opts = _timeout_opts(p.timeout)
        return [f"await page.waitForURL(/{escape_regex(p.pattern)}/{', ' + opts if opts else ''});"]

    def _action(self, p, method: str, **extra: str) -> List[str]:
        return [f"await {self.locator(p.locator)}.{method}({_timeout_opts(p.timeout, **extra)});"]

    def _fill(self, p: ir.Fill) -> List[str]:
        opts = _timeout_opts(p.timeout)
        return [f"await {self.locator(p.locator)}.fill({render_value(p.value)}{', ' + opts if opts else ''});"]

    def _select(self, p: ir.SelectOption) -> List[str]:
        opts = _timeout_opts(p.timeout)
        return [f"await {self.locator(p.locator)}.selectOption({quote(p.option)}{', ' + opts if opts else ''});"]

    def _press(self, p: ir.PressKey) -> List[str]:
        if p.locator is not None:
            return [f"await {self.locator(p.locator)}.press({quote(p.key)});"]
        return [f"await page.keyboard.press({quote(p.key)});"]

    def _wait_state(self, p, state: str) -> List[str]:
        return [f"await {self.locator(p.locator)}.waitFor({_timeout_opts(p.timeout, state=repr(state))});"]

    def _network_idle(self, p: ir.WaitForNetworkIdle) -> List[str]:
        opts = _timeout_opts(p.timeout)
        return [f"await page.waitForLoadState('networkidle'{', ' + opts if opts else ''});"]

    def _expect(self, p, matcher: str) -> List[str]:
        return [f"await expect({self.locator(p.locator)}).{matcher}({_timeout_opts(p.timeout)});"]

    def _expect_text(self, p: ir.ExpectText) -> List[str]:
        matcher = "toContainText" if p.contains else "toHaveText"
        opts = _timeout_opts(p.timeout)
        return [f"await expect({self.locator(p.locator)}).{matcher}({quote(p.text)}{', ' + opts if opts else ''});"]

    def _expect_url(self, p: ir.ExpectUrl) -> List[str]:
        target = quote(p.pattern) if p.exact else f"/{escape_regex(p.pattern)}/"
        return [f"await expect(page).toHaveURL({target});"]

    def _aria_snapshot(self, p: ir.ExpectAriaSnapshot) -> List[str]:
        snapshot = p.snapshot.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")
        return [f"await expect({self.locator(p.locator)}).toMatchAriaSnapshot(`{snapshot}`);"]

    def _blocked(self, p: ir.Blocked) -> List[str]:
        reason = escape_string(p.reason)
        return [
            f"// {BLOCKED_MARKER}: {reason}",
            f"// Source: {escape_string(p.source_text)}",
            f"throw new Error('{BLOCKED_MARKER}: {reason}');",
        ]

    # fallbacks

    def _fallback(self, primitive, capability: str) -> Emission:
        alternative = CAPABILITY_ALTERNATIVES.get(capability, "degraded emission")
        message = (
            f"{primitive.type} needs '{capability}', which {self.variant.name} does not support; "
            f"{alternative}"
        )
        logger.info("Fallback for %s on %s: %s", primitive.type, self.variant.name, capability)
        comment = f"// {FALLBACK_MARKER}: {message}"
        if primitive.type == "expectAriaSnapshot":
            lines = [comment, *self._expect(primitive, "toBeVisible")]
        elif primitive.type == "setClock":
            fixed = primitive.time if _EPOCH_RE.match(primitive.time) else f"{_time_literal(primitive.time)}.valueOf()"
            lines = [comment, f"await page.addInitScript((fixed) => {{ Date.now = () => fixed; }}, {fixed});"]
        else:
            lines = [comment, f"throw new Error('{FALLBACK_MARKER}: {escape_string(message)}');"]
        warning = CapabilityFallback(
            primitive_type=primitive.type,
            capability=capability,
            message=message,
            extra={"variant": self.variant.name},
        )
        return Emission(lines, [warning])
