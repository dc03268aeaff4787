"""
Playwright test file generation from mapped primitives.

Two regeneration strategies:

* ``full``: the whole file is rebuilt from the template.
* ``blocks``: only the managed block ``test-<id>`` is replaced inside the
  previous file; everything else is kept verbatim.

Output depends only on the inputs (no timestamps), so regenerating an
unchanged journey yields identical text.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import CompilationError
from .locators import escape_string
from .managed_blocks import ManagedBlock, inject_managed_blocks, wrap_in_block
from .renderer import PrimitiveRenderer
from .variants import VariantContext, get_variant

logger = logging.getLogger(__name__)

STRATEGIES = ("blocks", "full")

_PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")

FILE_TEMPLATE = """\
import { test, expect } from '@playwright/test';

// Generated by stepgen from journey {{TEST_ID}} (variant {{VARIANT}}).
// Code between STEPGEN markers is rewritten on regeneration.

{{TEST_BLOCK}}
"""

TEST_TEMPLATE = """\
test.describe('{{TITLE}}', () => {
  test('{{TEST_ID}}: {{TITLE}}', async ({ {{FIXTURES}} }) => {
{{STEPS}}
  });
});"""


@dataclass
class RenderResult:
    code: str
    filename: str
    warnings: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "filename": self.filename,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def fill_template(template: str, values: Dict[str, str]) -> str:
    """Substitute every placeholder in one pass; substituted text is never rescanned."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def comment_text(text: str) -> str:
    """Collapse line breaks so text stays inside a single line comment."""
    return " ".join(text.split())


def to_file_slug(text: str) -> str:
    text = re.sub(r"[^\w\s-]", "", text).strip().lower()
    return re.sub(r"[-_\s]+", "-", text) or "journey"


def block_id_for(test_id: str) -> str:
    return f"test-{to_file_slug(test_id)}"


def _fixtures(primitives: Sequence[Any]) -> str:
    names = ["page"]
    kinds = {p.value.kind for p in primitives if p.type == "fill"}
    if "actor" in kinds:
        names.append("actor")
    if "testData" in kinds:
        names.append("testData")
    return ", ".join(names)


class TestCodeGenerator:
    __test__ = False  # not a pytest class

    def __init__(self, indent: str = "    ", resilient_locators: bool = False) -> None:
        self.indent = indent
        self.resilient_locators = resilient_locators

    def render_steps(
        self,
        primitives: Sequence[Any],
        variant: VariantContext,
        step_texts: Optional[Sequence[str]] = None,
    ):
        renderer = PrimitiveRenderer(variant, resilient_locators=self.resilient_locators)
        lines: List[str] = []
        warnings = []
        for index, primitive in enumerate(primitives):
            if step_texts is not None and index < len(step_texts):
                lines.append(f"{self.indent}// Step {index + 1}: {escape_string(step_texts[index])}")
            emission = renderer.render(primitive)
            lines.extend(f"{self.indent}{line}" for line in emission.lines)
            warnings.extend(emission.warnings)
        return lines, warnings

    def render_test(
        self,
        primitives: Sequence[Any],
        variant: VariantContext,
        test_id: str,
        title: str,
        step_texts: Optional[Sequence[str]] = None,
    ):
        lines, warnings = self.render_steps(primitives, variant, step_texts)
        body = "\n".join(lines) if lines else f"{self.indent}// No steps"
        code = fill_template(TEST_TEMPLATE, {
            "TITLE": escape_string(title),
            "TEST_ID": escape_string(test_id),
            "FIXTURES": _fixtures(primitives),
            "STEPS": body,
        })
        return code, warnings

    def render(
        self,
        primitives: Sequence[Any],
        variant: Optional[VariantContext] = None,
        merge_target: Optional[str] = None,
        strategy: str = "blocks",
        test_id: str = "journey",
        title: Optional[str] = None,
        step_texts: Optional[Sequence[str]] = None,
    ) -> RenderResult:
        if strategy not in STRATEGIES:
            raise CompilationError(f"Unknown regeneration strategy '{strategy}'", details={"strategies": STRATEGIES})
        variant = variant or get_variant()
        title = title or test_id
        block_id = block_id_for(test_id)
        test_code, warnings = self.render_test(primitives, variant, test_id, title, step_texts)

        if strategy == "blocks" and merge_target and merge_target.strip():
            code, marker_warnings = inject_managed_blocks(
                merge_target, [ManagedBlock(id=block_id, content=test_code)]
            )
            warnings.extend(marker_warnings)
            logger.info("Merged block %s into existing file (%d marker warnings)", block_id, len(marker_warnings))
        else:
            code = fill_template(FILE_TEMPLATE, {
                "TEST_ID": comment_text(test_id),
                "VARIANT": comment_text(variant.name),
                "TEST_BLOCK": wrap_in_block(block_id, test_code),
            })

        return RenderResult(code=code, filename=f"{to_file_slug(test_id)}.spec.ts", warnings=warnings)
