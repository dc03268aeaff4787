"""
Managed blocks: regions of a generated file that regeneration may rewrite.

    // STEPGEN:BEGIN GENERATED id=test-login
    ...generated code...
    // STEPGEN:END GENERATED

Everything outside the markers belongs to the user and is kept verbatim.
Malformed markers (unclosed, nested, stray END) are reported as
:class:`MergeMarkerError` warnings and the affected lines are treated as user
code, so a broken file loses nothing on regeneration.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..core.errors import MergeMarkerError

logger = logging.getLogger(__name__)

BLOCK_START = "// STEPGEN:BEGIN GENERATED"
BLOCK_END = "// STEPGEN:END GENERATED"

_START_RE = re.compile(r"^\s*//\s*STEPGEN:BEGIN GENERATED(?:\s+id=(?P<id>\S+))?\s*$")
_END_RE = re.compile(r"^\s*//\s*STEPGEN:END GENERATED\s*$")


@dataclass
class ManagedBlock:
    content: str
    id: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    indent: str = ""


@dataclass
class ExtractResult:
    blocks: List[ManagedBlock] = field(default_factory=list)
    preserved_code: List[str] = field(default_factory=list)
    warnings: List[MergeMarkerError] = field(default_factory=list)
    # file in order: plain line lists and blocks
    segments: List[Union[List[str], ManagedBlock]] = field(default_factory=list)

    @property
    def has_blocks(self) -> bool:
        return bool(self.blocks)


def _warn(result: ExtractResult, message: str, line: int) -> None:
    logger.warning("%s (line %d)", message, line)
    result.warnings.append(MergeMarkerError(message=message, line=line))


def _keep(result: ExtractResult, lines: Sequence[str]) -> None:
    result.preserved_code.extend(lines)
    if result.segments and isinstance(result.segments[-1], list):
        result.segments[-1].extend(lines)
    else:
        result.segments.append(list(lines))


def extract_managed_blocks(code: str) -> ExtractResult:
    result = ExtractResult()
    lines = code.split("\n")

    open_lines: List[str] = []
    open_start: Optional[Tuple[int, Optional[str], str]] = None
    depth = 0
    nested = False

    for lineno, line in enumerate(lines, 1):
        start = _START_RE.match(line)
        if start:
            if open_start is not None:
                if not nested:
                    _warn(result, f"Nested managed block marker inside block starting at line {open_start[0]}", lineno)
                nested = True
                depth += 1
                open_lines.append(line)
                continue
            open_start = (lineno, start.group("id"), line[: len(line) - len(line.lstrip())])
            open_lines = [line]
            depth = 1
            nested = False
            continue

        if _END_RE.match(line):
            if open_start is None:
                _warn(result, "END marker without a matching BEGIN marker", lineno)
                _keep(result, [line])
                continue
            open_lines.append(line)
            depth -= 1
            if depth > 0:
                continue
            if nested:
                # the whole malformed region stays as user code
                _keep(result, open_lines)
            else:
                block = ManagedBlock(
                    content="\n".join(open_lines[1:-1]),
                    id=open_start[1],
                    start_line=open_start[0],
                    end_line=lineno,
                    indent=open_start[2],
                )
                result.blocks.append(block)
                result.segments.append(block)
            open_start, open_lines, nested = None, [], False
            continue

        if open_start is not None:
            open_lines.append(line)
        else:
            _keep(result, [line])

    if open_start is not None:
        _warn(result, f"Unclosed managed block starting at line {open_start[0]}", open_start[0])
        _keep(result, open_lines)

    return result


def wrap_in_block(block_id: Optional[str], content: str, indent: str = "") -> str:
    start = f"{indent}{BLOCK_START} id={block_id}" if block_id else f"{indent}{BLOCK_START}"
    body = [content] if content else []
    return "\n".join([start, *body, f"{indent}{BLOCK_END}"])


def _render_block(block: ManagedBlock) -> str:
    return wrap_in_block(block.id, block.content, block.indent)


def _join_appended(code: str, appended: List[str]) -> str:
    if not appended:
        return code
    body = "\n\n".join(appended)
    head = code.rstrip("\n")
    if not head.strip():
        return body + "\n"
    return head + "\n\n" + body + "\n"


def inject_managed_blocks(
    existing_code: str,
    new_blocks: Sequence[ManagedBlock],
) -> Tuple[str, List[MergeMarkerError]]:
    """
    Replace blocks in ``existing_code`` by id and return the merged code and
    any marker warnings.

    Blocks in the file whose id is not regenerated are kept as they are; new
    ids (and id-less new blocks) are appended at the end. A file without
    markers keeps all of its content and gets the blocks appended.
    """
    extracted = extract_managed_blocks(existing_code or "")
    replacements: Dict[str, ManagedBlock] = {b.id: b for b in new_blocks if b.id}
    used = set()

    parts: List[str] = []
    for segment in extracted.segments:
        if isinstance(segment, list):
            parts.append("\n".join(segment))
            continue
        replacement = replacements.get(segment.id) if segment.id else None
        if replacement is not None:
            used.add(segment.id)
            segment = ManagedBlock(content=replacement.content, id=segment.id, indent=segment.indent)
        parts.append(_render_block(segment))

    merged = "\n".join(parts)
    appended = [_render_block(b) for b in new_blocks if not b.id or b.id not in used]
    return _join_appended(merged, appended), extracted.warnings
