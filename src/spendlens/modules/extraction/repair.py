from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from spendlens.core.logging import get_logger, log_event

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?")

# Top-level fields that follow "items" in the response shape; lost when the
# model runs out of tokens mid-array.
_TRAILING_FIELDS: tuple[str, ...] = ("subtotal", "discounts", "fees", "tip", "itemsTotal")


@dataclass
class _ScanResult:
    open_stack: list[str] = field(default_factory=list)
    # (safe cut offset, containers still open at that offset). Safe cuts follow a
    # closed object, an opened array, a closed top-level array, or precede a
    # top-level comma.
    boundaries: list[tuple[int, tuple[str, ...]]] = field(default_factory=list)


def _scan(text: str) -> _ScanResult:
    result = _ScanResult()
    stack: list[str] = []
    in_string = False
    escaped = False
    for idx, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
            if ch == "[":
                result.boundaries.append((idx + 1, tuple(stack)))
        elif ch in "}]":
            if stack:
                stack.pop()
            if ch == "}" or len(stack) == 1:
                result.boundaries.append((idx + 1, tuple(stack)))
        elif ch == "," and len(stack) == 1:
            # Every top-level value before this comma is complete.
            result.boundaries.append((idx, tuple(stack)))
    result.open_stack = stack
    return result


def _closing_suffix(text: str, open_stack: tuple[str, ...]) -> str:
    parts: list[str] = []
    body = text
    for depth in range(len(open_stack) - 1, -1, -1):
        if open_stack[depth] == "[":
            parts.append("]")
            body += "]"
            continue
        if depth == 0:
            missing = [
                name for name in _TRAILING_FIELDS if not re.search(rf'"{name}"\s*:', body)
            ]
            if missing:
                sep = "" if body.rstrip().endswith("{") else ", "
                parts.append(sep + ", ".join(f'"{name}": null' for name in missing))
        parts.append("}")
        body += "}"
    return "".join(parts)


def repair_response(raw: str) -> str:
    """
    Best-effort cleanup of a model response before decoding.

    Strips Markdown fences and leading prose, and closes a response that was cut
    off by the token limit at the last fully closed nested object. Never raises;
    an unrepairable text is returned as-is for the decoder to reject.
    """
    text = _FENCE_RE.sub("", raw or "").strip()
    start = text.find("{")
    if start < 0:
        return text
    text = text[start:]

    scan = _scan(text)
    if text.endswith("}") and not scan.open_stack:
        return text

    if not scan.boundaries:
        log_event(
            logger,
            "extraction.repair.unrecoverable",
            level=logging.WARNING,
            response_chars=len(text),
        )
        return text

    cut, open_stack = scan.boundaries[-1]
    repaired = text[:cut] + _closing_suffix(text[:cut], open_stack)
    log_event(
        logger,
        "extraction.repair.truncated",
        level=logging.WARNING,
        response_chars=len(text),
        kept_chars=cut,
        closed_containers=len(open_stack),
    )
    return repaired
