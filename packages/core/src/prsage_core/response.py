"""Validating parser for completion-service output.

The model is asked for exactly one JSON object. In practice it sometimes wraps
it in a markdown fence or surrounds it with prose, and sometimes returns
nothing usable at all. parse_model_output() handles all three cases without
raising and reports which one it hit, so callers (and tests) never have to
reason about nested exception handling.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

METRIC_DIMENSIONS = (
    "readability",
    "maintainability",
    "security",
    "performance",
    "testCoverage",
    "architecturalQuality",
)
NEUTRAL_SCORE = 5


@dataclass
class RawComment:
    """One feedback item exactly as the model reported it (after type coercion)."""

    file: str | None
    line: int | None
    type: str | None = None
    severity: str | None = None
    comment: str = ""
    suggestion: str | None = None
    category: str | None = None
    context: str | None = None


@dataclass
class ModelResponse:
    summary: str
    comments: list[RawComment] = field(default_factory=list)
    metrics: dict[str, int] = field(default_factory=dict)
    # True when this is the fixed fallback rather than real model output.
    degraded: bool = False


@dataclass
class ParseResult:
    ok: bool
    response: ModelResponse
    strategy: str  # "direct" | "extracted" | "degraded"
    error: str | None = None


def neutral_metrics() -> dict[str, int]:
    return {name: NEUTRAL_SCORE for name in METRIC_DIMENSIONS}


def degraded_response(reason: str = "AI analysis failed") -> ModelResponse:
    """The well-shaped response returned when no usable output was obtained."""
    return ModelResponse(summary=reason, comments=[], metrics=neutral_metrics(), degraded=True)


def validate_score(value, default: int = NEUTRAL_SCORE) -> int:
    """Coerce a 1–10 score; anything unparseable or out of range becomes ``default``."""
    try:
        score = int(value)
    except (TypeError, ValueError):
        return default
    if score < 1 or score > 10:
        return default
    return score


def validate_metrics(metrics) -> dict[str, int]:
    if not isinstance(metrics, dict):
        return neutral_metrics()
    return {name: validate_score(metrics.get(name)) for name in METRIC_DIMENSIONS}


def _coerce_line(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_comment(item) -> RawComment | None:
    if not isinstance(item, dict):
        return None
    return RawComment(
        file=_optional_str(item.get("file")),
        line=_coerce_line(item.get("line")),
        type=_optional_str(item.get("type")),
        severity=_optional_str(item.get("severity")),
        comment=str(item.get("comment") or ""),
        suggestion=_optional_str(item.get("suggestion")),
        category=_optional_str(item.get("category")),
        context=_optional_str(item.get("context")),
    )


def to_model_response(payload: dict) -> ModelResponse:
    comments = payload.get("comments")
    raw_comments = [c for c in map(_coerce_comment, comments if isinstance(comments, list) else []) if c]
    return ModelResponse(
        summary=str(payload.get("summary") or "AI code review completed"),
        comments=raw_comments,
        metrics=validate_metrics(payload.get("metrics")),
    )


def _strip_fence(raw: str) -> str:
    # Only the outer ```json ... ``` fence; backticks inside string values stay.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    return re.sub(r"\s*```$", "", cleaned.strip())


def _first_json_object(text: str) -> str | None:
    """Return the first brace-balanced ``{...}`` substring that decodes to a JSON object.

    Prose before the payload may contain its own braces (code like
    ``{ return; }``), so each later ``{`` is tried in turn.
    """
    start = text.find("{")
    while start != -1:
        candidate = _balanced_from(text, start)
        if candidate is not None and _load_object(candidate) is not None:
            return candidate
        start = text.find("{", start + 1)
    return None


def _balanced_from(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _load_object(text: str | None) -> dict | None:
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def parse_model_output(raw: str | None) -> ParseResult:
    """Parse completion text into a ModelResponse. Never raises."""
    if not raw or not raw.strip():
        return ParseResult(False, degraded_response("Empty AI response"), "degraded", "empty response")

    cleaned = _strip_fence(raw)
    payload = _load_object(cleaned)
    if payload is not None:
        return ParseResult(True, to_model_response(payload), "direct")

    logger.warning("AI response is not valid JSON, attempting extraction: %s", raw[:200])
    for candidate in (_first_json_object(cleaned), _greedy_object(cleaned)):
        payload = _load_object(candidate)
        if payload is not None:
            return ParseResult(True, to_model_response(payload), "extracted")

    logger.error("Could not extract a JSON object from AI response")
    return ParseResult(
        False,
        degraded_response("Failed to parse AI response"),
        "degraded",
        "no JSON object found in response",
    )


def _greedy_object(text: str) -> str | None:
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]
