"""Parsing and validation of raw model output into grading results."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from pydantic import TypeAdapter, ValidationError

from .errors import ParseError
from .schema import GradingResponse, GradingResult

logger = logging.getLogger(__name__)

_OPENING_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE_RE = re.compile(r"\n?```$")

_RESULTS_ADAPTER = TypeAdapter(List[GradingResult])


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence and whitespace."""
    stripped = text.strip()
    stripped = _OPENING_FENCE_RE.sub("", stripped, count=1)
    stripped = _CLOSING_FENCE_RE.sub("", stripped, count=1)
    return stripped.strip()


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def _log_order_mismatch(results: GradingResponse) -> None:
    by_number = sorted(results, key=lambda r: r.line_number)
    by_position = sorted(results, key=lambda r: (r.bounding_box[0], r.bounding_box[1]))
    if [r.line_number for r in by_number] != [r.line_number for r in by_position]:
        logger.debug("Line numbers disagree with vertical box order; keeping model order")


def parse_grading_response(raw_text: str) -> GradingResponse:
    """Parse model output into an ordered tuple of results.

    Raises:
        ParseError: the text is not a JSON array of valid grading results.
    """
    cleaned = strip_code_fences(raw_text or "")
    if not cleaned:
        logger.error("Empty grading response from model")
        raise ParseError("Empty response", raw_text=raw_text or "")

    try:
        parsed = _RESULTS_ADAPTER.validate_json(cleaned, strict=True)
    except ValidationError as exc:
        reason = _describe(exc)
        logger.error("JSON Parse Error (%s): %s", reason, raw_text)
        raise ParseError(reason, raw_text=raw_text) from exc

    results = tuple(parsed)
    _log_order_mismatch(results)
    return results


def summarize(results: Iterable[GradingResult]) -> Dict[str, int]:
    items = list(results)
    return {
        "correct": sum(1 for r in items if r.is_correct),
        "total": len(items),
    }
