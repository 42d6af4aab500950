"""Parsing of provider text into an AnalysisResult.

Providers are asked for a fenced JSON block. The fenced block is tried
first; a greedy first-brace-to-last-brace match is the last resort. The
parsed object must carry summary, confidence and recommendations.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from taxdocs.analysis.schema import AnalysisResult

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("summary", "confidence", "recommendations")

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_GREEDY_JSON = re.compile(r"\{[\s\S]*\}")

DEGRADED_SUMMARY = "Analysis completed with partial result"
DEGRADED_CONFIDENCE = 0.5


class ResponseFormatError(ValueError):
    """Provider text does not contain the expected JSON object."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Locate and decode the JSON object in a provider response.

    Raises:
        ResponseFormatError: No decodable JSON object found
    """
    candidates = [m.group(1) for m in _FENCED_JSON.finditer(text)]
    greedy = _GREEDY_JSON.search(text)
    if greedy:
        candidates.append(greedy.group(0))
    if not candidates:
        raise ResponseFormatError("No valid JSON found in response")

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ResponseFormatError(f"Invalid JSON in response: {last_error}")


def parse_analysis_response(text: str) -> AnalysisResult:
    """Turn provider text into a validated AnalysisResult.

    Never raises: unusable responses yield a degraded result with
    confidence 0.5 and the reason in parse_error.
    """
    try:
        parsed = extract_json_object(text)
        missing = [name for name in REQUIRED_FIELDS if parsed.get(name) in (None, "")]
        if missing:
            raise ResponseFormatError(f"Required field missing: {', '.join(missing)}")
        return AnalysisResult(
            summary=str(parsed["summary"]),
            confidence=parsed["confidence"],
            recommendations=parsed["recommendations"],
            risks=parsed.get("risks"),
            optimizations=parsed.get("optimizations"),
        )
    except (ResponseFormatError, ValidationError, TypeError) as e:
        logger.warning(f"Unusable analysis response: {e}")
        return degraded_result(str(e))


def degraded_result(reason: str) -> AnalysisResult:
    """Valid result for a response that could not be parsed."""
    return AnalysisResult(
        summary=DEGRADED_SUMMARY,
        confidence=DEGRADED_CONFIDENCE,
        recommendations=["Manual document verification recommended"],
        risks=["Unable to determine specific risks"],
        optimizations=[],
        parse_error=reason,
    )
