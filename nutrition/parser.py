"""
Defensive parsing of vision model output.

A language model is not a guaranteed JSON emitter, so parsing is split
into three steps that each fail independently:

  extract_json_text  → isolate the payload (delimiters, code fences)
  decode_json        → strict JSON decode
  validate_analysis  → required keys + defaults → AnalysisResult

parse_analysis() chains them and never raises; it returns a
ParsedAnalysis whose ok flag tells the caller which path was taken.
"""
import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from nutrition.models import AnalysisResult, ParsedAnalysis
from nutrition.prompts import JSON_START, JSON_END

logger = logging.getLogger(__name__)

_DELIMITED = re.compile(
    re.escape(JSON_START) + r"(.*?)" + re.escape(JSON_END),
    re.DOTALL,
)
_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


class AnalysisParseError(ValueError):
    """Model output could not be turned into an AnalysisResult."""
    pass


def extract_json_text(content: str) -> str:
    """
    Pull the JSON payload out of raw model content.

    Prefers text between <JSON_START>/<JSON_END>; falls back to stripping
    a markdown code fence; otherwise returns the stripped content as is.
    """
    match = _DELIMITED.search(content)
    if match:
        return match.group(1).strip()

    cleaned = content.strip()
    fenced = _CODE_FENCE.match(cleaned)
    if fenced:
        return fenced.group(1).strip()
    return cleaned


def decode_json(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise AnalysisParseError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisParseError(f"expected JSON object, got {type(data).__name__}")
    return data


def _unwrap(data: Dict[str, Any]) -> Dict[str, Any]:
    """Some deployments nest the payload under a "data" key."""
    inner = data.get("data")
    if "containsFood" not in data and "error" not in data and isinstance(inner, dict):
        return inner
    return data


def validate_analysis(data: Dict[str, Any]) -> AnalysisResult:
    """
    Check required keys and build an AnalysisResult.

    Raises:
        AnalysisParseError: if required keys are missing or mistyped
    """
    data = _unwrap(data)

    if data.get("error"):
        try:
            return AnalysisResult.failed(str(data["error"]), data.get("message"))
        except ValidationError as e:
            raise AnalysisParseError(f"malformed error payload: {e.error_count()} error(s)") from e

    if "containsFood" not in data:
        raise AnalysisParseError("missing key: containsFood")
    if not isinstance(data["containsFood"], bool):
        raise AnalysisParseError("containsFood is not a boolean")

    if not data["containsFood"]:
        return AnalysisResult.no_food()

    for key in ("items", "totalCalories"):
        if key not in data:
            raise AnalysisParseError(f"missing key: {key}")
    if not isinstance(data["items"], list):
        raise AnalysisParseError("items is not a list")

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise AnalysisParseError(f"schema mismatch: {e.error_count()} error(s)") from e


def parse_analysis(content: Optional[str]) -> ParsedAnalysis:
    """
    Parse raw model content into a ParsedAnalysis. Never raises.

    Pure function of its input: the same text always yields the same result.
    """
    if not content or not content.strip():
        logger.warning("[PARSE] Empty model content")
        return ParsedAnalysis(ok=False, result=AnalysisResult.no_food(), reason="empty content")

    try:
        payload = extract_json_text(content)
        result = validate_analysis(decode_json(payload))
    except AnalysisParseError as e:
        logger.warning("[PARSE] Degraded to no-food result: %s", e)
        return ParsedAnalysis(ok=False, result=AnalysisResult.no_food(), reason=str(e))

    return ParsedAnalysis(ok=True, result=result)
