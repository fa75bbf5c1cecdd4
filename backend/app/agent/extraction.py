"""Recover structured architecture payloads from free-form model output.

The model is asked for a bare JSON object but routinely adds prose, wraps the
object in markdown fences, uses the marker fallback from the prompt, or leaves
trailing commas behind. Extraction walks a fixed sequence of tiers and only
fails once every tier has been tried:

1. slice between ``%%JSON_START%%`` / ``%%JSON_END%%`` when both are present
2. strip a surrounding code fence (optional language tag)
3. take the span from the first ``{`` to the last ``}``
4. ``json.loads`` with control characters allowed inside strings
5. drop trailing commas before ``}`` / ``]`` outside string literals and parse once more

A successful parse is always normalized into a ``GenerationResult`` so callers
never see raw model output.
"""
import json
import logging
import re
from typing import Any

from app.agent.artifacts import ExpectedFields, GenerationResult
from app.agent.errors import ExtractionError, ExtractionErrorKind

logger = logging.getLogger(__name__)

JSON_START_MARKER = "%%JSON_START%%"
JSON_END_MARKER = "%%JSON_END%%"
DIAGRAM_START_MARKER = "%%MERMAID_START%%"
DIAGRAM_END_MARKER = "%%MERMAID_END%%"

_LEADING_FENCE = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?\s*```\s*$")
# String literals are matched first so commas inside them are left alone.
_TRAILING_COMMA = re.compile(r'("(?:\\.|[^"\\])*")|,\s*([}\]])')
_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\r?\n(.*?)```", re.DOTALL)
_INVISIBLE_PREFIX = re.compile(r"^[\uFEFF\u200B-\u200D]+")

DEFAULT_EXPECTED_FIELDS = ExpectedFields()


def _slice_between_markers(text: str, start_marker: str, end_marker: str) -> str | None:
    start_idx = text.find(start_marker)
    if start_idx == -1:
        return None
    body_start = start_idx + len(start_marker)
    end_idx = text.find(end_marker, body_start)
    if end_idx == -1:
        return None
    return text[body_start:end_idx].strip()


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    stripped = _LEADING_FENCE.sub("", text, count=1)
    stripped = _TRAILING_FENCE.sub("", stripped, count=1)
    return stripped.strip()


def _greedy_object_span(text: str) -> str | None:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    return text[first:last + 1]


def _load_object(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate, strict=False)
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _remove_trailing_commas(candidate: str) -> str:
    return _TRAILING_COMMA.sub(lambda m: m.group(1) or m.group(2), candidate)


def _unwrap_markers(raw_text: str, start_marker: str, end_marker: str) -> str:
    text = _INVISIBLE_PREFIX.sub("", (raw_text or "").strip())
    between = _slice_between_markers(text, start_marker, end_marker)
    return text if between is None else between


def _clean_candidate(raw_text: str, start_marker: str, end_marker: str) -> str:
    return _strip_code_fences(_unwrap_markers(raw_text, start_marker, end_marker))


def extract_json_payload(raw_text: str) -> dict[str, Any]:
    """Run the tiers and return the parsed JSON object, or raise ExtractionError."""
    candidate = _clean_candidate(raw_text, JSON_START_MARKER, JSON_END_MARKER)

    span = _greedy_object_span(candidate)
    if span is None:
        logger.warning("Model output has no JSON object span (%s chars).", len(raw_text or ""))
        raise ExtractionError(ExtractionErrorKind.NO_STRUCTURED_PAYLOAD)

    payload = _load_object(span)
    if payload is not None:
        return payload

    repaired = _remove_trailing_commas(span)
    payload = _load_object(repaired)
    if payload is not None:
        logger.info("Parsed model output after removing trailing commas.")
        return payload

    logger.warning("Model output JSON span could not be parsed (%s chars).", len(span))
    raise ExtractionError(ExtractionErrorKind.NO_STRUCTURED_PAYLOAD)


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _normalize_tech_stack(value: Any) -> list[str]:
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [item for item in value if item is not None]
    else:
        return []
    cleaned = (_clean_text(item) for item in items)
    return [item for item in cleaned if item]


def normalize_payload(
    payload: dict[str, Any],
    *,
    context_text: str = "",
    expected_fields: ExpectedFields = DEFAULT_EXPECTED_FIELDS,
) -> GenerationResult:
    title = _clean_text(payload.get(expected_fields.title)) or expected_fields.default_title
    problem = _clean_text(payload.get(expected_fields.problem)) or (
        (context_text or "")[:expected_fields.problem_fallback_chars]
    )
    return GenerationResult(
        title=title,
        problem=problem,
        tech_stack=_normalize_tech_stack(payload.get(expected_fields.tech_stack)),
        diagram_script=_clean_text(payload.get(expected_fields.diagram_script)),
    )


def extract_structured(
    raw_text: str,
    expected_fields: ExpectedFields = DEFAULT_EXPECTED_FIELDS,
    *,
    context_text: str = "",
) -> GenerationResult:
    """Turn raw model text into a normalized GenerationResult.

    Raises ExtractionError(NO_STRUCTURED_PAYLOAD) when no tier yields a JSON
    object. An empty `diagram_script` is returned as-is; callers decide
    whether that is fatal.
    """
    payload = extract_json_payload(raw_text)
    return normalize_payload(payload, context_text=context_text, expected_fields=expected_fields)


def extract_diagram_script(
    raw_text: str,
    *,
    start_marker: str = DIAGRAM_START_MARKER,
    end_marker: str = DIAGRAM_END_MARKER,
) -> str:
    """Script-only variant: marker and fence tiers, no JSON parsing.

    A fenced block anywhere in the text wins over surrounding prose.
    """
    text = _unwrap_markers(raw_text, start_marker, end_marker)
    fenced = _FENCED_BLOCK.search(text)
    text = fenced.group(1).strip() if fenced else _strip_code_fences(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")
    # Some models put the language name on its own line after dropping the fence.
    if lines and lines[0].strip().lower() == "mermaid":
        lines = lines[1:]
    return "\n".join(lines).strip()
