"""Tolerant parsing of the solution-generation response.

The model is asked for a JSON object but may wrap it in markdown fences,
return a different shape, or return prose. ``parse_solution`` never raises:
every branch yields a valid ``StructuredSolution`` with non-empty thoughts.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from snapsolve.schemas import StructuredSolution

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("code", "thoughts", "time_complexity", "space_complexity")
UNPARSEABLE_CODE = "// Error: Could not process the response from the AI."
NOT_AVAILABLE = "N/A"

# ```json\n{...}\n```  or  ```\n{...}\n```
_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n(?P<body>.*?)\s*```$", re.DOTALL)


class ParseKind(str, Enum):
    WELL_FORMED = "well_formed"
    UNEXPECTED_SHAPE = "unexpected_shape"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParsedSolution:
    kind: ParseKind
    solution: StructuredSolution


def strip_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, language-tagged or generic."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group("body").strip()
    if len(text) >= 6 and text.startswith("```") and text.endswith("```"):
        body = text[3:-3]
        if body.startswith("json"):
            body = body[4:]
        return body.strip()
    return text


def _as_text(value, default: str) -> str:
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _coerce_thoughts(value, response_language: str) -> list[str]:
    placeholder = f"No thoughts provided in {response_language}."
    if isinstance(value, list):
        thoughts = [_as_text(item, "") for item in value]
        thoughts = [t for t in thoughts if t]
        return thoughts or [placeholder]
    return [_as_text(value, placeholder)]


def classify_solution(raw_text: str, response_language: str = "Russian") -> ParsedSolution:
    """Parse ``raw_text`` and report which branch produced the result."""
    raw_text = raw_text or ""
    try:
        parsed = json.loads(strip_fence(raw_text))
    except (json.JSONDecodeError, TypeError, ValueError, RecursionError):
        logger.warning(
            f"Failed to parse response as JSON (language: {response_language}). "
            f"Raw content: {raw_text!r}"
        )
        return ParsedSolution(
            kind=ParseKind.UNPARSEABLE,
            solution=StructuredSolution(
                short_answer=None,
                code=UNPARSEABLE_CODE,
                thoughts=[
                    "The AI response could not be understood (expected JSON format). "
                    f"Response language set to {response_language}.",
                    "Raw AI Response:",
                    raw_text,
                ],
                time_complexity=NOT_AVAILABLE,
                space_complexity=NOT_AVAILABLE,
            ),
        )

    if not isinstance(parsed, dict) or any(f not in parsed for f in REQUIRED_FIELDS):
        logger.warning("Response JSON is missing required fields")
        return ParsedSolution(
            kind=ParseKind.UNEXPECTED_SHAPE,
            solution=StructuredSolution(
                short_answer=None,
                code=f"// AI Response (unexpected format):\n{raw_text}",
                thoughts=[
                    f"Received unexpected structure from AI (in {response_language}):",
                    raw_text,
                ],
            ),
        )

    short_answer = parsed.get("short_answer")
    return ParsedSolution(
        kind=ParseKind.WELL_FORMED,
        solution=StructuredSolution(
            short_answer=_as_text(short_answer, "") or None,
            code=_as_text(parsed.get("code"), ""),
            thoughts=_coerce_thoughts(parsed.get("thoughts"), response_language),
            time_complexity=_as_text(parsed.get("time_complexity"), NOT_AVAILABLE),
            space_complexity=_as_text(parsed.get("space_complexity"), NOT_AVAILABLE),
        ),
    )


def parse_solution(raw_text: str, response_language: str = "Russian") -> StructuredSolution:
    """Turn a raw model response into a ``StructuredSolution``. Never raises."""
    return classify_solution(raw_text, response_language).solution
