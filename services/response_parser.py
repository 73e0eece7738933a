"""Assessment reply parsing — structured feedback out of free-form model text.

The model is asked to answer with one JSON object holding ``chainOfThought``
and ``feedback``, but its reply is untrusted: the object may be wrapped in
prose or a code fence, truncated, or missing entirely. Parsing is total.
The outcome is always one of

- :class:`ParsedFeedback` — the model's feedback and trace, verbatim;
- :class:`FallbackFeedback` — the fixed low-confidence feedback plus the
  reason the reply could not be used.

Feedback is never rewritten here. :func:`feedback_conforms` reports whether
parsed feedback matches the requested shape and ranges so callers can flag
it for review.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from models.assessment import AssessmentFeedback, ReasoningStep
from models.rubric import CRITERION_MAX_SCORE, CRITERION_MIN_SCORE, Criterion

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 50
FALLBACK_CRITERION_SCORE = 2

FallbackReason = Literal["no_json_block", "decode_error", "invalid_envelope"]


class ParsedFeedback(BaseModel):
    kind: Literal["parsed"] = "parsed"
    feedback: dict[str, Any]
    reasoning: list[Any] = Field(default_factory=list)


class FallbackFeedback(BaseModel):
    kind: Literal["fallback"] = "fallback"
    reason: FallbackReason
    feedback: dict[str, Any]
    reasoning: list[Any]


ParseOutcome = Union[ParsedFeedback, FallbackFeedback]


class _Envelope(BaseModel):
    """Shape the reply must have to be usable."""

    model_config = ConfigDict(extra="allow")

    feedback: dict[str, Any]
    chainOfThought: list[Any] | None = None


def fallback_feedback() -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """The fixed feedback and trace used when a reply cannot be decoded.

    A fresh object is built on every call so callers may mutate it.
    """
    feedback = {
        "overallScore": FALLBACK_SCORE,
        "criteriaScores": {c.value: FALLBACK_CRITERION_SCORE for c in Criterion},
        "strengths": ["Attempted to solve the problem"],
        "improvements": ["AI evaluation failed - teacher review needed"],
        "detailedFeedback": (
            "This response requires manual teacher evaluation due to processing error."
        ),
        "nextSteps": ["Please consult with your teacher for detailed feedback"],
    }
    reasoning = [{
        "step": 1,
        "reasoning": "AI processing failed",
        "finding": "Manual evaluation required",
        "confidence": 0.0,
    }]
    return feedback, reasoning


def find_json_block(text: str) -> str | None:
    """Return the first balanced ``{ ... }`` region of *text*, or None.

    Braces inside JSON strings (including escaped quotes) do not count
    towards nesting. An unterminated object yields None.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape_next:
            escape_next = False
            continue

        if ch == "\\":
            if in_string:
                escape_next = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def _fix_invalid_json_escapes(s: str) -> str:
    r"""Double lone backslashes that are not JSON escapes (LaTeX like ``\pi``)."""
    placeholder = "\x00\x01"
    s = s.replace("\\\\", placeholder)
    s = re.sub(r'\\(?!["\\/bfnrtu])', r"\\\\", s)
    return s.replace(placeholder, "\\\\")


def _decode(block: str) -> Any:
    try:
        return json.loads(block)
    except json.JSONDecodeError:
        pass
    # Retry with invalid escape fix
    return json.loads(_fix_invalid_json_escapes(block))


def _fallback(reason: FallbackReason) -> FallbackFeedback:
    feedback, reasoning = fallback_feedback()
    return FallbackFeedback(reason=reason, feedback=feedback, reasoning=reasoning)


def parse_assessment_response(text: str | None) -> ParseOutcome:
    """Turn a raw model reply into feedback. Never raises."""
    block = find_json_block(text or "")
    if block is None:
        logger.warning("No JSON block in assessment reply (len=%d)", len(text or ""))
        return _fallback("no_json_block")

    try:
        data = _decode(block)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.warning("Malformed JSON in assessment reply: %s", e)
        return _fallback("decode_error")

    try:
        envelope = _Envelope.model_validate(data)
    except ValidationError as e:
        logger.warning("Assessment reply has no usable feedback object: %s", e.errors()[:3])
        return _fallback("invalid_envelope")

    return ParsedFeedback(
        feedback=envelope.feedback,
        reasoning=envelope.chainOfThought or [],
    )


def feedback_conforms(outcome: ParsedFeedback) -> bool:
    """True when parsed feedback has every requested field within range.

    Checks overallScore in 0..100, exactly the four rubric criteria each
    scored 1..4, and a well-formed reasoning trace.
    """
    try:
        feedback = AssessmentFeedback.model_validate(outcome.feedback)
        for step in outcome.reasoning:
            ReasoningStep.model_validate(step)
    except ValidationError:
        return False
    scores = feedback.criteria_scores
    return set(scores) == {c.value for c in Criterion} and all(
        CRITERION_MIN_SCORE <= value <= CRITERION_MAX_SCORE for value in scores.values()
    )
