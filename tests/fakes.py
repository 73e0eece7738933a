"""Test doubles and sample payloads shared across test modules."""

from __future__ import annotations

import json


class FakeLLM:
    """Returns a canned reply (or raises) and records the prompts it saw."""

    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str, **overrides) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def sample_feedback(score: int = 85) -> dict:
    return {
        "overallScore": score,
        "criteriaScores": {
            "mathematical_accuracy": 4,
            "conceptual_understanding": 3,
            "problem_solving_approach": 4,
            "communication": 3,
        },
        "strengths": ["Correct use of L = 2πr(r + t)"],
        "improvements": ["State the units"],
        "detailedFeedback": "Good work overall.",
        "nextSteps": ["Try a cone problem"],
    }


def sample_reply(score: int = 85) -> str:
    """A model reply wrapping the JSON block in prose, as models tend to."""
    body = {
        "chainOfThought": [
            {"step": 1, "reasoning": "Check formula", "finding": "Correct", "confidence": 0.9}
        ],
        "feedback": sample_feedback(score),
    }
    return "Here is my evaluation:\n" + json.dumps(body, ensure_ascii=False) + "\nHope this helps!"

