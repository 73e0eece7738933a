"""Evaluation prompt — essay grading for 3D geometry problems.

The prompt combines a fixed tutor persona, a knowledge context for the
solid in question, the verbatim problem and answer, the rubric criteria as
JSON and the required output format (reasoning trace + feedback object).
"""

from __future__ import annotations

import json
from typing import Any

GEOMETRY_CONTEXTS: dict[str, str] = {
    "cylinder": """
CYLINDER (TABUNG) KEY CONCEPTS:
- Surface Area Formula: L = 2πr(r + t) where r=radius, t=height
- Volume Formula: V = πr²t
- Components: 2 circular bases + rectangular lateral surface
- Real-world examples: cans, pipes, water tanks
- Net (jaring-jaring): 2 circles + 1 rectangle""",
    "cone": """
CONE (KERUCUT) KEY CONCEPTS:
- Surface Area Formula: L = πr(r + s) where r=radius, s=slant height
- Volume Formula: V = ⅓πr²t
- Pythagorean relationship: s² = r² + t²
- Volume relationship: Cone = ⅓ × Cylinder (same base, height)
- Real-world examples: ice cream cones, traffic cones, funnels
- Net (jaring-jaring): 1 circle + 1 sector""",
    "sphere": """
SPHERE (BOLA) KEY CONCEPTS:
- Surface Area Formula: L = 4πr²
- Volume Formula: V = ⁴⁄₃πr³
- Perfect symmetry - all points equidistant from center
- Archimedes' discovery: Sphere volume = ⅔ of surrounding cylinder
- Real-world examples: balls, planets, bubbles
- No true net - can be approximated with segments""",
}

DEFAULT_GEOMETRY = "cylinder"

PERSONA = (
    "You are an expert mathematics tutor specializing in 3D geometry education "
    "for Indonesian middle school students (SMP kelas 9). You have deep knowledge "
    "of geometric concepts and excellent pedagogical skills."
)

INSTRUCTIONS = """\
1. Use Chain-of-Thought reasoning - think step by step before scoring
2. Be encouraging and constructive in feedback
3. Identify both strengths and areas for improvement
4. Provide specific suggestions for next learning steps
5. Score each criterion on a 1-4 scale (4=excellent, 3=good, 2=satisfactory, 1=needs improvement)"""

OUTPUT_FORMAT = """\
{
  "chainOfThought": [
    {
      "step": 1,
      "reasoning": "First, I need to check if the student correctly identified...",
      "finding": "Student correctly applied the cylinder formula L=2πr(r+t)",
      "confidence": 0.9
    }
  ],
  "feedback": {
    "overallScore": 85,
    "criteriaScores": {
      "mathematical_accuracy": 4,
      "conceptual_understanding": 3,
      "problem_solving_approach": 4,
      "communication": 3
    },
    "strengths": [
      "Excellent use of cylinder surface area formula",
      "Clear step-by-step calculation process"
    ],
    "improvements": [
      "Could better explain the real-world context",
      "Mathematical notation could be clearer"
    ],
    "detailedFeedback": "Your solution demonstrates strong mathematical skills...",
    "nextSteps": [
      "Practice explaining geometric concepts in your own words",
      "Try solving similar problems with different measurements"
    ]
  }
}"""


def get_geometry_context(geometry_type: str | None) -> str:
    """Knowledge context for a solid; unknown kinds use the cylinder context."""
    return GEOMETRY_CONTEXTS.get(geometry_type or "", GEOMETRY_CONTEXTS[DEFAULT_GEOMETRY])


def build_evaluation_prompt(
    problem_text: str,
    student_answer: str,
    geometry_type: str | None,
    rubric_criteria: dict[str, Any] | None,
) -> str:
    """Build the single instruction block sent to the assessment model.

    Pure and deterministic: the same inputs always give the same text.
    Problem and answer are embedded verbatim.
    """
    rubric_json = json.dumps(
        rubric_criteria or {}, indent=2, sort_keys=True, ensure_ascii=False
    )
    return f"""{PERSONA}

TASK: Evaluate a student's essay response to a geometry problem using Chain-of-Thought reasoning.

GEOMETRY CONTEXT:
{get_geometry_context(geometry_type)}

PROBLEM STATEMENT:
{problem_text}

STUDENT ANSWER:
{student_answer}

EVALUATION RUBRIC:
{rubric_json}

INSTRUCTIONS:
{INSTRUCTIONS}

REQUIRED OUTPUT FORMAT (valid JSON):
{OUTPUT_FORMAT}

Think carefully and provide detailed, constructive feedback that will help this student improve their mathematical understanding."""
