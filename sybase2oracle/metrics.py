"""
Conversion metrics.

Complexity is a rough size/shape score of a script; the improvement figure
rewards Oracle-native constructs in the converted text.
"""

import math
import re
from dataclasses import dataclass


LENGTH_WEIGHT = 0.2
TERMINATOR_WEIGHT = 5
KEYWORD_WEIGHT = 1.5

MAX_IMPROVEMENT = 30
NATIVE_CONSTRUCT_BONUS = 15
BLOCK_STRUCTURE_BONUS = 10
COMPLEXITY_BONUS = 5
NATIVE_CONSTRUCTS = ("INTO", "NUMBER", "VARCHAR2")

_KEYWORD_PATTERN = re.compile(
    r'\b(?:SELECT|FROM|WHERE|JOIN|GROUP BY|ORDER BY|HAVING)\b', re.IGNORECASE
)


@dataclass(frozen=True)
class Metrics:
    """Complexity of the source and converted text plus the improvement figure."""
    original_complexity: int
    converted_complexity: int
    improvement_percent: str

    def to_dict(self) -> dict:
        return {
            "original_complexity": self.original_complexity,
            "converted_complexity": self.converted_complexity,
            "improvement_percent": self.improvement_percent,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def compute_complexity(text: str) -> int:
    """
    Complexity score of a script.

    ``len * 0.2 + statements * 5 + keywords * 1.5``, rounded half up, where
    statements are counted by ``;`` and keywords are SELECT, FROM, WHERE,
    JOIN, GROUP BY, ORDER BY and HAVING in any case.
    """
    score = (len(text) * LENGTH_WEIGHT
             + text.count(';') * TERMINATOR_WEIGHT
             + len(_KEYWORD_PATTERN.findall(text)) * KEYWORD_WEIGHT)
    return round_half_up(score)


def improvement_score(converted: str, original_complexity: int, converted_complexity: int) -> int:
    score = 0
    if any(construct in converted for construct in NATIVE_CONSTRUCTS):
        score += NATIVE_CONSTRUCT_BONUS
    if 'GO' not in converted and 'END;' in converted:
        score += BLOCK_STRUCTURE_BONUS
    if converted_complexity < original_complexity:
        score += COMPLEXITY_BONUS
    return max(0, min(MAX_IMPROVEMENT, score))


def compute_metrics(original: str, converted: str) -> Metrics:
    """
    Compute metrics for one conversion.

    Args:
        original: Sybase source text
        converted: Oracle output text

    Returns:
        Metrics with the improvement rendered as ``"+N%"``
    """
    original_complexity = compute_complexity(original)
    converted_complexity = compute_complexity(converted)
    score = improvement_score(converted, original_complexity, converted_complexity)
    return Metrics(
        original_complexity=original_complexity,
        converted_complexity=converted_complexity,
        improvement_percent=f"+{score}%",
    )
