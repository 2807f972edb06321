"""
Answer options for yes/no/unsure questions.

Invariants:
- The canonical answer set is closed: yes, partially, no, unable-to-check
- Legacy stored values are normalised on load, never written back out
- Ordinal scores are the single source for run comparison

Design:
- AnswerValue is a string-based enum for JSON serialization
- LEGACY_ANSWER_ALIASES maps values written by older releases
  ('not-sure', 'too-hard') onto the canonical set
"""

from enum import Enum
from typing import Optional


class AnswerValue(str, Enum):
    """
    Canonical answers for 'yes-no-unsure' questions.

    YES:
        The requirement is met or in place.

    PARTIALLY:
        Some elements are in place, but coverage is incomplete or inconsistent.

    NO:
        The requirement is not currently met.

    UNABLE_TO_CHECK:
        The person answering cannot confidently confirm the answer right now.
        Also covers the older 'not sure' / 'too hard' answers.
    """
    YES = "yes"
    PARTIALLY = "partially"
    NO = "no"
    UNABLE_TO_CHECK = "unable-to-check"


# Single source of truth for valid answer strings
VALID_ANSWERS = {answer.value for answer in AnswerValue}

# Values written by earlier releases of the questionnaire
LEGACY_ANSWER_ALIASES = {
    "not-sure": AnswerValue.UNABLE_TO_CHECK,
    "not_sure": AnswerValue.UNABLE_TO_CHECK,
    "too-hard": AnswerValue.UNABLE_TO_CHECK,
}

ANSWER_LABELS = {
    AnswerValue.YES: "Yes",
    AnswerValue.PARTIALLY: "Partially",
    AnswerValue.NO: "No",
    AnswerValue.UNABLE_TO_CHECK: "Unable to check",
}

# Ordinal scores used by the run comparator
ANSWER_SCORES = {
    AnswerValue.YES: 3,
    AnswerValue.PARTIALLY: 2,
    AnswerValue.UNABLE_TO_CHECK: 1,
    AnswerValue.NO: 0,
}

# Score for any populated response without a canonical answer
DEFAULT_SCORE = 1
MAX_SCORE = 3


def parse_answer(value: Optional[str]) -> Optional[AnswerValue]:
    """
    Convert a stored string to an AnswerValue.

    Args:
        value: Raw answer string (may be a legacy alias) or None

    Returns:
        AnswerValue, or None if value is None or not a canonical answer
    """
    if value is None:
        return None
    if isinstance(value, AnswerValue):
        return value
    if value in LEGACY_ANSWER_ALIASES:
        return LEGACY_ANSWER_ALIASES[value]
    if value in VALID_ANSWERS:
        return AnswerValue(value)
    return None


def is_negative_answer(answer: Optional[AnswerValue]) -> bool:
    """True for answers that count against confidence (no, unable-to-check)."""
    return answer in (AnswerValue.NO, AnswerValue.UNABLE_TO_CHECK)
