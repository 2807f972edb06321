"""
Condition Evaluator - visibility condition checks against a response set

Responsibilities:
- Decide whether a VisibilityCondition is satisfied by the current responses
- Evaluate OR-alternatives attached to a condition

Design principles:
- Pure function: no state, no side effects
- Total: absence of data is a normal case, never an error
- Stale references (renamed / removed questions) evaluate to False
"""

import logging
from typing import Dict, Iterable, Optional, Union

from assessment.contracts import Response, VisibilityCondition, response_map

logger = logging.getLogger(__name__)

Responses = Union[Dict[str, Response], Iterable[Response]]


def is_satisfied(condition: Optional[VisibilityCondition], responses: Responses) -> bool:
    """
    Evaluate a visibility condition against a response set.

    Args:
        condition: Condition to evaluate
        responses: question_id -> Response mapping, or iterable of Response

    Returns:
        True if the referenced question has a non-null answer contained in
        acceptable_answers, or if any OR-alternative is satisfied.
        False for None conditions and unknown question ids.
    """
    if condition is None:
        return False

    if not isinstance(responses, dict):
        responses = response_map(responses)

    return _evaluate(condition, responses)


def _evaluate(condition: VisibilityCondition, responses: Dict[str, Response]) -> bool:
    response = responses.get(condition.question_id)

    if response is not None:
        answer = response.answer
        if answer is not None and answer in condition.acceptable_answers:
            return True

    return any(_evaluate(alt, responses) for alt in condition.or_conditions)
