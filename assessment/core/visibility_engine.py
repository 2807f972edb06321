"""
Visibility Engine - decides which questions are currently shown

Responsibilities:
- Filter a module's questions by review depth and visibility conditions
- Point queries ("is question X visible")
- Sequencing ("next / previous visible question")
- Branch grouping and progress counters for the presentation layer
- Flag responses that need professional review

Design principles:
- Stateless with respect to answers: all answer state comes from the
  responses argument
- Deterministic: same input always produces same output
- Order preserving: filters the authored order, never reorders
- No question's visibility depends on another question's visibility,
  only on responses
- Stale condition references degrade to "unsatisfied", never raise

Evaluation order per question:
1. Foundation pass hides detailed-only questions
2. hide_condition satisfied -> hidden (wins over visibility_condition)
3. visibility_condition present -> visible iff satisfied
4. Otherwise visible
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from assessment.contracts import (
    MeasurementAnswer,
    MeasurementConfidence,
    Question,
    QuestionType,
    Response,
    response_map,
)
from assessment.core.condition_evaluator import is_satisfied
from assessment.utils.answer_options import AnswerValue
from assessment.utils.review_modes import ReviewDepth, parse_pass_depth

logger = logging.getLogger(__name__)


def is_visible(question: Question, responses: Dict[str, Response], review_depth: ReviewDepth) -> bool:
    """
    Decide visibility of a single question.

    Args:
        question: Question to check
        responses: question_id -> Response
        review_depth: FOUNDATION or DETAILED

    Returns:
        True if the question should be shown
    """
    if review_depth == ReviewDepth.FOUNDATION and question.review_depth == ReviewDepth.DETAILED:
        return False

    if question.hide_condition is not None and is_satisfied(question.hide_condition, responses):
        return False

    if question.visibility_condition is not None:
        return is_satisfied(question.visibility_condition, responses)

    return True


def compute_visible(questions: Sequence[Question], responses, review_depth) -> List[Question]:
    """
    Compute the ordered list of currently visible questions.

    Args:
        questions: Questions in authoring order
        responses: question_id -> Response mapping, or iterable of Response
        review_depth: 'foundation' / 'detailed' (or ReviewDepth)

    Returns:
        Visible questions, in authoring order
    """
    depth = parse_pass_depth(review_depth)
    response_lookup = response_map(responses)
    return [q for q in questions if is_visible(q, response_lookup, depth)]


class VisibilityEngine:
    """
    Visibility queries over one module's question list.

    Questions are fixed at construction. Results of compute_visible() are
    memoised per (review depth, answer fingerprint), so repeated queries
    during one screen render cost a dict lookup.
    """

    # Cached visible sequences kept per engine
    MAX_CACHE_ENTRIES = 64

    def __init__(self, questions: Iterable[Question]):
        """
        Initialize engine with a question list.

        Args:
            questions: Questions in authoring order

        Raises:
            ValueError: If two questions share an id
        """
        self.questions: Tuple[Question, ...] = tuple(questions)
        self._by_id: Dict[str, Question] = {}

        for question in self.questions:
            if question.id in self._by_id:
                raise ValueError(f"Duplicate question id '{question.id}'")
            self._by_id[question.id] = question

        self._cache: Dict[tuple, Tuple[Question, ...]] = {}

        logger.info(f"Visibility engine initialized with {len(self.questions)} questions")

    # =========================================================================
    # Public API
    # =========================================================================

    def get_question(self, question_id: str) -> Optional[Question]:
        return self._by_id.get(question_id)

    def compute_visible(self, responses, review_depth) -> List[Question]:
        """
        Ordered list of visible questions.

        Args:
            responses: question_id -> Response mapping, or iterable of Response
            review_depth: 'foundation' or 'detailed'

        Returns:
            list[Question]: Visible questions in authoring order (new list,
            safe to modify)
        """
        depth = parse_pass_depth(review_depth)
        response_lookup = response_map(responses)
        return list(self._visible(response_lookup, depth))

    def is_question_visible(self, question_id: str, responses, review_depth) -> bool:
        """
        Point query. Unknown question ids are not visible.
        """
        question = self._by_id.get(question_id)
        if question is None:
            return False
        return is_visible(question, response_map(responses), parse_pass_depth(review_depth))

    def get_next_question(self, current_question_id: str, responses, review_depth) -> Optional[Question]:
        """
        Next visible question after current_question_id.

        Returns:
            Question, or None at the end of the sequence or when the current
            question is not visible
        """
        visible = self.compute_visible(responses, review_depth)
        index = self._index_of(visible, current_question_id)

        if index is None or index >= len(visible) - 1:
            return None
        return visible[index + 1]

    def get_previous_question(self, current_question_id: str, responses, review_depth) -> Optional[Question]:
        """
        Previous visible question before current_question_id.

        Returns:
            Question, or None at the start of the sequence or when the
            current question is not visible
        """
        visible = self.compute_visible(responses, review_depth)
        index = self._index_of(visible, current_question_id)

        if index is None or index == 0:
            return None
        return visible[index - 1]

    def get_first_unanswered(self, responses, review_depth) -> Optional[Question]:
        """First visible question without a response (resume point)."""
        response_lookup = response_map(responses)
        for question in self.compute_visible(response_lookup, review_depth):
            if question.id not in response_lookup:
                return question
        return None

    def get_questions_by_branch(self, responses, review_depth) -> Dict[str, List[Question]]:
        """
        Group questions by branch role.

        Returns:
            dict with keys:
                - entry: visible entry points and unconditioned questions
                - follow_up: visible questions revealed by a condition
                - hidden: everything not currently visible
        """
        visible_ids = {q.id for q in self.compute_visible(responses, review_depth)}
        groups = {"entry": [], "follow_up": [], "hidden": []}

        for question in self.questions:
            if question.id not in visible_ids:
                groups["hidden"].append(question)
            elif question.is_entry_point or question.visibility_condition is None:
                groups["entry"].append(question)
            else:
                groups["follow_up"].append(question)

        return groups

    def get_progress_counts(self, responses, review_depth) -> Dict[str, int]:
        """
        Progress counter over visible questions.

        Responses to questions that are no longer visible do not count.

        Returns:
            dict: {'answered': int, 'total': int}
        """
        response_lookup = response_map(responses)
        visible = self.compute_visible(response_lookup, review_depth)
        answered = sum(1 for q in visible if q.id in response_lookup)
        return {"answered": answered, "total": len(visible)}

    # =========================================================================
    # Helpers
    # =========================================================================

    def _visible(self, responses: Dict[str, Response], depth: ReviewDepth) -> Tuple[Question, ...]:
        key = (depth, _answer_fingerprint(responses))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        visible = tuple(q for q in self.questions if is_visible(q, responses, depth))

        if len(self._cache) >= self.MAX_CACHE_ENTRIES:
            self._cache.clear()
        self._cache[key] = visible
        return visible

    @staticmethod
    def _index_of(visible: List[Question], question_id: str) -> Optional[int]:
        for index, question in enumerate(visible):
            if question.id == question_id:
                return index
        return None


def _answer_fingerprint(responses: Dict[str, Response]) -> tuple:
    """
    Hashable key for a response set.

    Visibility depends only on answers, so notes, timestamps and
    non-answer payloads are left out.
    """
    return tuple(sorted(
        (question_id, response.answer)
        for question_id, response in responses.items()
        if response.answer is not None
    ))


def needs_professional_review(question: Question, response: Optional[Response]) -> bool:
    """
    Whether a response should be referred for professional review.

    Rules:
    - 'unable-to-check' always
    - 'no' on a safety-related question
    - measurement answered with 'not-confident'
    """
    if response is None:
        return False

    answer = response.canonical_answer
    if answer == AnswerValue.UNABLE_TO_CHECK:
        return True

    if question.safety_related and answer == AnswerValue.NO:
        return True

    if (question.type == QuestionType.MEASUREMENT
            and isinstance(response.payload, MeasurementAnswer)
            and response.payload.confidence == MeasurementConfidence.NOT_CONFIDENT):
        return True

    return False
