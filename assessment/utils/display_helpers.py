"""
Display Helpers - Convert engine data to human-readable text

Used by the console harness to prompt for answers and print run
comparisons.
"""

from typing import Dict, List, Optional

from assessment.contracts import (
    LinkAnswer,
    MeasurementAnswer,
    MultiSelectAnswer,
    Question,
    QuestionType,
    Response,
    RunComparison,
    SingleSelectAnswer,
    TextAnswer,
    Trend,
    UrlAnalysisAnswer,
)
from assessment.utils.answer_options import ANSWER_LABELS, AnswerValue


# Console shortcuts for yes/no/unsure questions
ANSWER_SHORTCUTS = {
    'y': AnswerValue.YES,
    'yes': AnswerValue.YES,
    'p': AnswerValue.PARTIALLY,
    'partially': AnswerValue.PARTIALLY,
    'n': AnswerValue.NO,
    'no': AnswerValue.NO,
    'u': AnswerValue.UNABLE_TO_CHECK,
    'unsure': AnswerValue.UNABLE_TO_CHECK,
    'unable-to-check': AnswerValue.UNABLE_TO_CHECK,
}

TREND_LABELS = {
    Trend.IMPROVING: ('↑', 'Improving'),
    Trend.DECLINING: ('↓', 'Declining'),
    Trend.STABLE: ('→', 'Stable'),
    Trend.MIXED: ('↔', 'Mixed results'),
}


def answer_prompt(question: Question) -> str:
    """Input hint for a question type"""
    if question.type == QuestionType.YES_NO_UNSURE:
        return "[y]es / [p]artially / [n]o / [u]nable to check"
    if question.type == QuestionType.SINGLE_SELECT:
        return "one of: " + ", ".join(o.id for o in question.options)
    if question.type == QuestionType.MULTI_SELECT:
        return "comma-separated: " + ", ".join(o.id for o in question.options)
    if question.type == QuestionType.MEASUREMENT:
        return f"number ({question.measurement_unit or 'value'})"
    if question.type in (QuestionType.LINK, QuestionType.URL_ANALYSIS):
        return "URL"
    return "free text"


def parse_console_answer(question: Question, raw: str) -> Response:
    """
    Turn console input into a Response for the question's type.

    Args:
        question: Question being answered
        raw: User input (already stripped)

    Returns:
        Response

    Raises:
        ValueError: If the input doesn't fit the question type
    """
    value = raw.strip()

    if question.type == QuestionType.YES_NO_UNSURE:
        answer = ANSWER_SHORTCUTS.get(value.lower())
        if answer is None:
            raise ValueError(f"Expected {answer_prompt(question)}")
        return Response.with_answer(question.id, answer.value)

    option_ids = {o.id for o in question.options}

    if question.type == QuestionType.SINGLE_SELECT:
        if value not in option_ids:
            raise ValueError(f"Expected {answer_prompt(question)}")
        return Response(question_id=question.id, payload=SingleSelectAnswer(value))

    if question.type == QuestionType.MULTI_SELECT:
        chosen = tuple(part.strip() for part in value.split(',') if part.strip())
        unknown = [c for c in chosen if c not in option_ids]
        if unknown:
            raise ValueError(f"Unknown options: {', '.join(unknown)}")
        return Response(question_id=question.id, payload=MultiSelectAnswer(chosen))

    if question.type == QuestionType.MEASUREMENT:
        return Response(
            question_id=question.id,
            payload=MeasurementAnswer(value=float(value), unit=question.measurement_unit or ''),
        )

    if question.type == QuestionType.LINK:
        return Response(question_id=question.id, payload=LinkAnswer(value))

    if question.type == QuestionType.URL_ANALYSIS:
        # Analysis itself runs elsewhere; the console only records the URL
        return Response(
            question_id=question.id,
            payload=UrlAnalysisAnswer(url=value, overall_score=0, overall_status='missing'),
        )

    return Response(question_id=question.id, payload=TextAnswer(value))


def format_response(response: Optional[Response]) -> str:
    """Short label for a stored response"""
    if response is None:
        return 'Not answered'

    payload = response.payload
    if response.canonical_answer is not None:
        return ANSWER_LABELS[response.canonical_answer]
    if isinstance(payload, SingleSelectAnswer):
        return payload.option_id
    if isinstance(payload, MultiSelectAnswer):
        return ', '.join(payload.option_ids) or 'None selected'
    if isinstance(payload, MeasurementAnswer):
        return f"{payload.value:g} {payload.unit}".strip()
    if isinstance(payload, (LinkAnswer, UrlAnalysisAnswer)):
        return payload.url
    if isinstance(payload, TextAnswer):
        return payload.text
    return 'Answered'


def describe_score_change(score_change_percent: float) -> str:
    if score_change_percent > 0:
        return f"+{score_change_percent}% improvement in positive responses"
    if score_change_percent < 0:
        return f"{score_change_percent}% change in positive responses"
    return "No change in overall score"


def format_comparison(comparison: RunComparison, questions: List[Question]) -> List[str]:
    """
    Render a comparison as printable lines.

    Args:
        comparison: RunComparison to render
        questions: Module questions (for question text lookup)

    Returns:
        list[str]: Lines, without trailing newlines
    """
    text_by_id: Dict[str, str] = {q.id: q.text for q in questions}
    icon, label = TREND_LABELS[comparison.overall_trend]

    lines = [
        f"{comparison.run_a.context.name} -> {comparison.run_b.context.name}",
        f"{icon} {label}: {describe_score_change(comparison.score_change_percent)}",
        f"Improvements: {len(comparison.improvements)}  "
        f"Unchanged: {len(comparison.unchanged)}  "
        f"Need attention: {len(comparison.regressions)}",
    ]

    sections = (
        ('Improvements', comparison.improvements),
        ('Need attention', comparison.regressions),
    )
    for title, question_ids in sections:
        if not question_ids:
            continue
        lines.append(f"{title}:")
        for question_id in sorted(question_ids):
            before = format_response(comparison.run_a.responses.get(question_id))
            after = format_response(comparison.run_b.responses.get(question_id))
            lines.append(f"  - {text_by_id.get(question_id, question_id)}: {before} -> {after}")

    return lines
