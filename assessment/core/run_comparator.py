"""
Run Comparator - structured diff between two runs of the same module

Responsibilities:
- Classify every answered question as improvement, regression,
  unchanged or new
- Compute the score change over comparable questions
- Classify the overall trend
- Roll several module comparisons up into one summary

Design principles:
- Total function: never raises for well-formed runs, including empty ones
- Symmetric: compare(A, B) mirrors compare(B, A)
- Depends only on the ordinal response score

Scoring:
    yes -> 3, partially -> 2, unable-to-check -> 1, no -> 0
    any other populated response (select options, measurements, ...) -> 1
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from assessment.contracts import (
    ProgressSummary,
    Response,
    Run,
    RunComparison,
    RunStatus,
    Trend,
)
from assessment.utils.answer_options import ANSWER_SCORES, DEFAULT_SCORE, MAX_SCORE

logger = logging.getLogger(__name__)


def score_response(response: Response) -> int:
    """
    Ordinal score of a response.

    Args:
        response: Response to score

    Returns:
        int: 0-3 for canonical answers, DEFAULT_SCORE otherwise
    """
    answer = response.canonical_answer
    if answer is None:
        return DEFAULT_SCORE
    return ANSWER_SCORES.get(answer, DEFAULT_SCORE)


def classify_trend(improvement_count: int, regression_count: int) -> Trend:
    """
    Classify a trend from improvement / regression counts.

    Rules (checked in order):
    - improving if improvements > 2 x regressions
    - declining if regressions > 2 x improvements
    - stable if both are zero
    - mixed otherwise
    """
    if improvement_count > 2 * regression_count:
        return Trend.IMPROVING
    if regression_count > 2 * improvement_count:
        return Trend.DECLINING
    if improvement_count == 0 and regression_count == 0:
        return Trend.STABLE
    return Trend.MIXED


def compare_runs(run_a: Run, run_b: Run) -> RunComparison:
    """
    Compare two runs, treating run_a as the baseline.

    Args:
        run_a: Earlier run
        run_b: Later run

    Returns:
        RunComparison
    """
    responses_a = run_a.responses
    responses_b = run_b.responses

    improvements = set()
    regressions = set()
    unchanged = set()
    new_questions = set()

    total_a = 0
    total_b = 0
    comparable_count = 0

    for question_id in set(responses_a) | set(responses_b):
        if question_id not in responses_a or question_id not in responses_b:
            new_questions.add(question_id)
            continue

        score_a = score_response(responses_a[question_id])
        score_b = score_response(responses_b[question_id])
        total_a += score_a
        total_b += score_b
        comparable_count += 1

        if score_b > score_a:
            improvements.add(question_id)
        elif score_b < score_a:
            regressions.add(question_id)
        else:
            unchanged.add(question_id)

    score_change = _score_change_percent(total_a, total_b, comparable_count)
    trend = classify_trend(len(improvements), len(regressions))

    logger.debug(
        f"Compared {run_a.id} -> {run_b.id}: +{len(improvements)} "
        f"-{len(regressions)} ={len(unchanged)} new={len(new_questions)} "
        f"trend={trend.value} change={score_change}%"
    )

    return RunComparison(
        run_a=run_a,
        run_b=run_b,
        improvements=frozenset(improvements),
        regressions=frozenset(regressions),
        unchanged=frozenset(unchanged),
        new_questions=frozenset(new_questions),
        overall_trend=trend,
        score_change_percent=score_change,
    )


def _score_change_percent(total_a: int, total_b: int, comparable_count: int) -> float:
    """
    Percentage change over comparable questions, one decimal place.

    Rounds half away from zero so that swapping the runs exactly negates
    the result.
    """
    if comparable_count == 0:
        return 0.0

    ratio = Decimal(total_b - total_a) / Decimal(comparable_count * MAX_SCORE)
    percent = (ratio * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(percent)


def find_previous_completed_run(runs: Sequence[Run], run_id: str) -> Optional[Run]:
    """
    Most recent completed run started before the given run.

    Args:
        runs: All runs of a module
        run_id: Run to find a predecessor for

    Returns:
        Run, or None if run_id is unknown or has no completed predecessor
    """
    current = next((run for run in runs if run.id == run_id), None)
    if current is None:
        return None

    # Run ids sort in creation order, so they break start-time ties
    current_key = _start_key(current)
    candidates = [
        run for run in runs
        if run.id != run_id
        and run.status == RunStatus.COMPLETED
        and _start_key(run) < current_key
    ]

    if not candidates:
        return None
    return max(candidates, key=_start_key)


def summarize_progress(comparisons: Iterable[RunComparison]) -> ProgressSummary:
    """
    Roll several module comparisons up into one summary.

    Totals improvements and regressions across comparisons and applies
    the same trend rule as a single comparison.
    """
    total_improvements = 0
    total_regressions = 0

    for comparison in comparisons:
        total_improvements += len(comparison.improvements)
        total_regressions += len(comparison.regressions)

    return ProgressSummary(
        total_improvements=total_improvements,
        total_regressions=total_regressions,
        overall_trend=classify_trend(total_improvements, total_regressions),
    )


def _start_key(run: Run):
    return _parse_time(run.started_at), run.id


def _parse_time(value: str) -> datetime:
    # Stored timestamps may be naive or use a trailing 'Z'; treat both as UTC
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
