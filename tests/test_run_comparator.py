"""
Test Run Comparator - per-question diff, trend and score change

Run with: pytest tests/test_run_comparator.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from assessment.contracts import (
    ContextType,
    MeasurementAnswer,
    Response,
    Run,
    RunContext,
    RunStatus,
    Trend,
)
from assessment.core.run_comparator import (
    classify_trend,
    compare_runs,
    find_previous_completed_run,
    score_response,
    summarize_progress,
)


def make_run(run_id, answers=None, started_at='2025-01-01T09:00:00+00:00',
             status=RunStatus.IN_PROGRESS):
    responses = {
        qid: Response.with_answer(qid, value)
        for qid, value in (answers or {}).items()
    }
    return Run(
        id=run_id,
        context=RunContext(ContextType.TEAM, f"Team {run_id}"),
        started_at=started_at,
        status=status,
        completed_at=started_at if status == RunStatus.COMPLETED else None,
        responses=responses,
    )


# ========================
# Scoring
# ========================

class TestScoring:

    @pytest.mark.parametrize("answer,expected", [
        ('yes', 3),
        ('partially', 2),
        ('unable-to-check', 1),
        ('not-sure', 1),
        ('no', 0),
    ])
    def test_canonical_scores(self, answer, expected):
        assert score_response(Response.with_answer('q', answer)) == expected

    def test_non_canonical_payloads_score_one(self):
        assert score_response(Response.with_answer('q', 'street')) == 1
        assert score_response(Response(question_id='q', payload=MeasurementAnswer(900, 'mm'))) == 1


# ========================
# Trend classification
# ========================

class TestClassifyTrend:

    def test_stable_when_nothing_changed(self):
        assert classify_trend(0, 0) == Trend.STABLE

    def test_improving_needs_more_than_double(self):
        assert classify_trend(3, 1) == Trend.IMPROVING
        assert classify_trend(1, 0) == Trend.IMPROVING

    def test_declining_needs_more_than_double(self):
        assert classify_trend(1, 3) == Trend.DECLINING
        assert classify_trend(0, 2) == Trend.DECLINING

    def test_mixed_at_exactly_double(self):
        assert classify_trend(2, 1) == Trend.MIXED
        assert classify_trend(1, 2) == Trend.MIXED
        assert classify_trend(1, 1) == Trend.MIXED


# ========================
# compare_runs
# ========================

class TestCompareRuns:

    def test_single_improvement(self):
        run_a = make_run('a', {'Q1': 'no', 'Q2': 'yes'})
        run_b = make_run('b', {'Q1': 'yes', 'Q2': 'yes'})

        result = compare_runs(run_a, run_b)

        assert result.improvements == {'Q1'}
        assert result.unchanged == {'Q2'}
        assert result.regressions == frozenset()
        assert result.new_questions == frozenset()
        assert result.overall_trend == Trend.IMPROVING
        assert result.score_change_percent == 50.0

    def test_questions_in_one_run_only_are_new(self):
        run_a = make_run('a', {'Q1': 'yes', 'Q2': 'no'})
        run_b = make_run('b', {'Q1': 'yes', 'Q3': 'no'})

        result = compare_runs(run_a, run_b)

        assert result.new_questions == {'Q2', 'Q3'}
        assert result.unchanged == {'Q1'}
        assert result.score_change_percent == 0.0

    def test_partition_covers_every_answered_question(self):
        run_a = make_run('a', {'Q1': 'no', 'Q2': 'yes', 'Q3': 'partially', 'Q4': 'no'})
        run_b = make_run('b', {'Q1': 'yes', 'Q2': 'no', 'Q3': 'partially', 'Q5': 'yes'})

        result = compare_runs(run_a, run_b)
        groups = [result.improvements, result.regressions, result.unchanged, result.new_questions]

        union = set().union(*groups)
        assert union == {'Q1', 'Q2', 'Q3', 'Q4', 'Q5'}
        assert sum(len(g) for g in groups) == len(union)

    def test_swapping_runs_mirrors_result(self):
        run_a = make_run('a', {'Q1': 'no', 'Q2': 'yes', 'Q3': 'partially'})
        run_b = make_run('b', {'Q1': 'partially', 'Q2': 'no', 'Q3': 'yes'})

        forward = compare_runs(run_a, run_b)
        backward = compare_runs(run_b, run_a)

        assert forward.improvements == backward.regressions
        assert forward.regressions == backward.improvements
        assert forward.unchanged == backward.unchanged
        assert forward.score_change_percent == -backward.score_change_percent

    def test_rounding_is_symmetric(self):
        """1/9 -> 11.1 one way and -11.1 the other"""
        run_a = make_run('a', {'Q1': 'partially', 'Q2': 'yes', 'Q3': 'yes'})
        run_b = make_run('b', {'Q1': 'yes', 'Q2': 'yes', 'Q3': 'yes'})

        assert compare_runs(run_a, run_b).score_change_percent == 11.1
        assert compare_runs(run_b, run_a).score_change_percent == -11.1

    def test_empty_runs(self):
        result = compare_runs(make_run('a'), make_run('b'))

        assert result.improvements == frozenset()
        assert result.regressions == frozenset()
        assert result.overall_trend == Trend.STABLE
        assert result.score_change_percent == 0.0

    def test_one_empty_run(self):
        result = compare_runs(make_run('a'), make_run('b', {'Q1': 'yes'}))

        assert result.new_questions == {'Q1'}
        assert result.overall_trend == Trend.STABLE
        assert result.score_change_percent == 0.0

    def test_comparing_run_with_itself(self):
        run = make_run('a', {'Q1': 'no', 'Q2': 'yes'})
        result = compare_runs(run, run)

        assert result.unchanged == {'Q1', 'Q2'}
        assert result.overall_trend == Trend.STABLE

    def test_declining_trend(self):
        run_a = make_run('a', {'Q1': 'yes', 'Q2': 'yes', 'Q3': 'yes'})
        run_b = make_run('b', {'Q1': 'no', 'Q2': 'partially', 'Q3': 'yes'})

        result = compare_runs(run_a, run_b)

        assert result.regressions == {'Q1', 'Q2'}
        assert result.overall_trend == Trend.DECLINING
        assert result.score_change_percent == -44.4

    def test_to_dict_is_sorted(self):
        run_a = make_run('a', {'Q2': 'no', 'Q1': 'no'})
        run_b = make_run('b', {'Q2': 'yes', 'Q1': 'yes'})

        data = compare_runs(run_a, run_b).to_dict()

        assert data['improvements'] == ['Q1', 'Q2']
        assert data['overall_trend'] == 'improving'
        assert data['run_a']['id'] == 'a'


# ========================
# Previous completed run
# ========================

class TestFindPreviousCompleted:

    @pytest.fixture
    def runs(self):
        return [
            make_run('r1', {'Q1': 'no'}, '2025-01-01T09:00:00+00:00', RunStatus.COMPLETED),
            make_run('r2', {'Q1': 'partially'}, '2025-02-01T09:00:00+00:00', RunStatus.COMPLETED),
            make_run('r3', {'Q1': 'yes'}, '2025-03-01T09:00:00+00:00', RunStatus.IN_PROGRESS),
            make_run('r4', {'Q1': 'yes'}, '2025-04-01T09:00:00+00:00', RunStatus.COMPLETED),
        ]

    def test_most_recent_completed_before(self, runs):
        assert find_previous_completed_run(runs, 'r4').id == 'r2'

    def test_in_progress_runs_skipped(self, runs):
        assert find_previous_completed_run(runs, 'r3').id == 'r2'

    def test_none_for_first_run(self, runs):
        assert find_previous_completed_run(runs, 'r1') is None

    def test_none_for_unknown_run(self, runs):
        assert find_previous_completed_run(runs, 'missing') is None

    def test_naive_and_zulu_timestamps(self):
        runs = [
            make_run('r1', started_at='2025-01-01T09:00:00', status=RunStatus.COMPLETED),
            make_run('r2', started_at='2025-01-02T09:00:00Z'),
        ]
        assert find_previous_completed_run(runs, 'r2').id == 'r1'


# ========================
# Progress summary
# ========================

def test_summarize_progress_totals_comparisons():
    improving = compare_runs(make_run('a', {'Q1': 'no', 'Q2': 'no'}), make_run('b', {'Q1': 'yes', 'Q2': 'yes'}))
    declining = compare_runs(make_run('c', {'Q1': 'yes'}), make_run('d', {'Q1': 'no'}))

    summary = summarize_progress([improving, declining])

    assert summary.total_improvements == 2
    assert summary.total_regressions == 1
    assert summary.overall_trend == Trend.MIXED


def test_summarize_progress_empty():
    summary = summarize_progress([])
    assert summary.overall_trend == Trend.STABLE
    assert summary.total_improvements == 0
