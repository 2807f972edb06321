"""
Test Condition Evaluator - visibility conditions against response sets

Run with: pytest tests/test_condition_evaluator.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assessment.contracts import Response, VisibilityCondition
from assessment.core.condition_evaluator import is_satisfied


def cond(question_id, *answers, or_conditions=()):
    return VisibilityCondition(question_id, frozenset(answers), tuple(or_conditions))


def answers(**kwargs):
    """Build a response map; keyword names use '_' for '-' in ids"""
    return {
        qid.replace('_', '-'): Response.with_answer(qid.replace('_', '-'), value)
        for qid, value in kwargs.items()
    }


# ========================
# Single conditions
# ========================

def test_none_condition_is_not_satisfied():
    assert is_satisfied(None, answers(q1='yes')) is False


def test_satisfied_when_answer_is_acceptable():
    assert is_satisfied(cond('q1', 'no', 'partially'), answers(q1='partially'))


def test_not_satisfied_when_answer_differs():
    assert not is_satisfied(cond('q1', 'no'), answers(q1='yes'))


def test_unanswered_question_is_not_satisfied():
    assert not is_satisfied(cond('q1', 'no'), {})


def test_stale_reference_is_not_satisfied():
    """Conditions pointing at removed questions degrade to False"""
    assert not is_satisfied(cond('removed-question', 'yes'), answers(q1='yes'))


def test_notes_only_response_is_not_satisfied():
    responses = {'q1': Response(question_id='q1', notes='ask facilities team')}
    assert not is_satisfied(cond('q1', 'no'), responses)


def test_single_select_option_id_matches():
    responses = {'parking': Response.with_answer('parking', 'no-parking')}
    assert is_satisfied(cond('parking', 'no-parking'), responses)
    assert not is_satisfied(cond('parking', 'on-site'), responses)


def test_accepts_iterable_of_responses():
    responses = [Response.with_answer('q1', 'yes'), Response.with_answer('q2', 'no')]
    assert is_satisfied(cond('q2', 'no'), responses)


def test_legacy_answers_match_canonical_condition():
    responses = {'q1': Response.with_answer('q1', 'not-sure')}
    assert is_satisfied(cond('q1', 'unable-to-check'), responses)


# ========================
# OR conditions
# ========================

def test_or_condition_satisfies_when_primary_fails():
    condition = cond('q1', 'no', or_conditions=[cond('q2', 'unable-to-check')])

    assert is_satisfied(condition, answers(q1='yes', q2='unable-to-check'))
    assert not is_satisfied(condition, answers(q1='yes', q2='yes'))


def test_nested_or_conditions():
    condition = cond('q1', 'no', or_conditions=[
        cond('q2', 'no', or_conditions=[cond('q3', 'yes')])
    ])

    assert is_satisfied(condition, answers(q3='yes'))
    assert not is_satisfied(condition, answers(q3='no'))


def test_condition_from_authoring_keys():
    condition = VisibilityCondition.from_dict({
        'questionId': 'q1',
        'answers': ['no', 'too-hard'],
        'orConditions': [{'questionId': 'q2', 'answers': ['yes']}],
    })

    assert condition.question_id == 'q1'
    assert condition.acceptable_answers == frozenset({'no', 'unable-to-check'})
    assert is_satisfied(condition, answers(q2='yes'))


def test_condition_round_trips_through_dict():
    condition = cond('q1', 'partially', 'no', or_conditions=[cond('q2', 'yes')])
    assert VisibilityCondition.from_dict(condition.to_dict()) == condition
