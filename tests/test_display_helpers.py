"""
Test display helpers used by the console harness

Run with: pytest tests/test_display_helpers.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from assessment.contracts import (
    ContextType,
    MeasurementAnswer,
    MultiSelectAnswer,
    Question,
    QuestionOption,
    QuestionType,
    Response,
    Run,
    RunContext,
    SingleSelectAnswer,
    TextAnswer,
)
from assessment.core.run_comparator import compare_runs
from assessment.utils.display_helpers import (
    describe_score_change,
    format_comparison,
    format_response,
    parse_console_answer,
)

OPTIONS = (QuestionOption('entrance', 'Entrance'), QuestionOption('aisles', 'Aisles'))


class TestParseConsoleAnswer:

    def test_yes_no_shortcuts(self):
        question = Question(id='q1')
        assert parse_console_answer(question, 'Y').answer == 'yes'
        assert parse_console_answer(question, 'u').answer == 'unable-to-check'

    def test_yes_no_rejects_other_input(self):
        with pytest.raises(ValueError, match="Expected"):
            parse_console_answer(Question(id='q1'), 'maybe')

    def test_single_select(self):
        question = Question(id='q2', type=QuestionType.SINGLE_SELECT, options=OPTIONS)
        assert parse_console_answer(question, 'aisles').payload == SingleSelectAnswer('aisles')
        with pytest.raises(ValueError):
            parse_console_answer(question, 'roof')

    def test_multi_select(self):
        question = Question(id='q3', type=QuestionType.MULTI_SELECT, options=OPTIONS)
        response = parse_console_answer(question, 'entrance, aisles')
        assert response.payload == MultiSelectAnswer(('entrance', 'aisles'))
        with pytest.raises(ValueError, match="Unknown options: roof"):
            parse_console_answer(question, 'entrance,roof')

    def test_measurement(self):
        question = Question(id='q4', type=QuestionType.MEASUREMENT, measurement_unit='mm')
        assert parse_console_answer(question, '850').payload == MeasurementAnswer(850.0, 'mm')
        with pytest.raises(ValueError):
            parse_console_answer(question, 'wide')

    def test_text(self):
        question = Question(id='q5', type=QuestionType.TEXT)
        assert parse_console_answer(question, 'More signage').payload == TextAnswer('More signage')


class TestFormatting:

    def test_format_response(self):
        assert format_response(None) == 'Not answered'
        assert format_response(Response.with_answer('q1', 'unable-to-check')) == 'Unable to check'
        assert format_response(Response(question_id='q4', payload=MeasurementAnswer(850.0, 'mm'))) == '850 mm'

    def test_describe_score_change(self):
        assert describe_score_change(50.0).startswith('+50.0%')
        assert describe_score_change(-11.1).startswith('-11.1%')
        assert describe_score_change(0.0) == 'No change in overall score'

    def test_format_comparison(self):
        questions = [Question(id='q1', text='Step-free entrance?')]
        run_a = Run(id='a', context=RunContext(ContextType.TEAM, 'Before'), started_at='2025-01-01T00:00:00+00:00',
                    responses={'q1': Response.with_answer('q1', 'no')})
        run_b = Run(id='b', context=RunContext(ContextType.TEAM, 'After'), started_at='2025-02-01T00:00:00+00:00',
                    responses={'q1': Response.with_answer('q1', 'yes')})

        lines = format_comparison(compare_runs(run_a, run_b), questions)

        assert lines[0] == 'Before -> After'
        assert 'Improving' in lines[1]
        assert '  - Step-free entrance?: No -> Yes' in lines
