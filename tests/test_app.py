"""
Test the Flask JSON API against the bundled questionnaire

Run with: pytest tests/test_app.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from app import app, SERVICES_KEY

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
MODULE = 'physical-access'


@pytest.fixture
def client(tmp_path):
    app.config.update(
        TESTING=True,
        QUESTIONNAIRE_PATH=os.path.join(PROJECT_ROOT, 'data', 'questionnaire.json'),
        PROGRESS_DIR=str(tmp_path / 'progress'),
        SUBJECT_ID='test-subject',
        REVIEW_DEPTH='foundation',
    )
    app.extensions.pop(SERVICES_KEY, None)

    with app.test_client() as client:
        yield client

    app.extensions.pop(SERVICES_KEY, None)


def answer(client, question_id, value, module_id=MODULE):
    return client.post(
        f'/api/modules/{module_id}/responses',
        json={'question_id': question_id, 'answer': value},
    )


def new_run(client, name, module_id=MODULE):
    return client.post(f'/api/modules/{module_id}/runs', json={'context': {'type': 'team', 'name': name}})


class TestModules:

    def test_list_modules(self, client):
        data = client.get('/api/modules').get_json()

        assert data['success']
        assert [m['id'] for m in data['modules']] == ['physical-access', 'communication']
        assert data['overall_progress'] == {'completed': 0, 'total': 2, 'percentage': 0}

    def test_start_unknown_module(self, client):
        response = client.post('/api/modules/nope/start')
        assert response.status_code == 404
        assert response.get_json()['success'] is False

    def test_start_module(self, client):
        data = client.post(f'/api/modules/{MODULE}/start').get_json()
        assert data['run_id'].startswith('run-')
        assert data['status'] == 'in-progress'


class TestQuestions:

    def test_foundation_questions(self, client):
        data = client.get(f'/api/modules/{MODULE}/questions').get_json()

        assert [q['id'] for q in data['questions']] == ['2.1-1', '2.1-4', '2.1-6', '2.1-7']
        assert data['first_unanswered'] == '2.1-1'
        assert data['progress'] == {'answered': 0, 'total': 4}

    def test_answer_reveals_follow_up(self, client):
        response = answer(client, '2.1-1', 'no')
        assert response.get_json()['next'] == '2.1-2'

        data = client.get(f'/api/modules/{MODULE}/questions?current=2.1-2').get_json()
        assert '2.1-2' in [q['id'] for q in data['questions']]
        assert data['previous'] == '2.1-1'
        assert data['next'] == '2.1-4'

    def test_detailed_depth(self, client):
        data = client.get(f'/api/modules/{MODULE}/questions?depth=detailed').get_json()
        assert '2.1-3' in [q['id'] for q in data['questions']]

    def test_invalid_depth(self, client):
        response = client.get(f'/api/modules/{MODULE}/questions?depth=both')
        assert response.status_code == 400

    def test_hide_condition_from_single_select(self, client):
        answer(client, '2.1-7', 'no-parking')
        data = client.get(f'/api/modules/{MODULE}/questions').get_json()
        assert '2.1-6' not in [q['id'] for q in data['questions']]


class TestResponses:

    def test_invalid_canonical_answer(self, client):
        response = answer(client, '2.1-1', 'maybe')
        assert response.status_code == 400

    def test_unknown_option(self, client):
        response = answer(client, '2.1-7', 'helipad')
        assert response.status_code == 400

    def test_unknown_question(self, client):
        response = answer(client, '9.9-9', 'yes')
        assert response.status_code == 404

    def test_tagged_payload(self, client):
        response = client.post(
            f'/api/modules/{MODULE}/responses?depth=detailed',
            json={'question_id': '2.1-3', 'payload': {'kind': 'measurement', 'value': 850, 'unit': 'mm',
                                                      'confidence': 'not-confident'}},
        )
        data = response.get_json()
        assert data['success']
        assert data['needs_professional_review'] is True

    def test_safety_question_flagged(self, client):
        answer(client, '2.1-1', 'no')
        data = answer(client, '2.1-2', 'no').get_json()
        assert data['needs_professional_review'] is True

    def test_progress_is_saved(self, client):
        answer(client, '2.1-1', 'yes')
        services = app.extensions[SERVICES_KEY]
        assert services['store'].snapshot_count('test-subject') == 1


class TestRuns:

    def test_complete_requires_start(self, client):
        response = client.post(f'/api/modules/{MODULE}/complete')
        assert response.status_code == 400

    def test_complete_module(self, client):
        answer(client, '2.1-1', 'yes')
        answer(client, '2.1-4', 'yes')
        data = client.post(f'/api/modules/{MODULE}/complete', json={'completed_by': 'Sam'}).get_json()

        assert data['run']['status'] == 'completed'
        assert data['run']['confidence_snapshot'] == 'strong'
        assert data['run']['ownership']['completed_by'] == 'Sam'

    def test_new_run_requires_context_name(self, client):
        response = client.post(f'/api/modules/{MODULE}/runs', json={'context': {'type': 'team', 'name': ''}})
        assert response.status_code == 400

    def test_run_history_and_comparison(self, client):
        baseline_id = new_run(client, 'Baseline').get_json()['run_id']
        answer(client, '2.1-1', 'no')
        answer(client, '2.1-4', 'yes')
        client.post(f'/api/modules/{MODULE}/complete')

        new_run(client, 'Follow-up')
        answer(client, '2.1-1', 'yes')
        answer(client, '2.1-4', 'yes')

        runs = client.get(f'/api/modules/{MODULE}/runs').get_json()
        assert len(runs['runs']) == 2

        data = client.get(f'/api/modules/{MODULE}/compare?run_a={baseline_id}').get_json()
        assert data['comparison']['improvements'] == ['2.1-1']
        assert data['comparison']['overall_trend'] == 'improving'

        previous = client.get(f'/api/modules/{MODULE}/runs/current/compare-previous').get_json()
        assert previous['comparison']['run_a']['id'] == baseline_id

        summary = client.get('/api/progress-summary').get_json()
        assert summary['total_improvements'] == 1
        assert summary['overall_trend'] == 'improving'

    def test_compare_unknown_run(self, client):
        answer(client, '2.1-1', 'yes')
        response = client.get(f'/api/modules/{MODULE}/compare?run_a=run-missing')
        assert response.status_code == 404

    def test_archive_empty_run(self, client):
        client.post(f'/api/modules/{MODULE}/start')
        response = client.post(f'/api/modules/{MODULE}/runs/archive', json={'context': {'name': 'Snapshot'}})
        assert response.status_code == 400

    def test_switch_run(self, client):
        first_id = new_run(client, 'First').get_json()['run_id']
        answer(client, '2.1-1', 'no')
        new_run(client, 'Second')

        data = client.post(f'/api/modules/{MODULE}/runs/{first_id}/switch').get_json()
        assert data['active_run_id'] == first_id

        missing = client.post(f'/api/modules/{MODULE}/runs/run-missing/switch')
        assert missing.status_code == 404

    def test_delete_and_restore(self, client):
        answer(client, '2.1-1', 'no')
        deleted = client.delete(f'/api/modules/{MODULE}/runs/current').get_json()

        assert deleted['status'] == 'not-started'
        assert len(deleted['recovery_code']) == 8

        restored = client.post('/api/runs/restore', json={'recovery_code': deleted['recovery_code']}).get_json()
        assert restored['module_id'] == MODULE
        assert restored['run_id'] == deleted['deleted_run_id']

        runs = client.get(f'/api/modules/{MODULE}/runs').get_json()
        assert runs['active_run_id'] is None
        assert [r['id'] for r in runs['runs']] == [deleted['deleted_run_id']]

    def test_failed_backup_keeps_run(self, client, monkeypatch):
        answer(client, '2.1-1', 'no')
        services = app.extensions[SERVICES_KEY]

        def failing_backup(*args, **kwargs):
            raise OSError('disk full')

        monkeypatch.setattr(services['store'], 'backup_deleted_run', failing_backup)
        response = client.delete(f'/api/modules/{MODULE}/runs/current')

        assert response.status_code == 500
        manager = services['manager']
        assert manager.get_active_run(MODULE) is not None
        assert manager.get_response(MODULE, '2.1-1').answer == 'no'

    def test_recovery_code_restores_once(self, client):
        answer(client, '2.1-1', 'no')
        code = client.delete(f'/api/modules/{MODULE}/runs/current').get_json()['recovery_code']

        assert client.post('/api/runs/restore', json={'recovery_code': code}).status_code == 200
        again = client.post('/api/runs/restore', json={'recovery_code': code})
        assert again.status_code == 404

    def test_restore_unknown_code(self, client):
        response = client.post('/api/runs/restore', json={'recovery_code': 'ZZZZ2222'})
        assert response.status_code == 404

    def test_ownership(self, client):
        data = client.put(f'/api/modules/{MODULE}/ownership', json={'assigned_to': 'Sam'}).get_json()
        assert data['ownership'] == {'assigned_to': 'Sam'}

        bad = client.put(f'/api/modules/{MODULE}/ownership', json={'shoe_size': 9})
        assert bad.status_code == 400
