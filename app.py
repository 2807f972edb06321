"""
Flask Web Application for the Assessment Engine

JSON API over the visibility engine and run manager. Progress for one
subject is held in memory and saved as a snapshot after every mutation.

Configuration (app.config, overridable via ASSESSMENT_* environment vars):
    QUESTIONNAIRE_PATH: Questionnaire JSON
    PROGRESS_DIR: Snapshot / backup directory
    SUBJECT_ID: Subject whose progress is served
    REVIEW_DEPTH: Default pass depth when a request gives none
"""

from flask import Flask, request, jsonify
import logging

from assessment.contracts import (
    ModuleSummary,
    QuestionType,
    Response,
    RunContext,
    RunStatus,
)
from assessment.core.run_comparator import summarize_progress
from assessment.core.run_manager import CURRENT_RUN_ALIAS, RunManager
from assessment.core.visibility_engine import VisibilityEngine, needs_professional_review
from assessment.persistence import ProgressStore
from assessment.utils.question_loader import DEFAULT_QUESTIONNAIRE_PATH, load_questionnaire
from assessment.utils.review_modes import parse_pass_depth

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config.update(
    QUESTIONNAIRE_PATH=DEFAULT_QUESTIONNAIRE_PATH,
    PROGRESS_DIR='outputs/progress',
    SUBJECT_ID='default',
    REVIEW_DEPTH='foundation',
)
app.config.from_prefixed_env('ASSESSMENT')

SERVICES_KEY = 'assessment'


def get_services():
    """Load questionnaire and progress once per app (lazy)"""
    services = app.extensions.get(SERVICES_KEY)
    if services is None:
        modules = load_questionnaire(app.config['QUESTIONNAIRE_PATH'])
        store = ProgressStore(app.config['PROGRESS_DIR'])
        manager = store.load_progress(app.config['SUBJECT_ID']) or RunManager()

        services = {
            'modules': modules,
            'engines': {module_id: VisibilityEngine(m.questions) for module_id, m in modules.items()},
            'store': store,
            'manager': manager,
        }
        app.extensions[SERVICES_KEY] = services
        logger.info(f"Assessment services ready for subject {app.config['SUBJECT_ID']}")
    return services


def save_progress():
    services = get_services()
    services['store'].save_progress(app.config['SUBJECT_ID'], services['manager'])


def error_response(message, status):
    return jsonify({
        'success': False,
        'error': message
    }), status


def question_to_dict(question, response=None):
    """Question fields the presentation layer needs"""
    return {
        'id': question.id,
        'text': question.text,
        'type': question.type.value,
        'review_depth': question.review_depth.value,
        'category': question.category,
        'help_text': question.help_text,
        'measurement_unit': question.measurement_unit,
        'options': [{'id': o.id, 'label': o.label} for o in question.options],
        'response': response.to_dict() if response else None,
        'needs_professional_review': needs_professional_review(question, response),
    }


def run_to_dict(run, active_run_id):
    data = run.to_dict()
    data['response_count'] = run.response_count
    data['is_active'] = run.id == active_run_id
    return data


def request_depth():
    return parse_pass_depth(request.args.get('depth', app.config['REVIEW_DEPTH']))


def request_json():
    return request.get_json(silent=True) or {}


def build_response(question, data):
    """
    Build a Response from a request body.

    Accepts {'answer': ...} for yes/no/unsure and single-select questions,
    or a tagged {'payload': {...}} for everything else.

    Raises:
        ValueError: If the answer doesn't fit the question
    """
    body = dict(data, question_id=question.id)
    response = Response.from_dict(body)

    if question.type == QuestionType.YES_NO_UNSURE and response.canonical_answer is None:
        raise ValueError(f"Question {question.id} needs yes, partially, no or unable-to-check")
    if question.type == QuestionType.SINGLE_SELECT:
        option_ids = {o.id for o in question.options}
        if response.answer not in option_ids:
            raise ValueError(f"Unknown option {response.answer!r} for question {question.id}")

    return response


def build_context(data):
    """RunContext from {'context': {...}} (ValueError if name missing)"""
    raw = data.get('context')
    if not isinstance(raw, dict):
        raise ValueError("Request needs a 'context' object with a name")
    return RunContext.from_dict(raw)


# ========================
# Modules
# ========================

@app.route('/api/modules', methods=['GET'])
def list_modules():
    """Modules with status and overall progress"""
    try:
        services = get_services()
        manager = services['manager']
        modules = services['modules']

        return jsonify({
            'success': True,
            'modules': [
                {
                    'id': m.id,
                    'code': m.code,
                    'name': m.name,
                    'status': manager.get_status(m.id).value,
                }
                for m in modules.values()
            ],
            'overall_progress': manager.get_overall_progress(list(modules)),
        })

    except Exception as e:
        logger.error(f"Error listing modules: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/start', methods=['POST'])
def start_module(module_id):
    """Start (or resume) a module"""
    try:
        services = get_services()
        module = services['modules'].get(module_id)
        if module is None:
            return error_response(f"Unknown module: {module_id}", 404)

        run_id = services['manager'].start_module(module.id, module.code)
        save_progress()

        return jsonify({
            'success': True,
            'run_id': run_id,
            'status': services['manager'].get_status(module_id).value
        })

    except Exception as e:
        logger.error(f"Error starting module {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/questions', methods=['GET'])
def visible_questions(module_id):
    """
    Visible questions for the active run.

    Query args:
        depth: foundation / detailed (defaults to REVIEW_DEPTH)
        current: Question id to compute next / previous from
    """
    try:
        services = get_services()
        engine = services['engines'].get(module_id)
        if engine is None:
            return error_response(f"Unknown module: {module_id}", 404)

        depth = request_depth()
        responses = services['manager'].get_responses(module_id)
        visible = engine.compute_visible(responses, depth)
        first_unanswered = engine.get_first_unanswered(responses, depth)

        result = {
            'success': True,
            'depth': depth.value,
            'questions': [question_to_dict(q, responses.get(q.id)) for q in visible],
            'progress': engine.get_progress_counts(responses, depth),
            'first_unanswered': first_unanswered.id if first_unanswered else None,
        }

        current = request.args.get('current')
        if current:
            next_question = engine.get_next_question(current, responses, depth)
            previous_question = engine.get_previous_question(current, responses, depth)
            result['next'] = next_question.id if next_question else None
            result['previous'] = previous_question.id if previous_question else None

        return jsonify(result)

    except ValueError as e:
        return error_response(str(e), 400)

    except Exception as e:
        logger.error(f"Error computing visible questions for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/responses', methods=['POST'])
def save_response(module_id):
    """Save one answer into the active run"""
    try:
        services = get_services()
        engine = services['engines'].get(module_id)
        if engine is None:
            return error_response(f"Unknown module: {module_id}", 404)

        data = request_json()
        question = engine.get_question(data.get('question_id', ''))
        if question is None:
            return error_response(f"Unknown question: {data.get('question_id')}", 404)

        response = build_response(question, data)
        manager = services['manager']
        manager.save_response(module_id, response)
        save_progress()

        depth = request_depth()
        responses = manager.get_responses(module_id)
        next_question = engine.get_next_question(question.id, responses, depth)

        return jsonify({
            'success': True,
            'next': next_question.id if next_question else None,
            'progress': engine.get_progress_counts(responses, depth),
            'needs_professional_review': needs_professional_review(question, response),
        })

    except (ValueError, KeyError, TypeError) as e:
        return error_response(str(e), 400)

    except Exception as e:
        logger.error(f"Error saving response for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/complete', methods=['POST'])
def complete_module(module_id):
    """Complete the active run"""
    try:
        services = get_services()
        if module_id not in services['modules']:
            return error_response(f"Unknown module: {module_id}", 404)

        manager = services['manager']
        if manager.get_status(module_id) == RunStatus.NOT_STARTED:
            return error_response(f"Module {module_id} has not been started", 400)

        data = request_json()
        summary = ModuleSummary.from_dict(data.get('summary'))
        manager.complete_module(
            module_id,
            summary=summary,
            completed_by=data.get('completed_by'),
            completed_by_role=data.get('completed_by_role'),
        )
        save_progress()

        run = manager.get_active_run(module_id)
        return jsonify({
            'success': True,
            'run': run_to_dict(run, run.id),
        })

    except Exception as e:
        logger.error(f"Error completing module {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/ownership', methods=['PUT'])
def update_ownership(module_id):
    try:
        services = get_services()
        if module_id not in services['modules']:
            return error_response(f"Unknown module: {module_id}", 404)

        services['manager'].update_ownership(module_id, **request_json())
        save_progress()

        progress = services['manager'].get_module_progress(module_id)
        return jsonify({
            'success': True,
            'ownership': progress.ownership.to_dict(),
        })

    except ValueError as e:
        return error_response(str(e), 400)

    except Exception as e:
        logger.error(f"Error updating ownership for {module_id}: {e}")
        return error_response(str(e), 500)


# ========================
# Runs
# ========================

@app.route('/api/modules/<module_id>/runs', methods=['GET'])
def list_runs(module_id):
    try:
        services = get_services()
        if module_id not in services['modules']:
            return error_response(f"Unknown module: {module_id}", 404)

        manager = services['manager']
        active = manager.get_active_run(module_id)
        active_id = active.id if active else None

        return jsonify({
            'success': True,
            'active_run_id': active_id,
            'runs': [run_to_dict(run, active_id) for run in manager.list_runs(module_id)],
        })

    except Exception as e:
        logger.error(f"Error listing runs for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/runs', methods=['POST'])
def start_new_run(module_id):
    """Start a fresh run; the current one moves into history"""
    try:
        services = get_services()
        if module_id not in services['modules']:
            return error_response(f"Unknown module: {module_id}", 404)

        context = build_context(request_json())
        run_id = services['manager'].start_new_run(module_id, context)
        save_progress()

        return jsonify({
            'success': True,
            'run_id': run_id
        }), 201

    except ValueError as e:
        return error_response(str(e), 400)

    except Exception as e:
        logger.error(f"Error starting new run for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/runs/archive', methods=['POST'])
def archive_current_run(module_id):
    """Snapshot the active run under a name; the active run stays editable"""
    try:
        services = get_services()
        if module_id not in services['modules']:
            return error_response(f"Unknown module: {module_id}", 404)

        context = build_context(request_json())
        run_id = services['manager'].archive_current_as_run(module_id, context)
        if run_id is None:
            return error_response("Nothing to archive: the current run has no responses", 400)
        save_progress()

        return jsonify({
            'success': True,
            'run_id': run_id
        }), 201

    except ValueError as e:
        return error_response(str(e), 400)

    except Exception as e:
        logger.error(f"Error archiving run for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/runs/<run_id>/switch', methods=['POST'])
def switch_run(module_id, run_id):
    try:
        services = get_services()
        manager = services['manager']
        if manager.get_run(module_id, run_id) is None:
            return error_response(f"Unknown run: {run_id}", 404)

        manager.switch_to_run(module_id, run_id)
        save_progress()

        return jsonify({
            'success': True,
            'active_run_id': manager.get_active_run(module_id).id
        })

    except Exception as e:
        logger.error(f"Error switching run for {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/runs/<run_id>', methods=['DELETE'])
def delete_run(module_id, run_id):
    """Delete a run; a backup is kept and a recovery code returned"""
    try:
        services = get_services()
        manager = services['manager']
        run = manager.get_run(module_id, run_id)
        if run is None:
            return error_response(f"Unknown run: {run_id}", 404)

        # Backup first: a failed backup must leave the run in place
        recovery_code = services['store'].backup_deleted_run(
            app.config['SUBJECT_ID'], module_id, run
        )
        manager.delete_run(module_id, run.id)
        save_progress()

        return jsonify({
            'success': True,
            'deleted_run_id': run.id,
            'recovery_code': recovery_code,
            'status': manager.get_status(module_id).value
        })

    except Exception as e:
        logger.error(f"Error deleting run {run_id} in {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/runs/restore', methods=['POST'])
def restore_run():
    """Bring a deleted run back from its recovery code"""
    try:
        services = get_services()
        recovery_code = request_json().get('recovery_code', '')
        if not recovery_code:
            return error_response("Request needs a recovery_code", 400)

        restored = services['store'].restore_deleted_run(recovery_code)
        if restored is None:
            return error_response("Recovery code not found or expired", 404)

        module_id, run = restored
        run_id = services['manager'].restore_run(module_id, run)
        save_progress()

        return jsonify({
            'success': True,
            'module_id': module_id,
            'run_id': run_id
        })

    except Exception as e:
        logger.error(f"Error restoring run: {e}")
        return error_response(str(e), 500)


# ========================
# Comparison
# ========================

@app.route('/api/modules/<module_id>/compare', methods=['GET'])
def compare_runs(module_id):
    """Compare run_a (baseline) with run_b; 'current' accepted for either"""
    try:
        services = get_services()
        run_a = request.args.get('run_a')
        run_b = request.args.get('run_b', CURRENT_RUN_ALIAS)
        if not run_a:
            return error_response("Query needs run_a", 400)

        comparison = services['manager'].compare_runs(module_id, run_a, run_b)
        if comparison is None:
            return error_response("Unknown run", 404)

        return jsonify({
            'success': True,
            'comparison': comparison.to_dict()
        })

    except Exception as e:
        logger.error(f"Error comparing runs in {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/modules/<module_id>/runs/<run_id>/compare-previous', methods=['GET'])
def compare_with_previous(module_id, run_id):
    try:
        services = get_services()
        comparison = services['manager'].compare_with_previous(module_id, run_id)

        return jsonify({
            'success': True,
            'comparison': comparison.to_dict() if comparison else None
        })

    except Exception as e:
        logger.error(f"Error comparing {run_id} with previous in {module_id}: {e}")
        return error_response(str(e), 500)


@app.route('/api/progress-summary', methods=['GET'])
def progress_summary():
    """Roll up each module's active run against its previous completed run"""
    try:
        services = get_services()
        manager = services['manager']

        comparisons = []
        for module_id in services['modules']:
            comparison = manager.compare_with_previous(module_id, CURRENT_RUN_ALIAS)
            if comparison is not None:
                comparisons.append(comparison)

        summary = summarize_progress(comparisons)
        return jsonify({
            'success': True,
            'modules_compared': len(comparisons),
            'total_improvements': summary.total_improvements,
            'total_regressions': summary.total_regressions,
            'overall_trend': summary.overall_trend.value
        })

    except Exception as e:
        logger.error(f"Error building progress summary: {e}")
        return error_response(str(e), 500)


if __name__ == '__main__':
    # Fail fast on a bad questionnaire before serving
    get_services()

    print("\n" + "="*60)
    print("ASSESSMENT ENGINE - JSON API")
    print("="*60)
    print("\nServer starting...")
    print("API root: http://localhost:5000/api/modules")
    print("\nPress Ctrl+C to stop the server")
    print("="*60 + "\n")

    app.run(debug=True, host='0.0.0.0', port=5000)
