"""
Console Test Harness for the assessment engine

Simple console loop to walk a module's questions before adding Flask
complexity. Progress is saved as snapshots after every answer.

Usage:
    python main.py [subject_id] [foundation|detailed]
"""

import logging
import sys

from assessment.contracts import ContextType, RunContext
from assessment.core.run_manager import CURRENT_RUN_ALIAS, RunManager
from assessment.core.visibility_engine import VisibilityEngine
from assessment.persistence import ProgressStore
from assessment.utils.display_helpers import (
    answer_prompt,
    format_comparison,
    parse_console_answer,
)
from assessment.utils.question_loader import DEFAULT_QUESTIONNAIRE_PATH, load_questionnaire
from assessment.utils.review_modes import parse_pass_depth

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {'quit', 'exit', 'stop'}


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def choose_module(modules, manager):
    """Prompt for a module; returns Module or None to quit"""
    module_list = list(modules.values())

    print("\nModules:")
    for index, module in enumerate(module_list, start=1):
        status = manager.get_status(module.id).value
        print(f"  {index}. [{module.code}] {module.name} ({status})")

    while True:
        choice = input("\nSelect module number (or 'quit'): ").strip().lower()
        if choice in EXIT_COMMANDS:
            return None
        if choice.isdigit() and 1 <= int(choice) <= len(module_list):
            return module_list[int(choice) - 1]
        print("Please enter a number from the list.")


def print_comparison(manager, module):
    """Show how the active run compares with the previous completed one"""
    comparison = manager.compare_with_previous(module.id, CURRENT_RUN_ALIAS)
    if comparison is None:
        print("\nNo earlier completed run to compare with.")
        return

    print_separator("-")
    print("COMPARED WITH PREVIOUS RUN")
    print_separator("-")
    for line in format_comparison(comparison, list(module.questions)):
        print(line)


def run_questions(module, engine, manager, store, subject_id, depth):
    """
    Ask visible questions until none are left.

    Returns:
        bool: True if every visible question was answered
    """
    while True:
        responses = manager.get_responses(module.id)
        question = engine.get_first_unanswered(responses, depth)
        if question is None:
            return True

        counts = engine.get_progress_counts(responses, depth)
        print(f"\n[{counts['answered'] + 1}/{counts['total']}] {question.text}")
        if question.help_text:
            print(f"  ({question.help_text})")
        print(f"  Answer with {answer_prompt(question)}")

        user_input = input("> ").strip()
        if not user_input:
            print("Please enter a response.")
            continue
        if user_input.lower() in EXIT_COMMANDS:
            return False

        try:
            response = parse_console_answer(question, user_input)
        except ValueError as e:
            print(f"Invalid answer: {e}")
            continue

        manager.save_response(module.id, response)
        store.save_progress(subject_id, manager)


def main():
    """Run console test"""
    subject_id = sys.argv[1] if len(sys.argv) > 1 else "console"
    raw_depth = sys.argv[2] if len(sys.argv) > 2 else "foundation"

    print_separator()
    print("ASSESSMENT ENGINE - CONSOLE TEST")
    print_separator()

    try:
        depth = parse_pass_depth(raw_depth)
        modules = load_questionnaire(DEFAULT_QUESTIONNAIRE_PATH)
        store = ProgressStore()
        manager = store.load_progress(subject_id) or RunManager()
        print(f"\nLoaded {len(modules)} modules for subject '{subject_id}' ({depth.value} review)")

    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        import traceback
        traceback.print_exc()
        return 1

    print("Type 'quit', 'exit', or 'stop' to end early\n")

    while True:
        try:
            module = choose_module(modules, manager)
            if module is None:
                break

            engine = VisibilityEngine(module.questions)
            run_id = manager.start_module(module.id, module.code)
            print_separator()
            print(f"MODULE {module.code}: {module.name.upper()} (run {run_id})")
            print_separator()

            if not run_questions(module, engine, manager, store, subject_id, depth):
                print("\nProgress saved. Pick up where you left off next time.")
                continue

            manager.complete_module(module.id)
            store.save_progress(subject_id, manager)
            run = manager.get_active_run(module.id)

            print_separator()
            print("MODULE COMPLETE")
            print_separator()
            print(f"  - Responses: {run.response_count}")
            print(f"  - Confidence: {run.confidence_snapshot.value}")

            print_comparison(manager, module)

            again = input("\nStart a new run of this module? (y/n): ").strip().lower()
            if again == 'y':
                name = input("Run name (e.g. 'Front desk team'): ").strip() or "Follow-up review"
                manager.start_new_run(module.id, RunContext(ContextType.GENERAL, name))
                store.save_progress(subject_id, manager)

        except KeyboardInterrupt:
            print("\n\nAssessment interrupted by user (Ctrl+C)")
            break

        except Exception as e:
            print(f"\nERROR: {e}")
            import traceback
            traceback.print_exc()

            # Ask if user wants to continue
            try:
                cont = input("\nContinue assessment? (y/n): ").strip().lower()
                if cont != 'y':
                    break
            except KeyboardInterrupt:
                break

    print_separator()
    print("Console test complete")
    print_separator()
    return 0


if __name__ == '__main__':
    sys.exit(main())
