"""
Run Manager - module progress and run lifecycle

Responsibilities:
- Own one ModuleProgress record per module key
- Module lifecycle: start, save responses, complete
- Run lifecycle: start new run, archive current, switch, delete
- Confidence snapshot at completion
- Run comparison lookups by id
- Plain-dict export / import for the caller's persistence layer

Design principles:
- Single owner: every mutation goes through this class, so the
  invariants below are enforced in one place
- Total operations: unknown modules / runs are logged no-ops, never errors
- No persistence: the caller stores export_for_json() wherever it likes
- Getters return deep copies (safe to modify)

Invariants:
- At most one active run per module; active_run_id references an entry
  of runs or is None (module not started)
- The run being edited is always a real entry of runs. Before any run is
  named it is a provisional run with a placeholder context
- Run.archived is the explicit "already captured in history" marker.
  Any edit clears it

State machine (per module, driven by the active run):
    NOT_STARTED --start_module / save_response--> IN_PROGRESS
    IN_PROGRESS --complete_module--> COMPLETED
    any --delete_run(active)--> NOT_STARTED (no active run)
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from assessment.contracts import (
    PREVIOUS_ASSESSMENT_CONTEXT,
    PROVISIONAL_CONTEXT,
    ConfidenceSnapshot,
    ModuleOwnership,
    ModuleProgress,
    ModuleSummary,
    Response,
    Run,
    RunComparison,
    RunContext,
    RunStatus,
)
from assessment.core.run_comparator import compare_runs, find_previous_completed_run
from assessment.utils.answer_options import AnswerValue, is_negative_answer
from assessment.utils.helpers import generate_run_id, utc_now_iso

logger = logging.getLogger(__name__)

# Run id accepted as an alias of whichever run is currently active
CURRENT_RUN_ALIAS = "current"

# Format version of export_for_json()
EXPORT_VERSION = 1

STRONG_THRESHOLD_PERCENT = 70
NEEDS_WORK_THRESHOLD_PERCENT = 50


def calculate_confidence_snapshot(responses: Iterable[Response]) -> ConfidenceSnapshot:
    """
    Coarse rollup of how positively a run's answers skew.

    Percentages are taken over every response in the run. 'partially'
    and non-canonical payloads count towards the total but are neither
    positive nor negative.

    Rules:
    - no responses -> needs-work
    - yes >= 70% -> strong
    - no + unable-to-check >= 50% -> needs-work
    - otherwise mixed

    Args:
        responses: Responses of the run

    Returns:
        ConfidenceSnapshot
    """
    total = 0
    yes_count = 0
    negative_count = 0

    for response in responses:
        total += 1
        answer = response.canonical_answer
        if answer == AnswerValue.YES:
            yes_count += 1
        elif is_negative_answer(answer):
            negative_count += 1

    if total == 0:
        return ConfidenceSnapshot.NEEDS_WORK

    # Integer comparison avoids float edge cases at exactly 70% / 50%
    if yes_count * 100 >= STRONG_THRESHOLD_PERCENT * total:
        return ConfidenceSnapshot.STRONG
    if negative_count * 100 >= NEEDS_WORK_THRESHOLD_PERCENT * total:
        return ConfidenceSnapshot.NEEDS_WORK
    return ConfidenceSnapshot.MIXED


class RunManager:
    """Owns module progress and run history for one subject"""

    OWNERSHIP_FIELDS = set(ModuleOwnership.__dataclass_fields__)

    def __init__(self):
        """Initialize empty progress map"""
        self.progress: Dict[str, ModuleProgress] = {}
        logger.info("Run Manager initialized")

    # ========================
    # Private Helpers
    # ========================

    def _get_or_create(self, module_id: str, module_code: Optional[str] = None) -> ModuleProgress:
        progress = self.progress.get(module_id)
        if progress is None:
            progress = ModuleProgress(module_id=module_id, module_code=module_code or module_id)
            self.progress[module_id] = progress
            logger.debug(f"Created progress record for module '{module_id}'")
        elif module_code and progress.module_code != module_code:
            progress.module_code = module_code
        return progress

    def _new_run(self, progress: ModuleProgress, context: RunContext, provisional: bool = False) -> Run:
        """Create a not-started run, append it and make it active."""
        run = Run(
            id=generate_run_id(),
            context=context,
            started_at=utc_now_iso(),
            ownership=copy.deepcopy(progress.ownership),
            provisional=provisional,
        )
        progress.runs.append(run)
        progress.active_run_id = run.id
        return run

    def _resolve_run_id(self, progress: ModuleProgress, run_id: Optional[str]) -> Optional[str]:
        if run_id == CURRENT_RUN_ALIAS:
            return progress.active_run_id
        return run_id

    def _start_run(self, run: Run) -> None:
        run.status = RunStatus.IN_PROGRESS
        run.started_at = utc_now_iso()

    def _retire_active_run(self, progress: ModuleProgress) -> None:
        """
        Move the active run into history before another run becomes active.

        - Named runs stay in history as they are
        - Empty provisional runs are discarded
        - Provisional runs whose content is already archived are discarded
          (their snapshot represents them)
        - Other provisional runs are kept, relabelled 'Previous assessment'
        """
        current = progress.active_run
        if current is None:
            return

        if not current.provisional:
            if current.responses:
                current.archived = True
            return

        if not current.responses or current.archived:
            progress.runs.remove(current)
            logger.debug(f"Module '{progress.module_id}': discarded provisional run {current.id}")
            return

        current.context = PREVIOUS_ASSESSMENT_CONTEXT
        current.provisional = False
        current.archived = True
        logger.info(f"Module '{progress.module_id}': auto-archived unnamed work as run {current.id}")

    # ========================
    # Module Lifecycle
    # ========================

    def start_module(self, module_id: str, module_code: Optional[str] = None) -> str:
        """
        Start a module (idempotent).

        Creates a provisional run if none is active. A not-started active
        run moves to in-progress and gets a fresh started_at. Already
        started modules are left untouched.

        Args:
            module_id: Module key
            module_code: Display code (e.g. '1.1'), defaults to module_id

        Returns:
            str: Active run ID
        """
        progress = self._get_or_create(module_id, module_code)
        run = progress.active_run

        if run is None:
            run = self._new_run(progress, PROVISIONAL_CONTEXT, provisional=True)

        if run.status != RunStatus.NOT_STARTED:
            logger.debug(f"Module '{module_id}' already started")
            return run.id

        self._start_run(run)
        logger.info(f"Started module '{module_id}' (run {run.id})")
        return run.id

    def save_response(self, module_id: str, response: Response) -> None:
        """
        Upsert a response into the active run.

        Starts the module implicitly if needed. A later write for the same
        question replaces the earlier one.

        Args:
            module_id: Module key
            response: Response to store
        """
        progress = self._get_or_create(module_id)
        run = progress.active_run

        if run is None:
            run = self._new_run(progress, PROVISIONAL_CONTEXT, provisional=True)
        if run.status == RunStatus.NOT_STARTED:
            self._start_run(run)

        run.responses[response.question_id] = response
        run.archived = False
        logger.debug(f"Module '{module_id}': {response.question_id} = {response.answer}")

    def complete_module(
        self,
        module_id: str,
        summary: Optional[ModuleSummary] = None,
        completed_by: Optional[str] = None,
        completed_by_role: Optional[str] = None
    ) -> None:
        """
        Complete the active run.

        No-op (logged) if the module has not been started. Stores the
        confidence snapshot, summary and completer details.

        Args:
            module_id: Module key
            summary: Caller-built summary, stored verbatim
            completed_by: Completer name (defaults to ownership.assigned_to)
            completed_by_role: Completer role / title
        """
        progress = self.progress.get(module_id)
        run = progress.active_run if progress else None

        if run is None or run.status == RunStatus.NOT_STARTED:
            logger.warning(f"complete_module ignored: module '{module_id}' not started")
            return

        ownership = ModuleOwnership.from_dict({
            **progress.ownership.to_dict(),
            **run.ownership.to_dict(),
        })
        ownership.completed_by = completed_by or ownership.assigned_to
        ownership.completed_by_role = completed_by_role

        run.status = RunStatus.COMPLETED
        run.completed_at = utc_now_iso()
        run.summary = copy.deepcopy(summary)
        run.ownership = ownership
        run.confidence_snapshot = calculate_confidence_snapshot(run.responses.values())
        run.archived = False

        logger.info(
            f"Completed module '{module_id}' (run {run.id}, "
            f"{run.response_count} responses, confidence={run.confidence_snapshot.value})"
        )

    def update_ownership(self, module_id: str, **fields: Any) -> None:
        """
        Merge ownership fields into a module's assignment.

        Creates a not-started progress record if needed.

        Args:
            module_id: Module key
            **fields: assigned_to, assigned_to_email, target_completion_date, ...

        Raises:
            ValueError: If an unknown ownership field is given
        """
        unknown = set(fields) - self.OWNERSHIP_FIELDS
        if unknown:
            raise ValueError(f"Unknown ownership fields: {sorted(unknown)}")

        progress = self._get_or_create(module_id)
        for name, value in fields.items():
            setattr(progress.ownership, name, value)

        run = progress.active_run
        if run is not None and run.status != RunStatus.COMPLETED:
            for name, value in fields.items():
                setattr(run.ownership, name, value)

        logger.debug(f"Module '{module_id}': ownership updated {sorted(fields)}")

    # ========================
    # Run Lifecycle
    # ========================

    def start_new_run(self, module_id: str, context: RunContext) -> str:
        """
        Start a fresh, empty run and make it active.

        The previously active run is moved into history first (see
        _retire_active_run): unnamed work with responses is kept as a
        'Previous assessment' run.

        Args:
            module_id: Module key
            context: What the new run is for

        Returns:
            str: New run ID
        """
        progress = self._get_or_create(module_id)
        self._retire_active_run(progress)

        run = self._new_run(progress, context)
        logger.info(f"Module '{module_id}': started new run {run.id} ({context.name})")
        return run.id

    def archive_current_as_run(self, module_id: str, context: RunContext) -> Optional[str]:
        """
        Snapshot the active run's responses as a new named run.

        The active run stays active and editable.

        Args:
            module_id: Module key
            context: Label for the snapshot

        Returns:
            str: Snapshot run ID, or None if there are no responses
        """
        progress = self.progress.get(module_id)
        current = progress.active_run if progress else None

        if current is None or not current.responses:
            logger.debug(f"Module '{module_id}': nothing to archive")
            return None

        snapshot = Run(
            id=generate_run_id(),
            context=context,
            started_at=current.started_at,
            status=current.status,
            completed_at=current.completed_at,
            responses=dict(current.responses),
            summary=copy.deepcopy(current.summary),
            ownership=copy.deepcopy(current.ownership),
            confidence_snapshot=current.confidence_snapshot,
            archived=True,
        )
        progress.runs.append(snapshot)
        current.archived = True

        logger.info(f"Module '{module_id}': archived run {current.id} as {snapshot.id} ({context.name})")
        return snapshot.id

    def switch_to_run(self, module_id: str, run_id: str) -> None:
        """
        Make another run the one being edited.

        Unknown run IDs are a logged no-op. Work in the previously active
        run is never lost: it stays in history.

        Args:
            module_id: Module key
            run_id: Run to activate
        """
        progress = self.progress.get(module_id)
        target = progress.find_run(run_id) if progress else None

        if target is None:
            logger.warning(f"switch_to_run ignored: run '{run_id}' not found in module '{module_id}'")
            return

        if target.id == progress.active_run_id:
            return

        self._retire_active_run(progress)
        progress.active_run_id = target.id
        logger.info(f"Module '{module_id}': switched to run {target.id}")

    def delete_run(self, module_id: str, run_id: str) -> Optional[Run]:
        """
        Remove a run from history.

        Deleting the active run resets the module to not-started with all
        fields cleared.

        Args:
            module_id: Module key
            run_id: Run to delete ('current' for the active run)

        Returns:
            Run: The removed run (for backup), or None if not found
        """
        progress = self.progress.get(module_id)
        if progress is None:
            logger.warning(f"delete_run ignored: unknown module '{module_id}'")
            return None

        run = progress.find_run(self._resolve_run_id(progress, run_id))
        if run is None:
            logger.warning(f"delete_run ignored: run '{run_id}' not found in module '{module_id}'")
            return None

        progress.runs.remove(run)

        if run.id == progress.active_run_id:
            progress.active_run_id = None
            progress.ownership = ModuleOwnership()
            logger.info(f"Module '{module_id}': deleted active run {run.id}, module reset")
        else:
            logger.info(f"Module '{module_id}': deleted run {run.id}")

        return run

    def restore_run(self, module_id: str, run: Run) -> str:
        """
        Put a previously deleted run back into a module's history.

        The restored run is not made active. A new id is issued if the
        original id is taken.

        Args:
            module_id: Module key
            run: Run recovered from a backup

        Returns:
            str: ID of the restored run
        """
        progress = self._get_or_create(module_id)
        restored = copy.deepcopy(run)

        if progress.find_run(restored.id) is not None:
            restored.id = generate_run_id()
        restored.provisional = False
        restored.archived = True

        progress.runs.append(restored)
        progress.runs.sort(key=lambda r: r.id)
        logger.info(f"Module '{module_id}': restored run {restored.id}")
        return restored.id

    # ========================
    # Queries
    # ========================

    def get_module_progress(self, module_id: str) -> Optional[ModuleProgress]:
        """Module progress (deep copy) or None."""
        progress = self.progress.get(module_id)
        return copy.deepcopy(progress) if progress else None

    def get_status(self, module_id: str) -> RunStatus:
        progress = self.progress.get(module_id)
        return progress.status if progress else RunStatus.NOT_STARTED

    def get_active_run(self, module_id: str) -> Optional[Run]:
        """Active run (deep copy) or None."""
        progress = self.progress.get(module_id)
        run = progress.active_run if progress else None
        return copy.deepcopy(run) if run else None

    def get_run(self, module_id: str, run_id: str) -> Optional[Run]:
        """Run by id (deep copy) or None. Accepts 'current'."""
        progress = self.progress.get(module_id)
        if progress is None:
            return None
        run = progress.find_run(self._resolve_run_id(progress, run_id))
        return copy.deepcopy(run) if run else None

    def list_runs(self, module_id: str) -> List[Run]:
        """All runs of a module in creation order (deep copies)."""
        progress = self.progress.get(module_id)
        return copy.deepcopy(progress.runs) if progress else []

    def get_history(self, module_id: str) -> List[Run]:
        """Runs other than the active one (deep copies)."""
        progress = self.progress.get(module_id)
        return copy.deepcopy(progress.history) if progress else []

    def get_responses(self, module_id: str) -> Dict[str, Response]:
        """Active run's responses. Response objects are immutable."""
        progress = self.progress.get(module_id)
        return progress.responses if progress else {}

    def get_response(self, module_id: str, question_id: str) -> Optional[Response]:
        return self.get_responses(module_id).get(question_id)

    def get_overall_progress(self, selected_modules: Optional[List[str]] = None) -> Dict[str, int]:
        """
        Completion counts across modules.

        Args:
            selected_modules: Modules in scope (defaults to every module with
                a progress record)

        Returns:
            dict: {'completed': int, 'total': int, 'percentage': int}
        """
        module_ids = list(selected_modules) if selected_modules is not None else list(self.progress)
        total = len(module_ids)
        completed = sum(1 for m in module_ids if self.get_status(m) == RunStatus.COMPLETED)
        percentage = (completed * 200 + total) // (2 * total) if total else 0

        return {"completed": completed, "total": total, "percentage": percentage}

    # ========================
    # Comparison
    # ========================

    def compare_runs(self, module_id: str, run_a_id: str, run_b_id: str) -> Optional[RunComparison]:
        """
        Compare two runs of a module ('current' accepted for either).

        Returns:
            RunComparison, or None if either run is unknown
        """
        run_a = self.get_run(module_id, run_a_id)
        run_b = self.get_run(module_id, run_b_id)

        if run_a is None or run_b is None:
            logger.warning(f"compare_runs: unknown run in module '{module_id}' ({run_a_id}, {run_b_id})")
            return None

        return compare_runs(run_a, run_b)

    def compare_with_previous(self, module_id: str, run_id: str) -> Optional[RunComparison]:
        """
        Compare a run with the most recent completed run started before it.

        Returns:
            RunComparison, or None if there is no such predecessor
        """
        progress = self.progress.get(module_id)
        if progress is None:
            return None

        resolved = self._resolve_run_id(progress, run_id)
        previous = find_previous_completed_run(progress.runs, resolved)
        if previous is None:
            return None

        return self.compare_runs(module_id, previous.id, resolved)

    # ========================
    # Export / Import
    # ========================

    def export_for_json(self) -> Dict[str, Any]:
        """
        Export all progress as a JSON-compatible dict.

        Returns:
            dict: {'version': int, 'modules': {module_id: {...}}}
        """
        return {
            "version": EXPORT_VERSION,
            "modules": {
                module_id: progress.to_dict()
                for module_id, progress in self.progress.items()
            },
        }

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> "RunManager":
        """
        Rebuild a manager from export_for_json() output.

        Raises:
            ValueError: If the export version is newer than this code
        """
        manager = cls()
        if not data:
            return manager

        version = data.get("version", EXPORT_VERSION)
        if version > EXPORT_VERSION:
            raise ValueError(f"Unsupported progress export version {version}")

        for module_id, raw in data.get("modules", {}).items():
            manager.progress[module_id] = ModuleProgress.from_dict(raw)

        logger.info(f"Run Manager restored with {len(manager.progress)} modules")
        return manager

    def reset(self) -> None:
        """
        Clear all progress.

        Warning: This erases all data. Use with caution.
        """
        self.progress.clear()
        logger.info("Run Manager reset - all progress cleared")
