"""
Progress persistence for the assessment engine.

Append-only JSON snapshots of a subject's module progress, plus
short-lived backups of deleted runs. The engine itself never persists;
callers (console harness, Flask app) save through this layer.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple

from assessment.contracts import Run
from assessment.core.run_manager import RunManager
from assessment.utils.helpers import generate_recovery_code

logger = logging.getLogger(__name__)

BACKUP_RETENTION_DAYS = 30


class ProgressStore:
    """
    Manages progress snapshots and deleted-run backups on disk.

    Layout:
        outputs/progress/SUBJECT-abc123/
            SUBJECT-abc123_SNAPSHOT-001.json
            SUBJECT-abc123_SNAPSHOT-002.json
            ...
        outputs/progress/deleted/
            DELETED-K7MPQ2XR.json

    Design:
    - Append-only snapshots (never overwrite)
    - Latest snapshot is the current state
    - Restart-resilient
    - Storage errors (OSError) propagate to the caller
    """

    def __init__(self, base_dir: str = "outputs/progress"):
        """
        Initialize persistence layer.

        Args:
            base_dir: Base directory for all subjects
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir = self.base_dir / "deleted"
        logger.info(f"ProgressStore initialized: {self.base_dir}")

    def _subject_dir(self, subject_id: str) -> Path:
        return self.base_dir / f"SUBJECT-{subject_id}"

    def _snapshot_files(self, subject_id: str):
        subject_dir = self._subject_dir(subject_id)
        if not subject_dir.exists():
            return []
        files = subject_dir.glob(f"SUBJECT-{subject_id}_SNAPSHOT-*.json")
        return sorted(files, key=lambda p: int(p.stem.rsplit("-", 1)[1]))

    # ========================
    # Snapshots
    # ========================

    def save_progress(self, subject_id: str, manager: RunManager) -> str:
        """
        Save a new progress snapshot.

        Args:
            subject_id: Subject identifier (organisation, venue, ...)
            manager: Run Manager whose progress to save

        Returns:
            str: Absolute path to saved file

        Raises:
            FileExistsError: If the snapshot file already exists (concurrent writer)
        """
        subject_dir = self._subject_dir(subject_id)
        subject_dir.mkdir(exist_ok=True)

        snapshot_number = self.snapshot_count(subject_id) + 1
        filename = f"SUBJECT-{subject_id}_SNAPSHOT-{snapshot_number:03d}.json"
        filepath = subject_dir / filename

        if filepath.exists():
            raise FileExistsError(
                f"Snapshot file already exists: {filepath}. "
                f"This indicates a concurrent writer for subject {subject_id}."
            )

        with open(filepath, 'x', encoding='utf-8') as f:
            json.dump(manager.export_for_json(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved progress snapshot {snapshot_number} for {subject_id}: {filename}")
        return str(filepath.absolute())

    def load_progress(self, subject_id: str) -> Optional[RunManager]:
        """
        Load latest progress snapshot.

        Args:
            subject_id: Subject identifier

        Returns:
            RunManager if the subject has snapshots, None otherwise
        """
        snapshot_files = self._snapshot_files(subject_id)

        if not snapshot_files:
            logger.warning(f"No progress snapshots found for {subject_id}")
            return None

        latest_file = snapshot_files[-1]
        logger.info(f"Loading latest progress for {subject_id}: {latest_file.name}")

        with open(latest_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return RunManager.from_json(data)

    def snapshot_count(self, subject_id: str) -> int:
        """
        Number of saved snapshots for a subject (0 if none).
        """
        return len(self._snapshot_files(subject_id))

    # ========================
    # Deleted Run Backups
    # ========================

    def backup_deleted_run(self, subject_id: str, module_id: str, run: Run,
                           now: Optional[datetime] = None) -> str:
        """
        Keep a deleted run for BACKUP_RETENTION_DAYS so it can be recovered.

        Args:
            subject_id: Subject the run belonged to
            module_id: Module the run belonged to
            run: Deleted run (as returned by RunManager.delete_run)
            now: Deletion time (defaults to current UTC time)

        Returns:
            str: Recovery code
        """
        if now is None:
            now = datetime.now(timezone.utc)

        self.backup_dir.mkdir(exist_ok=True)

        recovery_code = generate_recovery_code()
        while (self.backup_dir / f"DELETED-{recovery_code}.json").exists():
            recovery_code = generate_recovery_code()

        backup = {
            "recovery_code": recovery_code,
            "subject_id": subject_id,
            "module_id": module_id,
            "deleted_at": now.isoformat(),
            "expires_at": (now + timedelta(days=BACKUP_RETENTION_DAYS)).isoformat(),
            "run": run.to_dict(),
        }

        filepath = self.backup_dir / f"DELETED-{recovery_code}.json"
        with open(filepath, 'x', encoding='utf-8') as f:
            json.dump(backup, f, indent=2, ensure_ascii=False)

        logger.info(f"Backed up deleted run {run.id} ({module_id}) with recovery code {recovery_code}")
        return recovery_code

    def restore_deleted_run(self, recovery_code: str,
                            now: Optional[datetime] = None) -> Optional[Tuple[str, Run]]:
        """
        Take a deleted run back out of its backup.

        The caller re-inserts the run. The backup file is removed, so each
        recovery code restores at most once.

        Args:
            recovery_code: Code returned by backup_deleted_run
            now: Lookup time (defaults to current UTC time)

        Returns:
            (module_id, Run), or None if unknown or expired
        """
        if now is None:
            now = datetime.now(timezone.utc)

        filepath = self.backup_dir / f"DELETED-{recovery_code.strip().upper()}.json"
        if not filepath.exists():
            logger.warning(f"No backup found for recovery code {recovery_code}")
            return None

        with open(filepath, 'r', encoding='utf-8') as f:
            backup = json.load(f)

        if datetime.fromisoformat(backup["expires_at"]) <= now:
            logger.warning(f"Backup {recovery_code} expired at {backup['expires_at']}")
            return None

        run = Run.from_dict(backup["run"])
        filepath.unlink()
        logger.info(f"Restored run {run.id} from backup {recovery_code}")
        return backup["module_id"], run

    def purge_expired_backups(self, now: Optional[datetime] = None) -> int:
        """
        Delete backups past their expiry.

        Returns:
            int: Number of backups removed
        """
        if now is None:
            now = datetime.now(timezone.utc)

        if not self.backup_dir.exists():
            return 0

        removed = 0
        for filepath in self.backup_dir.glob("DELETED-*.json"):
            with open(filepath, 'r', encoding='utf-8') as f:
                backup = json.load(f)
            if datetime.fromisoformat(backup["expires_at"]) <= now:
                filepath.unlink()
                removed += 1

        if removed:
            logger.info(f"Purged {removed} expired run backups")
        return removed
