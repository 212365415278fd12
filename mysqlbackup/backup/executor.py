"""
Backup coordinator - orchestrates one complete backup run.

Workflow:
1. Acquire the run lock (skip the run if another live process holds it)
2. Preflight: required client tools are installed
3. Resolve target databases (configured list or live catalog for ALL)
4. For each database, in order:
   a. Dump + compress into the run's temporary directory
   b. Upload to object storage
   c. Prune artifacts beyond the retention count
5. Summarize outcomes, notify on failure
6. Remove the temporary directory and release the lock
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from functools import reduce
from typing import Callable, Iterable, List, Optional

from mysqlbackup.models import BackupTarget, DatabaseOutcome, RunResult, RunStatus, RunSummary
from .compression import format_size
from .lock import RunLock
from .naming import artifact_filename, artifact_key, database_prefix, short_hostname
from .retention import RetentionManager
from .sources import PreflightError, SourceError
from .storage import ObjectStore, StorageError


logger = logging.getLogger(__name__)


def summarize(outcomes: Iterable[DatabaseOutcome]) -> RunSummary:
    """Fold per-database outcomes into a RunSummary."""
    return reduce(RunSummary.add, outcomes, RunSummary())


class BackupCoordinator:
    """
    Runs the dump -> upload -> prune cycle for every target database.

    Every collaborator is injected, so tests can swap in fakes for the
    database, the object store, the notifier, the lock and the clock.
    """

    def __init__(self, config, source, storage: ObjectStore, notifier, lock: RunLock,
                 log: logging.Logger = None, clock: Callable[[], datetime] = datetime.now,
                 hostname: Optional[str] = None):
        """
        Initialize the coordinator.

        Args:
            config: Run configuration (Config)
            source: Dump producer (MySQLSource)
            storage: Object store gateway
            notifier: Object with ``notify(message)``
            lock: Run lock
            log: Logger receiving run events
            clock: Returns the current instant; called once per database
            hostname: Host identity used in names and notifications
        """
        self.config = config
        self.source = source
        self.storage = storage
        self.notifier = notifier
        self.lock = lock
        self.logger = log or logger
        self.clock = clock
        self.hostname = hostname or short_hostname()
        self.retention = RetentionManager(storage, self.logger)
        self.temp_dir = None

    def run(self) -> RunResult:
        """
        Execute one backup run.

        Returns:
            RunResult; its ``exit_code`` is the process exit status
        """
        with self.lock:
            if not self.lock.held:
                self.logger.warning(
                    f"Another backup is still running (PID {self.lock.owner_pid}). Skipping."
                )
                return RunResult(status=RunStatus.SKIPPED)

            try:
                return self._run_locked()
            finally:
                self._cleanup()

    def _run_locked(self) -> RunResult:
        self.logger.info(f"Starting backup run on {self.hostname}")

        try:
            self.source.preflight(include_catalog=self.config.all_databases)
        except PreflightError as e:
            self.logger.critical(f"'{e.tool}' not found. Install the MySQL client tools first.")
            self._notify(f"MySQL Backup FAILED on {self.hostname}: '{e.tool}' not installed.")
            return RunResult(status=RunStatus.ABORTED, reason=str(e))

        targets = self.resolve_targets()
        if not targets:
            self.logger.critical("No databases found to back up.")
            self._notify(f"MySQL Backup FAILED on {self.hostname}: no databases found.")
            return RunResult(status=RunStatus.ABORTED, reason='no databases found')

        self.temp_dir = tempfile.mkdtemp(prefix='mysql-backup.', dir=self.config.temp_dir)

        summary = summarize(self.backup_database(target) for target in targets)

        if summary.failed > 0:
            self.logger.warning(
                f"Backup finished with errors: {summary.succeeded}/{summary.total} succeeded."
            )
            self._notify(
                f"MySQL Backup on {self.hostname}: {summary.failed}/{summary.total} "
                f"databases FAILED. Check {self.config.log_file}."
            )
        else:
            self.logger.info(
                f"All backups completed successfully: {summary.total}/{summary.total} databases."
            )

        return RunResult(status=RunStatus.COMPLETED, summary=summary)

    def resolve_targets(self) -> List[BackupTarget]:
        """
        Databases to back up in this run, in processing order.

        For ALL the live catalog is queried; a failed query is logged and
        yields no targets.
        """
        if self.config.all_databases:
            try:
                names = self.source.list_databases()
            except SourceError as e:
                self.logger.error(f"Failed to list databases: {e}")
                return []
        else:
            names = self.config.database_list

        return [BackupTarget(name) for name in names]

    def backup_database(self, target: BackupTarget) -> DatabaseOutcome:
        """
        Dump, upload and prune one database.

        Failures are logged and returned as a failed outcome; they never
        propagate to the run.
        """
        try:
            return self._backup_database(target)
        except Exception as e:
            self.logger.exception(f"Unexpected error while backing up {target}: {e}")
            return DatabaseOutcome.failure(target, f"unexpected error: {e}")

    def _backup_database(self, target: BackupTarget) -> DatabaseOutcome:
        db = target.database_name
        filename = artifact_filename(self.config.name_pattern, db, self.clock(), self.hostname)
        key = artifact_key(self.config.s3_path, db, filename)
        local_path = os.path.join(self.temp_dir, filename)

        self.logger.info(f"Backing up database: {db} -> {self.storage.describe(key)}")

        try:
            size = self.source.dump(db, local_path)
        except SourceError as e:
            self.logger.error(str(e))
            self._remove_local(local_path)
            return DatabaseOutcome.failure(target, f"dump failed: {e}")

        self.logger.info(f"Dump complete: {filename} ({format_size(size)})")

        try:
            with open(local_path, 'rb') as f:
                self.storage.put(key, f)
        except (StorageError, OSError) as e:
            self.logger.error(f"Upload failed for {db}: {e}")
            return DatabaseOutcome.failure(target, f"upload failed: {e}")
        finally:
            self._remove_local(local_path)

        self.logger.info(f"Uploaded to {self.storage.describe(key)}")

        pruned = self.retention.enforce(
            database_prefix(self.config.s3_path, db),
            self.config.retention_count
        )
        return DatabaseOutcome.success(target, key, pruned=pruned)

    def _notify(self, message: str):
        self.notifier.notify(message)

    def _remove_local(self, path: str):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            self.logger.warning(f"Failed to remove {path}: {e}")

    def _cleanup(self):
        """Remove temporary directory and files."""
        if self.temp_dir and os.path.exists(self.temp_dir):
            try:
                shutil.rmtree(self.temp_dir)
            except OSError as e:
                self.logger.warning(f"Failed to cleanup temp directory: {e}")
        self.temp_dir = None
