"""
Backup executor - orchestrates one backup run.

Workflow (each step finishes before the next one starts):
1. Compute the run layout and create its directories
2. Snapshot data folders and back up databases (concurrently)
3. Zip the run directory into the bundle
4. Upload the bundle
5. Delete backups/ and the bundle

Any error stops the run where it is. Nothing is uploaded or deleted after a
failure, so the run directory stays on disk for inspection.
"""

import os
import shutil
import logging
from datetime import datetime
from typing import Optional

from stashbox.config import BackupSettings
from .layout import BackupRun, compute_layout, create_layout, FilesystemError
from .sources import list_candidates, snapshot_all
from .databases import backup_all
from .compression import compress_folder, get_archive_size
from .storage import S3Storage
from .tasks import run_all

logger = logging.getLogger(__name__)


class RunState:
    INIT = 'init'
    LAYOUT_CREATED = 'layout_created'
    SOURCES_BACKED_UP = 'sources_backed_up'
    BUNDLED = 'bundled'
    UPLOADED = 'uploaded'
    CLEANED_UP = 'cleaned_up'
    DONE = 'done'
    FAILED = 'failed'


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for one run.
    """

    def __init__(self, settings: BackupSettings, storage: Optional[S3Storage] = None,
                 now: Optional[datetime] = None):
        """
        Initialize backup executor.

        Args:
            settings: Loaded backup settings
            storage: Upload handler (default: built from settings.aws)
            now: Run start time (default: current local time)
        """
        self.settings = settings
        self.storage = storage
        self.now = now
        self.run = None
        self.state = RunState.INIT
        self.snapshots = []
        self.artifacts = []
        self.object_key = None
        self.logs = []

    def execute(self) -> BackupRun:
        """
        Execute the backup run.

        Returns:
            BackupRun describing the finished run

        Raises:
            Exception: Whatever stopped the run, after it has been logged
        """
        self.run = compute_layout(self.now or datetime.now(), self.settings.work_dir)
        self._log(f"Starting backup run: {self.run.name}")

        try:
            self._execute_workflow()
        except Exception as e:
            self.state = RunState.FAILED
            self._log(f"Backup failed: {e}", level=logging.ERROR)
            if os.path.exists(self.run.backups_dir):
                self._log(f"Local files kept in {self.run.backups_dir}")
            raise

        self.state = RunState.DONE
        self._log("Backup completed successfully")
        return self.run

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # Step 1: Create run directories
        create_layout(self.run)
        self._transition(RunState.LAYOUT_CREATED)

        # Step 2: Folders and databases side by side
        run_all(lambda stage: stage(), [self._snapshot_folders, self._backup_databases],
                name='stage', max_workers=2)
        self._transition(RunState.SOURCES_BACKED_UP)

        # Step 3: Bundle
        self._log(f"Creating bundle {self.run.bundle_name}")
        compress_folder(self.run.root_dir, self.run.bundle_path)
        file_size = get_archive_size(self.run.bundle_path)
        self._log(f"Bundle created: {self.run.bundle_name} ({file_size / 1024 / 1024:.2f} MB)")
        self._transition(RunState.BUNDLED)

        # Step 4: Upload
        self._log("Uploading bundle")
        self.object_key = self._get_storage().upload(self.run.bundle_name, self.run.bundle_path)
        self._log(f"Uploaded: {self.object_key}")
        self._transition(RunState.UPLOADED)

        # Step 5: Cleanup
        self._cleanup()
        self._transition(RunState.CLEANED_UP)

    def _snapshot_folders(self):
        candidates = list_candidates(self.settings.folder_path, self.settings.selected_files_name)
        self._log(f"Snapshotting {len(candidates)} folders from {self.settings.folder_path}")
        self.snapshots = snapshot_all(candidates, self.settings.folder_path, self.run.root_dir)

    def _backup_databases(self):
        self._log(f"Backing up {len(self.settings.dbs)} databases")
        self.artifacts = backup_all(
            self.settings.dbs,
            self.run.db_dir,
            unknown_driver=self.settings.unknown_driver,
            timeout=self.settings.database_timeout,
            temp_dir=self.settings.temp_dir
        )
        self._log(f"Created {len(self.artifacts)} database artifacts")

    def _get_storage(self) -> S3Storage:
        if self.storage is None:
            self.storage = S3Storage.from_settings(
                self.settings.aws,
                timeout=self.settings.upload_timeout
            )
        return self.storage

    def _cleanup(self):
        """Remove backups/ and the local bundle."""
        try:
            shutil.rmtree(self.run.backups_dir)
            os.remove(self.run.bundle_path)
        except OSError as e:
            raise FilesystemError(f"Failed to clean up local backup files: {e}")
        self._log("Cleaned up local backup files")

    def _transition(self, state: str):
        logger.debug(f"{self.run.name}: {self.state} -> {state}")
        self.state = state

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def execute_backup(settings: BackupSettings, storage: Optional[S3Storage] = None) -> BackupExecutor:
    """
    Run one backup with the given settings.

    Returns:
        The finished BackupExecutor

    Raises:
        Exception: Whatever stopped the run
    """
    executor = BackupExecutor(settings, storage=storage)
    executor.execute()
    return executor
