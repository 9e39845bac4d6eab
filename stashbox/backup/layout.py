"""
Naming and directory layout of a backup run.

    <work_dir>/backups/BACKUP_<YYYY_MM_DD__HH_MM>/          run directory
    <work_dir>/backups/BACKUP_<YYYY_MM_DD__HH_MM>/dbs/      database artifacts
    <work_dir>/BACKUP_<YYYY_MM_DD__HH_MM>.zip               bundle

Run names have minute granularity, so two runs started in the same minute
share a run directory. Database artifacts carry a unique token and never
collide.
"""

import os
import uuid
from datetime import datetime


BACKUPS_DIRNAME = 'backups'
DB_DIRNAME = 'dbs'
RUN_PREFIX = 'BACKUP_'
TIMESTAMP_FORMAT = '%Y_%m_%d__%H_%M'


class FilesystemError(Exception):
    """Raised when a backup directory cannot be created or removed."""
    pass


class BackupRun:
    """Paths of one backup run. Built by compute_layout."""

    def __init__(self, started_at: datetime, backups_dir: str, root_dir: str,
                 db_dir: str, bundle_path: str):
        self.started_at = started_at
        self.backups_dir = backups_dir
        self.root_dir = root_dir
        self.db_dir = db_dir
        self.bundle_path = bundle_path

    @property
    def name(self) -> str:
        return os.path.basename(self.root_dir)

    @property
    def bundle_name(self) -> str:
        return os.path.basename(self.bundle_path)

    def __repr__(self):
        return f"<BackupRun {self.name}>"


def compute_layout(now: datetime, base_dir: str) -> BackupRun:
    """
    Compute the paths of a run started at ``now``. Does not touch the disk.

    Args:
        now: Run start time
        base_dir: Directory holding backups/ and the bundle

    Returns:
        BackupRun
    """
    run_name = RUN_PREFIX + now.strftime(TIMESTAMP_FORMAT)
    backups_dir = os.path.join(base_dir, BACKUPS_DIRNAME)
    root_dir = os.path.join(backups_dir, run_name)

    return BackupRun(
        started_at=now,
        backups_dir=backups_dir,
        root_dir=root_dir,
        db_dir=os.path.join(root_dir, DB_DIRNAME),
        bundle_path=os.path.join(base_dir, f"{run_name}.zip")
    )


def ensure_dir(path: str):
    """
    Create a directory if it does not exist yet.

    Raises:
        FilesystemError: If the path exists but is not a directory, or on any
            other OS error
    """
    try:
        os.makedirs(path, exist_ok=True)
    except FileExistsError:
        raise FilesystemError(f"Path exists and is not a directory: {path}")
    except OSError as e:
        raise FilesystemError(f"Failed to create directory {path}: {e}")


def create_layout(run: BackupRun):
    """Create the backups, run and database directories of a run."""
    for path in (run.backups_dir, run.root_dir, run.db_dir):
        ensure_dir(path)


def unique_token() -> str:
    """Time-based token that keeps artifact names unique across runs."""
    return str(uuid.uuid1())
