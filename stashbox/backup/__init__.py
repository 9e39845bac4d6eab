"""
Backup module for Stashbox.

This module handles the backup pipeline:
- Run layout and naming
- Folder snapshots
- Database drivers (MySQL, MongoDB)
- Compression
- Upload to S3-compatible storage
- Execution orchestration
"""

from .executor import BackupExecutor, RunState, execute_backup
from .layout import BackupRun, compute_layout, ensure_dir, FilesystemError
from .sources import list_candidates, snapshot_all
from .databases import DatabaseDriver, MySQLDriver, MongoDBDriver, get_driver, DriverError
from .compression import compress_folder, ArchiveError
from .storage import S3Storage, UploadError

__all__ = [
    'BackupExecutor',
    'RunState',
    'execute_backup',
    'BackupRun',
    'compute_layout',
    'ensure_dir',
    'FilesystemError',
    'list_candidates',
    'snapshot_all',
    'DatabaseDriver',
    'MySQLDriver',
    'MongoDBDriver',
    'get_driver',
    'DriverError',
    'compress_folder',
    'ArchiveError',
    'S3Storage',
    'UploadError'
]
