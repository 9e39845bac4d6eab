"""
Folder snapshot stage.

Picks the data folders to back up from a base directory by substring match
on their names, and zips each one into the run directory.
"""

import os
import logging
from typing import List

from .compression import compress_folder
from .layout import FilesystemError
from .tasks import run_all

logger = logging.getLogger(__name__)


class FolderSnapshot:
    """A data folder and the archive it was snapshotted to."""

    def __init__(self, name: str, archive_path: str):
        self.name = name
        self.archive_path = archive_path

    def __repr__(self):
        return f"<FolderSnapshot {self.name} -> {self.archive_path}>"


def list_candidates(base_dir: str, name_filter: str) -> List[str]:
    """
    List the folders of ``base_dir`` whose name contains ``name_filter``.

    The listing is not recursive and the filter is a plain substring, not a
    glob or a regex. An empty filter selects every folder.

    Args:
        base_dir: Directory holding the data folders
        name_filter: Substring the folder name must contain

    Returns:
        Sorted list of folder names

    Raises:
        FilesystemError: If base_dir cannot be listed
    """
    try:
        entries = os.listdir(base_dir)
    except FileNotFoundError:
        raise FilesystemError(f"Data folder does not exist: {base_dir}")
    except OSError as e:
        raise FilesystemError(f"Failed to list {base_dir}: {e}")

    candidates = []
    for name in sorted(entries):
        if name_filter not in name:
            continue
        if not os.path.isdir(os.path.join(base_dir, name)):
            logger.debug(f"Skipping {name}: not a directory")
            continue
        candidates.append(name)

    return candidates


def snapshot_folder(name: str, base_dir: str, run_dir: str) -> FolderSnapshot:
    """Zip ``base_dir/name`` into ``run_dir/name.zip``."""
    archive_path = os.path.join(run_dir, f"{name}.zip")
    compress_folder(os.path.join(base_dir, name), archive_path)
    logger.info(f"Snapshotted folder {name}")
    return FolderSnapshot(name, archive_path)


def snapshot_all(candidates: List[str], base_dir: str, run_dir: str) -> List[FolderSnapshot]:
    """
    Snapshot every candidate folder concurrently.

    Raises:
        ArchiveError: If any snapshot failed (after all of them finished)
    """
    return run_all(
        lambda name: snapshot_folder(name, base_dir, run_dir),
        candidates,
        name='snapshot'
    )
