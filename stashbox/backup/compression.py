"""
Zip archives for folder snapshots and the final bundle.

Entries are stored relative to the archived directory, so extracting an
archive into an empty directory reproduces the original tree.
"""

import os
import zipfile
from pathlib import Path


class ArchiveError(Exception):
    """Raised when archive creation fails."""
    pass


def compress_folder(source_dir: str, dest_path: str) -> str:
    """
    Compress a directory into a zip archive.

    Args:
        source_dir: Directory to archive
        dest_path: Path of the zip file to create

    Returns:
        dest_path

    Raises:
        ArchiveError: If the source is missing or the archive cannot be written
    """
    source = Path(source_dir)

    if not source.is_dir():
        raise ArchiveError(f"Source directory does not exist: {source_dir}")

    try:
        # Files older than 1980 are stored with a 1980-01-01 timestamp
        with zipfile.ZipFile(dest_path, 'w', zipfile.ZIP_DEFLATED, strict_timestamps=False) as zipf:
            _add_directory_to_zip(zipf, source)
        return dest_path
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(dest_path):
            try:
                os.remove(dest_path)
            except OSError:
                pass
        raise ArchiveError(f"Failed to create archive {dest_path}: {e}")


def _add_directory_to_zip(zipf: zipfile.ZipFile, directory: Path):
    """
    Recursively add the contents of a directory to a zip archive.

    Directories get their own entries so empty ones survive extraction.
    """
    for item in sorted(directory.rglob('*')):
        relative_path = item.relative_to(directory).as_posix()
        if item.is_dir():
            zipf.write(item, relative_path + '/')
        elif item.is_file():
            zipf.write(item, relative_path)


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveError: If the file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveError(f"Failed to get archive size: {e}")
