"""
Unit tests for compression module (stashbox/backup/compression.py).
"""

import os
import zipfile

import pytest

from stashbox.backup.compression import (
    compress_folder,
    get_archive_size,
    ArchiveError
)


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a directory tree to archive.

    Creates:
    - top.txt
    - nested/inner.bin
    - nested/deeper/leaf.txt
    - empty/
    """
    root = tmp_path / 'source'
    root.mkdir()
    (root / 'top.txt').write_text('top level')
    (root / 'nested').mkdir()
    (root / 'nested' / 'inner.bin').write_bytes(bytes(range(256)) * 4)
    (root / 'nested' / 'deeper').mkdir()
    (root / 'nested' / 'deeper' / 'leaf.txt').write_text('leaf')
    (root / 'empty').mkdir()
    return root


def _snapshot_tree(root):
    """Map relative path -> file bytes (None for directories)."""
    tree = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames:
            tree[os.path.relpath(os.path.join(dirpath, name), root)] = None
        for name in filenames:
            path = os.path.join(dirpath, name)
            with open(path, 'rb') as f:
                tree[os.path.relpath(path, root)] = f.read()
    return tree


class TestCompressFolder:
    """Test compress_folder."""

    def test_creates_valid_zip(self, source_tree, tmp_path):
        dest = str(tmp_path / 'out.zip')

        result = compress_folder(str(source_tree), dest)

        assert result == dest
        assert zipfile.is_zipfile(dest)
        with zipfile.ZipFile(dest) as zipf:
            assert zipf.testzip() is None

    def test_entries_are_relative_to_source(self, source_tree, tmp_path):
        """Archive entries do not include the source folder name."""
        dest = str(tmp_path / 'out.zip')

        compress_folder(str(source_tree), dest)

        with zipfile.ZipFile(dest) as zipf:
            names = zipf.namelist()

        assert 'top.txt' in names
        assert 'nested/inner.bin' in names
        assert 'nested/deeper/leaf.txt' in names
        assert 'empty/' in names
        assert not any(name.startswith('source/') for name in names)

    def test_round_trip_reproduces_tree(self, source_tree, tmp_path):
        """Extracting the archive reproduces the tree byte for byte."""
        dest = str(tmp_path / 'out.zip')
        extract_dir = tmp_path / 'extracted'

        compress_folder(str(source_tree), dest)
        with zipfile.ZipFile(dest) as zipf:
            zipf.extractall(extract_dir)

        assert _snapshot_tree(extract_dir) == _snapshot_tree(source_tree)

    def test_empty_directory(self, tmp_path):
        """An empty directory gives a valid, empty archive."""
        source = tmp_path / 'empty_source'
        source.mkdir()
        dest = str(tmp_path / 'empty.zip')

        compress_folder(str(source), dest)

        with zipfile.ZipFile(dest) as zipf:
            assert zipf.namelist() == []

    def test_files_older_than_1980(self, tmp_path):
        """Zip timestamps start in 1980; older files are still archived."""
        source = tmp_path / 'old_source'
        source.mkdir()
        old_file = source / 'epoch.txt'
        old_file.write_text('from 1970')
        os.utime(old_file, (0, 0))
        dest = str(tmp_path / 'old.zip')

        compress_folder(str(source), dest)

        with zipfile.ZipFile(dest) as zipf:
            assert zipf.read('epoch.txt') == b'from 1970'
            assert zipf.getinfo('epoch.txt').date_time[0] == 1980

    def test_uses_deflate(self, source_tree, tmp_path):
        dest = str(tmp_path / 'out.zip')

        compress_folder(str(source_tree), dest)

        with zipfile.ZipFile(dest) as zipf:
            info = zipf.getinfo('nested/inner.bin')
            assert info.compress_type == zipfile.ZIP_DEFLATED


class TestCompressFolderErrors:
    """Test error handling in compress_folder."""

    def test_missing_source(self, tmp_path):
        with pytest.raises(ArchiveError, match="does not exist"):
            compress_folder(str(tmp_path / 'missing'), str(tmp_path / 'out.zip'))

    def test_source_is_a_file(self, tmp_path):
        source = tmp_path / 'file.txt'
        source.write_text('x')

        with pytest.raises(ArchiveError):
            compress_folder(str(source), str(tmp_path / 'out.zip'))

    def test_unwritable_destination(self, source_tree, tmp_path):
        dest = str(tmp_path / 'no_such_dir' / 'out.zip')

        with pytest.raises(ArchiveError, match="Failed to create archive"):
            compress_folder(str(source_tree), dest)

        assert not os.path.exists(dest)


class TestGetArchiveSize:

    def test_size(self, tmp_path):
        path = tmp_path / 'a.zip'
        path.write_bytes(b'x' * 123)

        assert get_archive_size(str(path)) == 123

    def test_missing(self, tmp_path):
        with pytest.raises(ArchiveError, match="Archive not found"):
            get_archive_size(str(tmp_path / 'missing.zip'))
