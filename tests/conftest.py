"""
Shared pytest fixtures for Stashbox tests.

This module provides fixtures for:
- Data folders and a working directory on tmp_path
- BackupSettings built from a config dict
- Mock S3 (moto)
- Fake MongoDB client
- Fake mysqldump process
"""

import io
from unittest.mock import MagicMock, patch

import pytest
import boto3
from moto import mock_aws

from stashbox.config import BackupSettings


class FakeCollection:
    """Collection stand-in yielding documents lazily, like a pymongo cursor."""

    def __init__(self, documents):
        self.documents = documents

    def find(self, query=None):
        return iter(self.documents() if callable(self.documents) else self.documents)


class FakeDatabase:
    """Database stand-in with list_collection_names and item access."""

    def __init__(self, name, collections):
        self.name = name
        self.collections = collections

    def list_collection_names(self):
        return list(self.collections)

    def __getitem__(self, name):
        return FakeCollection(self.collections[name])


@pytest.fixture
def data_dir(tmp_path):
    """
    Create data folders to back up.

    Creates:
    - photos/ (matches 'photo', with a nested folder)
    - photo_albums/ (matches 'photo')
    - documents/ (does not match)
    - photo.txt (matching file, not a folder)
    """
    base = tmp_path / 'data'
    base.mkdir()

    photos = base / 'photos'
    photos.mkdir()
    (photos / 'beach.jpg').write_bytes(b'\xff\xd8jpegdata')
    (photos / '2024').mkdir()
    (photos / '2024' / 'party.jpg').write_bytes(b'\xff\xd8party')

    albums = base / 'photo_albums'
    albums.mkdir()
    (albums / 'index.txt').write_text('album index')

    documents = base / 'documents'
    documents.mkdir()
    (documents / 'cv.pdf').write_bytes(b'%PDF-1.4')

    (base / 'photo.txt').write_text('not a folder')

    return base


@pytest.fixture
def work_dir(tmp_path):
    """Directory receiving backups/ and the bundle."""
    path = tmp_path / 'work'
    path.mkdir()
    return path


@pytest.fixture
def config_dict(data_dir):
    """A configuration document with no databases."""
    return {
        'folderPath': str(data_dir),
        'selectedFilesName': 'photo',
        'dbs': [],
        'aws': {
            'accessKey': 'test_access_key',
            'secretKey': 'test_secret_key',
            'bucket': 'test-bucket',
            'region': 'us-east-1'
        }
    }


@pytest.fixture
def make_settings(config_dict, work_dir, tmp_path):
    """Build BackupSettings from the config dict with optional overrides."""
    def _make(**overrides):
        data = dict(config_dict)
        data.update(overrides)
        data.setdefault('tempDir', str(tmp_path / 'tmp'))
        return BackupSettings.from_dict(data, work_dir=str(work_dir))
    return _make


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def mock_mongo():
    """
    Patch MongoClient with a fake whose databases live in a dict.

    Yields (MongoClient mock, databases dict). Add FakeDatabase entries to the
    dict to give the fake server data.
    """
    databases = {}

    with patch('stashbox.backup.databases.MongoClient') as mock_client_class:
        client = mock_client_class.return_value
        client.__getitem__.side_effect = lambda name: databases.setdefault(
            name, FakeDatabase(name, {})
        )
        yield mock_client_class, databases


@pytest.fixture
def mock_mysqldump():
    """
    Patch subprocess.Popen for mysqldump.

    The fake process writes ``output`` to stdout and exits with ``returncode``;
    ``stderr_output`` is written to the stderr file handed to Popen.
    """
    behaviour = {'output': b'-- MySQL dump\nCREATE TABLE users (id INT);\n',
                 'returncode': 0, 'stderr_output': b''}

    def fake_popen(cmd, stdout=None, stderr=None, env=None, **kwargs):
        if behaviour['stderr_output']:
            stderr.write(behaviour['stderr_output'])
        process = MagicMock()
        process.stdout = io.BytesIO(behaviour['output'])
        process.wait.return_value = behaviour['returncode']
        return process

    with patch('stashbox.backup.databases.subprocess.Popen', side_effect=fake_popen) as mock_popen:
        mock_popen.behaviour = behaviour
        yield mock_popen
