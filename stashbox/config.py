"""
Configuration for Stashbox.

Process-level settings come from environment variables (``Config``); what to
back up and where to upload it comes from ``config.json`` (``load_settings``):

    {
        "folderPath": "/srv/data",
        "selectedFilesName": "photo",
        "dbs": [{"driver": "mysql", "dbname": "app", "host": "...", ...},
                {"driver": "mongodb", "dbname": "app", "uri": "mongodb://..."}],
        "aws": {"endpoint": "...", "accessKey": "...", "secretKey": "...",
                "bucket": "..."}
    }
"""

import os
import json
from typing import Optional, List, Dict, Any


class ConfigError(Exception):
    """Raised when the backup configuration is missing or invalid."""
    pass


class Config:
    """Environment configuration"""

    CONFIG_PATH = os.environ.get('STASHBOX_CONFIG') or 'config.json'

    # Where backups/ and the bundle are written
    WORK_DIR = os.environ.get('STASHBOX_WORK_DIR') or os.getcwd()

    # Working directories for document-store exports
    TEMP_DIR = os.environ.get('STASHBOX_TEMP_DIR')

    # Logging
    LOG_LEVEL = os.environ.get('STASHBOX_LOG_LEVEL') or 'INFO'
    LOG_DIR = os.environ.get('STASHBOX_LOG_DIR')

    # External tools
    MYSQLDUMP_BIN = os.environ.get('MYSQLDUMP_BIN') or 'mysqldump'


UNKNOWN_DRIVER_POLICIES = ('skip', 'error')


class DatabaseConfig:
    """One database entry of the ``dbs`` list."""

    def __init__(self, driver: str, dbname: str, host: Optional[str] = None,
                 user: Optional[str] = None, password: Optional[str] = None,
                 port: Optional[int] = None, uri: Optional[str] = None):
        self.driver = driver
        self.dbname = dbname
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.uri = uri

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DatabaseConfig':
        if not isinstance(data, dict):
            raise ConfigError(f"Database entry must be an object, got: {data!r}")

        for key in ('driver', 'dbname'):
            if not data.get(key):
                raise ConfigError(f"Database entry is missing '{key}'")

        port = data.get('port')
        if port is not None:
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid port for database {data['dbname']}: {port!r}")

        return cls(
            driver=data['driver'],
            dbname=data['dbname'],
            host=data.get('host'),
            user=data.get('user'),
            password=data.get('password'),
            port=port,
            uri=data.get('uri')
        )

    def __repr__(self):
        return f"<DatabaseConfig {self.driver}:{self.dbname}>"


class AWSConfig:
    """Object storage credentials and target bucket."""

    def __init__(self, access_key: str, secret_key: str, bucket: str,
                 endpoint: Optional[str] = None, region: str = 'us-east-1'):
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket = bucket
        self.endpoint = endpoint
        self.region = region

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AWSConfig':
        if not isinstance(data, dict):
            raise ConfigError("'aws' section must be an object")

        for key in ('accessKey', 'secretKey', 'bucket'):
            if not data.get(key):
                raise ConfigError(f"'aws' section is missing '{key}'")

        return cls(
            access_key=data['accessKey'],
            secret_key=data['secretKey'],
            bucket=data['bucket'],
            endpoint=data.get('endpoint') or None,
            region=data.get('region') or 'us-east-1'
        )

    def __repr__(self):
        # Never print credentials
        return f"<AWSConfig bucket={self.bucket} endpoint={self.endpoint}>"


class BackupSettings:
    """
    Everything one backup run needs. Loaded once and not modified afterwards.
    """

    def __init__(self, folder_path: str, selected_files_name: str,
                 dbs: List[DatabaseConfig], aws: AWSConfig,
                 work_dir: Optional[str] = None, temp_dir: Optional[str] = None,
                 unknown_driver: str = 'skip',
                 database_timeout: Optional[float] = None,
                 upload_timeout: Optional[float] = None):
        self.folder_path = folder_path
        self.selected_files_name = selected_files_name
        self.dbs = list(dbs)
        self.aws = aws
        self.work_dir = os.path.abspath(work_dir or Config.WORK_DIR)
        self.temp_dir = os.path.abspath(
            temp_dir or Config.TEMP_DIR or os.path.join(self.work_dir, 'tmp')
        )
        self.unknown_driver = unknown_driver
        self.database_timeout = database_timeout
        self.upload_timeout = upload_timeout

    @classmethod
    def from_dict(cls, data: Dict[str, Any], work_dir: Optional[str] = None) -> 'BackupSettings':
        """
        Build settings from the parsed JSON document.

        Raises:
            ConfigError: If a required key is missing or has the wrong shape
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be an object")

        if not data.get('folderPath'):
            raise ConfigError("Configuration is missing 'folderPath'")

        selected = data.get('selectedFilesName')
        if selected is None:
            raise ConfigError("Configuration is missing 'selectedFilesName'")

        dbs = data.get('dbs') or []
        if not isinstance(dbs, list):
            raise ConfigError("'dbs' must be a list")

        if 'aws' not in data:
            raise ConfigError("Configuration is missing 'aws'")

        unknown_driver = data.get('unknownDriver', 'skip')
        if unknown_driver not in UNKNOWN_DRIVER_POLICIES:
            raise ConfigError(
                f"Invalid unknownDriver: {unknown_driver}. "
                f"Valid options: {list(UNKNOWN_DRIVER_POLICIES)}"
            )

        timeouts = data.get('timeouts') or {}
        if not isinstance(timeouts, dict):
            raise ConfigError("'timeouts' must be an object")

        return cls(
            folder_path=data['folderPath'],
            selected_files_name=str(selected),
            dbs=[DatabaseConfig.from_dict(entry) for entry in dbs],
            aws=AWSConfig.from_dict(data['aws']),
            work_dir=work_dir or data.get('workDir'),
            temp_dir=data.get('tempDir'),
            unknown_driver=unknown_driver,
            database_timeout=_parse_timeout(timeouts, 'database'),
            upload_timeout=_parse_timeout(timeouts, 'upload')
        )


def _parse_timeout(timeouts: Dict[str, Any], key: str) -> Optional[float]:
    value = timeouts.get(key)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid timeout for '{key}': {value!r}")
    if value <= 0:
        raise ConfigError(f"Timeout for '{key}' must be positive")
    return value


def load_settings(path: Optional[str] = None, work_dir: Optional[str] = None) -> BackupSettings:
    """
    Load backup settings from a JSON file.

    Args:
        path: Path to the JSON file (default: Config.CONFIG_PATH)
        work_dir: Overrides ``workDir`` from the file and STASHBOX_WORK_DIR

    Returns:
        BackupSettings instance

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    path = path or Config.CONFIG_PATH

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration {path}: {e}")

    return BackupSettings.from_dict(data, work_dir=work_dir)
