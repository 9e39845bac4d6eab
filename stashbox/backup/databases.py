"""
Database backup drivers.

Each driver turns one DatabaseConfig into a single compressed artifact in
the run's database directory:

- MySQLDriver: mysqldump output gzipped on the fly (<dbname>-<token>.sql.gz)
- MongoDBDriver: every collection exported to JSON, then zipped
  (<dbname>-<token>.zip)

Drivers are looked up by the ``driver`` key of the configuration.
"""

import os
import gzip
import shutil
import signal
import logging
import tempfile
import threading
import subprocess
from typing import Dict, List, Optional, Type

from bson import json_util
from bson.errors import BSONError
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from stashbox.config import Config, DatabaseConfig
from .compression import compress_folder, ArchiveError
from .layout import ensure_dir, unique_token, FilesystemError
from .tasks import run_all

logger = logging.getLogger(__name__)


class DriverError(Exception):
    """Raised when a database cannot be backed up."""
    pass


class DatabaseArtifact:
    """A database and the archive its backup was written to."""

    def __init__(self, dbname: str, path: str):
        self.dbname = dbname
        self.path = path

    def __repr__(self):
        return f"<DatabaseArtifact {self.dbname} -> {self.path}>"


def artifact_path(db_dir: str, dbname: str, extension: str) -> str:
    return os.path.join(db_dir, f"{dbname}-{unique_token()}{extension}")


class DatabaseDriver:
    """
    Base class for database drivers.

    Subclasses set ``kind`` and implement ``backup``.
    """

    kind = None

    def __init__(self, timeout: Optional[float] = None, temp_dir: Optional[str] = None):
        """
        Args:
            timeout: Seconds allowed for connecting/dumping (None: no limit)
            temp_dir: Parent directory for intermediate files
        """
        self.timeout = timeout
        self.temp_dir = temp_dir or tempfile.gettempdir()

    def backup(self, db_config: DatabaseConfig, db_dir: str) -> DatabaseArtifact:
        """
        Back up one database into ``db_dir``.

        Raises:
            DriverError: If connecting, dumping or writing fails
        """
        raise NotImplementedError


class MySQLDriver(DatabaseDriver):
    """Streams ``mysqldump`` through gzip into the artifact file."""

    kind = 'mysql'

    def __init__(self, timeout: Optional[float] = None, temp_dir: Optional[str] = None,
                 executable: Optional[str] = None):
        super().__init__(timeout, temp_dir)
        self.executable = executable or Config.MYSQLDUMP_BIN

    def build_command(self, db_config: DatabaseConfig) -> List[str]:
        """Build the mysqldump command line. The password goes through MYSQL_PWD."""
        cmd = [self.executable, '--single-transaction', '--routines', '--triggers']

        if db_config.host:
            cmd.append(f"--host={db_config.host}")
        if db_config.port:
            cmd.append(f"--port={db_config.port}")
        if db_config.user:
            cmd.append(f"--user={db_config.user}")

        cmd.append(db_config.dbname)
        return cmd

    def backup(self, db_config: DatabaseConfig, db_dir: str) -> DatabaseArtifact:
        path = artifact_path(db_dir, db_config.dbname, '.sql.gz')

        env = os.environ.copy()
        if db_config.password:
            env['MYSQL_PWD'] = db_config.password

        timed_out = threading.Event()

        try:
            with tempfile.TemporaryFile() as stderr, gzip.open(path, 'wb') as out:
                try:
                    # Own process group so wrapper scripts die with their children
                    process = subprocess.Popen(
                        self.build_command(db_config),
                        stdout=subprocess.PIPE,
                        stderr=stderr,
                        env=env,
                        start_new_session=True
                    )
                except FileNotFoundError as e:
                    raise DriverError(f"mysqldump executable not found ({self.executable}): {e}")

                timer = None
                if self.timeout:
                    def _kill():
                        timed_out.set()
                        _kill_process_group(process)

                    timer = threading.Timer(self.timeout, _kill)
                    timer.start()

                try:
                    shutil.copyfileobj(process.stdout, out)
                    returncode = process.wait()
                except Exception:
                    _kill_process_group(process)
                    process.wait()
                    raise
                finally:
                    if timer:
                        timer.cancel()
                    process.stdout.close()

                if timed_out.is_set():
                    raise DriverError(
                        f"mysqldump of {db_config.dbname} timed out after {self.timeout}s"
                    )

                if returncode != 0:
                    stderr.seek(0)
                    message = stderr.read().decode('utf-8', errors='replace').strip()
                    raise DriverError(
                        f"mysqldump of {db_config.dbname} failed (exit {returncode}): {message}"
                    )

        except DriverError:
            _remove_partial(path)
            raise
        except OSError as e:
            _remove_partial(path)
            raise DriverError(f"Failed to write MySQL backup of {db_config.dbname}: {e}")

        logger.info(f"Dumped MySQL database {db_config.dbname}")
        return DatabaseArtifact(db_config.dbname, path)


class MongoDBDriver(DatabaseDriver):
    """
    Exports every collection of a MongoDB database to JSON and zips them.

    Documents are written to disk one at a time as the cursor yields them,
    so memory use does not grow with collection size. Each ``<collection>.json``
    holds a JSON array in MongoDB relaxed Extended JSON.
    """

    kind = 'mongodb'

    def _connect(self, db_config: DatabaseConfig) -> MongoClient:
        # Dates outside the datetime range decode to DatetimeMS instead of failing
        options = {'datetime_conversion': 'DATETIME_AUTO'}
        if self.timeout:
            timeout_ms = int(self.timeout * 1000)
            options.update(
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
                socketTimeoutMS=timeout_ms
            )

        client = MongoClient(db_config.uri, **options)
        try:
            # MongoClient connects lazily; fail here rather than mid-export
            client.admin.command('ping')
        except Exception:
            client.close()
            raise
        return client

    def _export_collection(self, database, name: str, work_dir: str) -> str:
        path = os.path.join(work_dir, f"{name}.json")
        count = 0

        with open(path, 'w', encoding='utf-8') as f:
            f.write('[')
            for document in database[name].find({}):
                if count:
                    f.write(',')
                f.write(json_util.dumps(document))
                count += 1
            f.write(']')

        logger.debug(f"Exported {count} documents from {database.name}.{name}")
        return path

    def backup(self, db_config: DatabaseConfig, db_dir: str) -> DatabaseArtifact:
        if not db_config.uri:
            raise DriverError(f"MongoDB database {db_config.dbname} has no 'uri'")

        client = None
        work_dir = None

        try:
            ensure_dir(self.temp_dir)
            work_dir = tempfile.mkdtemp(prefix=f"{db_config.dbname}_", dir=self.temp_dir)

            client = self._connect(db_config)
            database = client[db_config.dbname]
            collections = database.list_collection_names()

            run_all(
                lambda name: self._export_collection(database, name, work_dir),
                collections,
                name='export'
            )

            path = artifact_path(db_dir, db_config.dbname, '.zip')
            compress_folder(work_dir, path)

        except (PyMongoError, BSONError) as e:
            raise DriverError(f"MongoDB backup of {db_config.dbname} failed: {e}")
        except (ArchiveError, FilesystemError, OSError) as e:
            raise DriverError(f"Failed to write MongoDB backup of {db_config.dbname}: {e}")
        finally:
            if work_dir:
                shutil.rmtree(work_dir, ignore_errors=True)
            if client is not None:
                client.close()

        logger.info(f"Exported MongoDB database {db_config.dbname} ({len(collections)} collections)")
        return DatabaseArtifact(db_config.dbname, path)


DRIVERS: Dict[str, Type[DatabaseDriver]] = {
    MySQLDriver.kind: MySQLDriver,
    MongoDBDriver.kind: MongoDBDriver,
}


def get_driver(kind: str, **options) -> Optional[DatabaseDriver]:
    """
    Look up the driver for a database kind.

    Returns:
        Driver instance, or None if the kind is not registered
    """
    driver_class = DRIVERS.get(kind)
    if driver_class is None:
        return None
    return driver_class(**options)


def backup_all(db_configs: List[DatabaseConfig], db_dir: str, unknown_driver: str = 'skip',
               timeout: Optional[float] = None, temp_dir: Optional[str] = None) -> List[DatabaseArtifact]:
    """
    Back up all configured databases concurrently.

    Args:
        db_configs: Databases to back up
        db_dir: Directory receiving the artifacts
        unknown_driver: 'skip' to log and ignore unregistered kinds, 'error' to fail
        timeout: Per-database timeout in seconds
        temp_dir: Parent directory for intermediate files

    Returns:
        One DatabaseArtifact per database with a registered driver

    Raises:
        DriverError: If any backup fails, or on an unknown kind with 'error'
    """
    jobs = []
    for db_config in db_configs:
        driver = get_driver(db_config.driver, timeout=timeout, temp_dir=temp_dir)
        if driver is None:
            if unknown_driver == 'error':
                raise DriverError(
                    f"Unknown database driver '{db_config.driver}' for {db_config.dbname}. "
                    f"Valid options: {list(DRIVERS.keys())}"
                )
            logger.warning(
                f"Skipping database {db_config.dbname}: unknown driver '{db_config.driver}'"
            )
            continue
        jobs.append((driver, db_config))

    return run_all(
        lambda job: job[0].backup(job[1], db_dir),
        jobs,
        name='database'
    )


def _kill_process_group(process):
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except OSError:
        # Already gone
        pass


def _remove_partial(path: str):
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError:
            pass
