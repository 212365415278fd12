"""
Shared pytest fixtures for the MySQL backup service tests.

This module provides fixtures for:
- Run configuration pointing at temporary paths
- A fake dump producer (no MySQL server needed)
- Local and mocked S3 object stores
- A deterministic clock
- A fully wired BackupCoordinator
"""

import gzip
import io
import logging
import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import boto3
from moto import mock_aws

from mysqlbackup.backup.executor import BackupCoordinator
from mysqlbackup.backup.lock import RunLock
from mysqlbackup.backup.sources import DumpError, PreflightError
from mysqlbackup.backup.storage import LocalStorage
from mysqlbackup.config import Config


class FakeSource:
    """
    In-memory stand-in for MySQLSource.

    Writes a small gzip artifact for every dump and records the order of
    calls. Databases listed in ``fail`` raise DumpError.
    """

    def __init__(self, catalog=None, fail=None, missing_tool=None, on_dump=None):
        self.catalog = list(catalog or [])
        self.fail = set(fail or [])
        self.missing_tool = missing_tool
        self.on_dump = on_dump
        self.dumped = []
        self.preflight_calls = []

    def preflight(self, include_catalog=False):
        self.preflight_calls.append(include_catalog)
        if self.missing_tool:
            raise PreflightError(self.missing_tool)

    def list_databases(self):
        return list(self.catalog)

    def dump(self, database, output_path):
        self.dumped.append(database)
        if self.on_dump:
            self.on_dump(database, output_path)
        if database in self.fail:
            raise DumpError(database, "Access denied")
        with gzip.open(output_path, 'wb') as f:
            f.write(f"-- dump of {database}\n".encode())
        return os.path.getsize(output_path)


class TickingClock:
    """Returns a new instant, one second later, on every call."""

    def __init__(self, start=datetime(2024, 6, 1, 12, 0, 0), step=timedelta(seconds=1)):
        self.current = start
        self.step = step
        self.calls = 0

    def __call__(self):
        now = self.current
        self.current += self.step
        self.calls += 1
        return now


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never touches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def make_config(tmp_path):
    """
    Factory for Config instances rooted in tmp_path.

    Defaults: databases 'a,b', retention 2, pattern '{db}_{date}_{time}'.
    """
    temp_dir = tmp_path / 'tmp'
    temp_dir.mkdir()

    def _make(**overrides):
        values = {
            's3_bucket': 'test-bucket',
            's3_path': 'backups/mysql',
            'mysql_databases': 'a,b',
            'retention_count': 2,
            'name_pattern': '{db}_{date}_{time}',
            'log_file': str(tmp_path / 'backup.log'),
            'lock_file': str(tmp_path / 'run.lock'),
            'temp_dir': str(temp_dir),
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def make_source():
    """FakeSource class, for tests that need a configured fake."""
    return FakeSource


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def local_storage(tmp_path):
    """Filesystem object store under tmp_path/store."""
    return LocalStorage(str(tmp_path / 'store'))


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def test_logger():
    return logging.getLogger('mysqlbackup.tests')


@pytest.fixture
def make_coordinator(config, fake_source, local_storage, notifier, clock, test_logger):
    """
    Factory for a BackupCoordinator wired to fakes.

    Any collaborator can be overridden by keyword.
    """
    def _make(**overrides):
        cfg = overrides.pop('config', config)
        parts = {
            'config': cfg,
            'source': fake_source,
            'storage': local_storage,
            'notifier': notifier,
            'lock': RunLock(cfg.lock_file, test_logger),
            'log': test_logger,
            'clock': clock,
            'hostname': 'db01',
        }
        parts.update(overrides)
        return BackupCoordinator(**parts)

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
def seed_artifacts():
    """Function putting placeholder artifacts under the given keys."""
    def _seed(storage, keys):
        for key in keys:
            storage.put(key, io.BytesIO(b"old dump"))
    return _seed


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo configure_logging() between tests."""
    yield
    service_logger = logging.getLogger('mysqlbackup')
    for handler in list(service_logger.handlers):
        service_logger.removeHandler(handler)
        handler.close()
    service_logger.propagate = True
    service_logger.setLevel(logging.NOTSET)
