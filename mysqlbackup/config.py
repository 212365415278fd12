import os
import tempfile
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import dotenv_values

from mysqlbackup.backup.lock import DEFAULT_LOCK_FILE
from mysqlbackup.backup.naming import DEFAULT_NAME_PATTERN
from mysqlbackup.backup.sources import parse_database_list
from mysqlbackup.backup.storage import DEFAULT_S3_ENDPOINT
from mysqlbackup.notifications import NOTIFY_TYPES


DEFAULT_ENV_FILE = '.env'
DEFAULT_LOG_FILE = '/var/log/mysql-backup-service.log'
ALL_DATABASES = 'ALL'
STORAGE_BACKENDS = ('s3', 'local')


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""
    pass


def _int_option(values: Mapping[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or str(raw).strip() == '':
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Config:
    """Backup run configuration"""

    # MySQL
    mysql_host: str = 'localhost'
    mysql_port: int = 3306
    mysql_user: str = 'root'
    mysql_password: str = field(default='', repr=False)
    mysql_databases: str = ALL_DATABASES

    # Naming
    name_pattern: str = DEFAULT_NAME_PATTERN

    # Storage
    storage_backend: str = 's3'
    local_backup_dir: Optional[str] = None
    s3_bucket: str = ''
    s3_path: str = 'backups/mysql'
    s3_endpoint: str = DEFAULT_S3_ENDPOINT
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = field(default=None, repr=False)
    aws_region: str = 'us-east-1'

    # Schedule & retention
    interval_hours: int = 24
    retention_count: int = 7

    # Notifications
    notify_webhook_url: Optional[str] = None
    notify_type: str = 'slack'

    # Runtime
    log_file: str = DEFAULT_LOG_FILE
    lock_file: str = DEFAULT_LOCK_FILE
    temp_dir: str = field(default_factory=tempfile.gettempdir)

    def __post_init__(self):
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigError(
                f"STORAGE_BACKEND must be one of {list(STORAGE_BACKENDS)}, got {self.storage_backend!r}"
            )
        if self.storage_backend == 's3' and not self.s3_bucket:
            raise ConfigError("S3_BUCKET is required")
        if self.storage_backend == 'local' and not self.local_backup_dir:
            raise ConfigError("LOCAL_BACKUP_DIR is required when STORAGE_BACKEND=local")
        if self.retention_count < 0:
            raise ConfigError(f"BACKUP_RETENTION_COUNT must be >= 0, got {self.retention_count}")
        if self.interval_hours <= 0:
            raise ConfigError(f"BACKUP_INTERVAL_HOURS must be > 0, got {self.interval_hours}")
        if self.notify_type not in NOTIFY_TYPES:
            raise ConfigError(
                f"NOTIFY_TYPE must be one of {list(NOTIFY_TYPES)}, got {self.notify_type!r}"
            )

    @property
    def all_databases(self) -> bool:
        return self.mysql_databases.strip().upper() == ALL_DATABASES

    @property
    def database_list(self) -> List[str]:
        """Explicitly configured databases (empty when ALL)."""
        if self.all_databases:
            return []
        return parse_database_list(self.mysql_databases)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> 'Config':
        """Build a Config from KEY=VALUE settings."""
        def get(key, default=None):
            value = values.get(key)
            if value is None or str(value).strip() == '':
                return default
            return str(value).strip()

        return cls(
            mysql_host=get('MYSQL_HOST', 'localhost'),
            mysql_port=_int_option(values, 'MYSQL_PORT', 3306),
            mysql_user=get('MYSQL_USER', 'root'),
            mysql_password=values.get('MYSQL_PASSWORD') or '',
            mysql_databases=get('MYSQL_DATABASES', ALL_DATABASES),
            name_pattern=get('BACKUP_NAME_PATTERN', DEFAULT_NAME_PATTERN),
            storage_backend=get('STORAGE_BACKEND', 's3').lower(),
            local_backup_dir=get('LOCAL_BACKUP_DIR'),
            s3_bucket=get('S3_BUCKET', ''),
            s3_path=get('S3_PATH', 'backups/mysql'),
            s3_endpoint=get('S3_ENDPOINT', DEFAULT_S3_ENDPOINT),
            aws_access_key_id=get('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=get('AWS_SECRET_ACCESS_KEY'),
            aws_region=get('AWS_DEFAULT_REGION', 'us-east-1'),
            interval_hours=_int_option(values, 'BACKUP_INTERVAL_HOURS', 24),
            retention_count=_int_option(values, 'BACKUP_RETENTION_COUNT', 7),
            notify_webhook_url=get('NOTIFY_WEBHOOK_URL'),
            notify_type=get('NOTIFY_TYPE', 'slack').lower(),
            log_file=get('LOG_FILE', DEFAULT_LOG_FILE),
            lock_file=get('LOCK_FILE', DEFAULT_LOCK_FILE),
            temp_dir=get('TEMP_DIR') or tempfile.gettempdir(),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 env_file: Optional[str] = None) -> 'Config':
        """
        Load configuration from a .env file overlaid by the environment.

        Args:
            environ: Environment mapping (default: os.environ)
            env_file: Path to a .env file; defaults to MYSQL_BACKUP_ENV_FILE or ./.env.
                A missing default file is ignored, a missing explicit file is an error.

        Raises:
            ConfigError: If the file is missing or a value is invalid
        """
        environ = os.environ if environ is None else environ

        explicit = env_file or environ.get('MYSQL_BACKUP_ENV_FILE')
        path = explicit or DEFAULT_ENV_FILE

        values = {}
        if os.path.exists(path):
            values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
        elif explicit:
            raise ConfigError(f".env file not found at {path}")

        values.update(environ)
        return cls.from_mapping(values)
