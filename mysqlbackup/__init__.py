import os
import logging
from logging.handlers import RotatingFileHandler


__version__ = '1.0.0'

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger('mysqlbackup')


def configure_logging(log_file=None, level=logging.INFO):
    """
    Configure logging for the backup service.

    Records go to the console and, when ``log_file`` is set, are appended to
    that file (rotated at 10MB, 10 files kept).

    Returns:
        The 'mysqlbackup' logger
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler
    if log_file:
        try:
            log_dir = os.path.dirname(os.path.abspath(log_file))
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10485760,  # 10MB
                backupCount=10
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Cannot write log file {log_file}: {e}. Logging to console only.")

    logger.setLevel(level)
    logger.propagate = False
    return logger


def create_storage(config):
    """
    Build the object store gateway selected by STORAGE_BACKEND.

    Raises:
        StorageError: If the backend cannot be initialized
    """
    from mysqlbackup.backup.storage import LocalStorage, S3Storage

    if config.storage_backend == 'local':
        return LocalStorage(config.local_backup_dir)

    return S3Storage(
        bucket_name=config.s3_bucket,
        access_key=config.aws_access_key_id,
        secret_key=config.aws_secret_access_key,
        region=config.aws_region,
        endpoint_url=config.s3_endpoint
    )


def create_coordinator(config, log=None):
    """
    Build a BackupCoordinator wired to the MySQL client, the configured
    object store and the webhook.

    Args:
        config: Config instance
        log: Logger for run events (default: the 'mysqlbackup' logger)
    """
    from mysqlbackup.backup.executor import BackupCoordinator
    from mysqlbackup.backup.lock import RunLock
    from mysqlbackup.backup.sources import MySQLSource
    from mysqlbackup.notifications import WebhookNotifier

    log = log or logger

    source = MySQLSource(
        host=config.mysql_host,
        port=config.mysql_port,
        user=config.mysql_user,
        password=config.mysql_password
    )
    storage = create_storage(config)
    notifier = WebhookNotifier(config.notify_webhook_url, config.notify_type)
    lock = RunLock(config.lock_file, log)

    return BackupCoordinator(config, source, storage, notifier, lock, log=log)
