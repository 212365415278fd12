"""Command-line interface for the MySQL backup service.

Usage:
    mysql-backup                 # one backup run (same as `run`)
    mysql-backup run
    mysql-backup daemon [--now]  # run every BACKUP_INTERVAL_HOURS
    mysql-backup check           # verify tools, MySQL and storage access

Options:
    --env-file PATH    .env file to load (default: ./.env)
    --log-level LEVEL  DEBUG, INFO, WARNING, ERROR
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from mysqlbackup import __version__, configure_logging, create_coordinator, create_storage
from mysqlbackup.backup.sources import MySQLSource, SourceError
from mysqlbackup.backup.storage import StorageError
from mysqlbackup.config import Config, ConfigError


logger = logging.getLogger('mysqlbackup')


def _handle_sigterm(signum, frame):
    # unwind through finally blocks so the lock and temp dir are cleaned up
    raise SystemExit(128 + signum)


def _load_config(args) -> Config:
    return Config.from_env(env_file=args.env_file)


def cmd_run(args) -> int:
    """Perform one backup run and return its exit code."""
    try:
        config = _load_config(args)
    except ConfigError as e:
        configure_logging(None, args.log_level)
        logger.critical(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.log_file, args.log_level)
    try:
        coordinator = create_coordinator(config)
    except StorageError as e:
        logger.critical(f"Cannot initialize storage: {e}")
        return 1

    result = coordinator.run()
    return result.exit_code


def cmd_daemon(args) -> int:
    """Run backups on a fixed interval until stopped."""
    from mysqlbackup.scheduler import init_scheduler, start_scheduler, stop_scheduler

    try:
        config = _load_config(args)
    except ConfigError as e:
        configure_logging(None, args.log_level)
        logger.critical(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.log_file, args.log_level)
    init_scheduler(config, env_file=args.env_file, run_now=args.now)
    try:
        start_scheduler()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Daemon stopped")
    finally:
        stop_scheduler()
    return 0


def cmd_check(args) -> int:
    """Check client tools, MySQL connectivity and backup storage access."""
    try:
        config = _load_config(args)
    except ConfigError as e:
        configure_logging(None, args.log_level)
        logger.critical(f"Invalid configuration: {e}")
        return 1

    configure_logging(None, args.log_level)
    failures = 0

    source = MySQLSource(
        host=config.mysql_host,
        port=config.mysql_port,
        user=config.mysql_user,
        password=config.mysql_password
    )

    try:
        source.preflight(include_catalog=True)
        logger.info("MySQL client tools available")
    except SourceError as e:
        logger.error(f"{e}. Install the MySQL client tools.")
        failures += 1
    else:
        try:
            source.test_connection()
            logger.info("MySQL connection successful")
        except SourceError as e:
            logger.error(f"Could not connect to MySQL: {e}")
            failures += 1

    try:
        storage = create_storage(config)
        storage.test_connection()
        logger.info(f"Backup storage accessible: {storage.describe('')}")
    except StorageError as e:
        logger.error(f"Could not access backup storage: {e}")
        failures += 1

    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mysql-backup',
        description='Dump MySQL databases, upload them to S3 (or a local directory) and prune old backups.'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--env-file', default=None, help='Path to .env file (default: ./.env)')
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Log level (default: INFO)'
    )

    subparsers = parser.add_subparsers(dest='command')

    run_parser = subparsers.add_parser('run', help='Run one backup cycle')
    run_parser.set_defaults(func=cmd_run)

    daemon_parser = subparsers.add_parser('daemon', help='Run backups every BACKUP_INTERVAL_HOURS')
    daemon_parser.add_argument('--now', action='store_true', help='Start the first run immediately')
    daemon_parser.set_defaults(func=cmd_daemon)

    check_parser = subparsers.add_parser('check', help='Verify tools, MySQL and storage access')
    check_parser.set_defaults(func=cmd_check)

    parser.set_defaults(func=cmd_run)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.log_level = getattr(logging, args.log_level)

    signal.signal(signal.SIGTERM, _handle_sigterm)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
