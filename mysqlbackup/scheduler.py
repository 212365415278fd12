"""
APScheduler configuration for daemon mode.

Runs one backup cycle every BACKUP_INTERVAL_HOURS. The configuration is
reloaded before every cycle, and the run lock still guards against a
one-shot run started by hand while the daemon is working.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mysqlbackup import create_coordinator
from mysqlbackup.config import Config, ConfigError
from mysqlbackup.models import RunResult


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'mysql_backup'

# First run delay after start, and random delay added to every run
STARTUP_DELAY = timedelta(minutes=5)
JITTER_SECONDS = 300

# Global scheduler instance
scheduler = None


def run_backup_cycle(env_file: Optional[str] = None) -> Optional[RunResult]:
    """
    Load configuration and perform one backup run.

    Errors are logged, never raised, so a bad cycle does not stop the
    scheduler.

    Returns:
        RunResult, or None if the cycle could not start
    """
    try:
        config = Config.from_env(env_file=env_file)
    except ConfigError as e:
        logger.error(f"Invalid configuration, skipping scheduled backup: {e}")
        return None

    try:
        coordinator = create_coordinator(config)
        result = coordinator.run()
        logger.info(f"Scheduled backup finished: {result.status.value} (exit code {result.exit_code})")
        return result
    except Exception as e:
        logger.exception(f"Scheduled backup failed: {e}")
        return None


def init_scheduler(config: Config, env_file: Optional[str] = None, run_now: bool = False):
    """
    Initialize the scheduler with the backup job.

    Args:
        config: Configuration providing the interval
        env_file: .env path reloaded before every cycle
        run_now: Start the first cycle immediately instead of after STARTUP_DELAY
    """
    global scheduler

    if scheduler is not None:
        return scheduler

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    first_run = datetime.now(timezone.utc)
    if not run_now:
        first_run += STARTUP_DELAY

    scheduler.add_job(
        func=run_backup_cycle,
        kwargs={'env_file': env_file},
        trigger=IntervalTrigger(hours=config.interval_hours, jitter=JITTER_SECONDS, timezone='UTC'),
        id=BACKUP_JOB_ID,
        name=f"MySQL backup (every {config.interval_hours}h)",
        next_run_time=first_run,
        replace_existing=True
    )

    logger.info(
        f"Scheduled backups every {config.interval_hours}h, first run at {first_run.isoformat()}"
    )
    return scheduler


def start_scheduler():
    """
    Start the scheduler. Blocks until shutdown.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    logger.info("Scheduler started")
    scheduler.start()


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    scheduler = None
