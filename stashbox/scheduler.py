"""
Cron-style scheduling for Stashbox.

Without a schedule the CLI runs one backup and exits. With one, the process
stays in the foreground and starts a run at every cron tick.
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from stashbox.config import BackupSettings
from stashbox.backup.executor import execute_backup

logger = logging.getLogger(__name__)


JOB_ID = 'backup'


def scheduled_backup(settings: BackupSettings):
    """Run one backup; a failure is logged and the scheduler keeps going."""
    try:
        execute_backup(settings)
    except Exception as e:
        logger.error(f"Scheduled backup failed: {e}")


def create_scheduler(settings: BackupSettings, cron: str, timezone=None) -> BlockingScheduler:
    """
    Build a scheduler running the backup on a crontab expression.

    Args:
        settings: Backup settings passed to every run
        cron: Crontab expression, e.g. '0 2 * * *'
        timezone: Scheduler timezone (default: local time)

    Returns:
        Configured, not yet started, BlockingScheduler

    Raises:
        ValueError: If the cron expression is invalid
    """
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Never two runs at the same time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(executors=executors, job_defaults=job_defaults, timezone=timezone)

    trigger = CronTrigger.from_crontab(cron, timezone=timezone)
    scheduler.add_job(
        func=scheduled_backup,
        args=[settings],
        trigger=trigger,
        id=JOB_ID,
        name='Stashbox backup',
        replace_existing=True
    )

    return scheduler


def run_on_schedule(settings: BackupSettings, cron: str, timezone=None):
    """Block and run backups on schedule until interrupted."""
    scheduler = create_scheduler(settings, cron, timezone=timezone)
    logger.info(f"Scheduled backups: {cron}")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
