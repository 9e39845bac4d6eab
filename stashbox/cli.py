"""Command line entry point."""

import sys
import logging
import argparse

from stashbox import configure_logging
from stashbox.config import Config, ConfigError, load_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='stashbox',
        description='Back up data folders and databases to S3-compatible storage.'
    )
    parser.add_argument('-c', '--config', default=Config.CONFIG_PATH,
                        help='path to the JSON configuration (default: %(default)s)')
    parser.add_argument('-w', '--work-dir', default=None,
                        help='directory for backups/ and the bundle')
    parser.add_argument('-s', '--schedule', metavar='CRON', default=None,
                        help="run on a crontab schedule instead of once, e.g. '0 2 * * *'")
    parser.add_argument('--log-level', default=Config.LOG_LEVEL,
                        help='log level (default: %(default)s)')
    parser.add_argument('--log-dir', default=Config.LOG_DIR,
                        help='directory for a rotating log file')
    return parser


def main(argv=None) -> int:
    """
    Run the CLI.

    Returns:
        Process exit code: 0 on success, 1 on any failure
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_dir)

    try:
        settings = load_settings(args.config, work_dir=args.work_dir)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.schedule:
        from stashbox.scheduler import run_on_schedule

        try:
            run_on_schedule(settings, args.schedule)
        except ValueError as e:
            logger.error(f"Invalid schedule '{args.schedule}': {e}")
            return 1
        return 0

    from stashbox.backup.executor import execute_backup

    try:
        execute_backup(settings)
    except Exception:
        # Already logged by the executor
        logger.debug("Backup traceback", exc_info=True)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
