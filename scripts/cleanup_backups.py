#!/usr/bin/env python
"""
Weekly housekeeping for a cron job or scheduled machine.

Deletes backups older than BACKUP_RETENTION_DAYS from the database and the
backup bucket, purges old read notifications and unpins expired messages.

Usage:
    python scripts/cleanup_backups.py
"""
import sys

from botocore.exceptions import BotoCoreError
from sqlalchemy.exc import SQLAlchemyError

from dms.workers.backup_jobs import cleanup_old_backups
from dms.workers.maintenance_jobs import run_maintenance
from dms.utils.logging_utils import logger


def main():
    logger.info("[Cleanup] Starting cleanup job")

    try:
        removed = cleanup_old_backups()
        summary = run_maintenance()
    except (SQLAlchemyError, BotoCoreError) as e:
        logger.error(f"[Cleanup] Cleanup failed: {str(e)}")
        return 1

    logger.info(f"[Cleanup] Done: {removed} backup(s) removed, {summary}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
