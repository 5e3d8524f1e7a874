#!/usr/bin/env python
"""
Scheduled backup script for a cron job or scheduled machine.

Creates a backup record and runs the job in-process, so no worker or Redis
is needed. Exit codes: 0 on success, 1 on failure.

Usage:
    python scripts/run_scheduled_backup.py
"""
import sys
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Backup
from dms.workers.backup_jobs import BackupError, backup_filename, run_backup_job
from dms.utils.logging_utils import logger


def main():
    logger.info("[Scheduled] Starting scheduled backup job")
    session = SessionLocal()

    try:
        now = datetime.utcnow()
        backup = Backup(
            filename=backup_filename("scheduled", now),
            backup_type="scheduled",
            status="pending",
            created_by=None,
            created_at=now
        )
        session.add(backup)
        session.commit()
        backup_id = backup.id
        logger.info(f"[Scheduled] Created backup record: {backup_id}")

        try:
            run_backup_job(backup_id, backup_type="scheduled")
        except (BackupError, OSError) as e:
            logger.error(f"[Scheduled] Backup {backup_id} failed: {e}")
            return 1

        session.expire_all()
        backup = session.get(Backup, backup_id)
        if backup.status == "completed":
            logger.info(f"[Scheduled] Backup {backup_id} completed: {backup.storage_key} "
                        f"({backup.size_bytes} bytes, sha256 {backup.checksum})")
            return 0

        logger.error(f"[Scheduled] Backup {backup_id} failed: {backup.error_message}")
        return 1

    except SQLAlchemyError as e:
        logger.error(f"[Scheduled] Scheduled backup failed: {str(e)}")
        return 1

    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
