"""
Backup job: pg_dump → gzip → checksum → upload to the backup bucket → cleanup
"""
import gzip
import hashlib
import os
import shutil
import subprocess
import tempfile
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Backup
from dms.config import (
    SQLALCHEMY_DATABASE_URI,
    BACKUP_RETENTION_DAYS,
    BACKUP_JOB_TIMEOUT_MINUTES,
)
from dms.utils.storage import get_backup_storage
from dms.utils.logging_utils import logger


class BackupError(RuntimeError):
    pass


def backup_filename(backup_type: str, now: datetime) -> str:
    return f"backup_{backup_type}_{now.strftime('%Y%m%d_%H%M%S')}.sql.gz"


def backup_storage_key(filename: str, now: datetime) -> str:
    return f"backups/{now.year}/{now.month:02d}/{filename}"


def sha256_of(path: str) -> str:
    sha256_hash = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def run_backup_job(backup_id: int, backup_type: str = "manual"):
    """
    Execute a database backup job:
    1. Mark the backup in_progress
    2. Run pg_dump (plain SQL) into a temp file
    3. gzip it and compute the SHA-256 checksum
    4. Upload to the backup bucket under backups/YYYY/MM/
    5. Record size, checksum and key; remove temp files
    """
    session = SessionLocal()
    backup = None
    work_dir = None

    try:
        backup = session.get(Backup, backup_id)
        if not backup:
            logger.error(f"[Backup] Backup ID {backup_id} not found")
            return

        backup.status = "in_progress"
        backup.started_at = datetime.utcnow()
        session.commit()

        db_url = SQLALCHEMY_DATABASE_URI
        if not db_url.startswith("postgresql"):
            raise BackupError("Backups require a PostgreSQL database")

        now = datetime.utcnow()
        filename = backup.filename or backup_filename(backup_type, now)
        backup.filename = filename

        work_dir = tempfile.mkdtemp(prefix="dms-backup-")
        dump_path = os.path.join(work_dir, filename[:-3])
        gzip_path = os.path.join(work_dir, filename)

        logger.info(f"[Backup] Starting pg_dump for backup {backup_id}")
        result = subprocess.run(
            ["pg_dump", "--no-owner", "--no-acl", "--file", dump_path, db_url],
            capture_output=True,
            text=True,
            timeout=BACKUP_JOB_TIMEOUT_MINUTES * 60,
        )
        if result.returncode != 0:
            raise BackupError(f"pg_dump failed: {result.stderr.strip()}")

        with open(dump_path, "rb") as src, gzip.open(gzip_path, "wb") as dst:
            shutil.copyfileobj(src, dst)

        backup.size_bytes = os.path.getsize(gzip_path)
        backup.checksum = sha256_of(gzip_path)

        storage_key = backup_storage_key(filename, now)
        backup.storage_key = storage_key

        logger.info(f"[Backup] Uploading {storage_key} ({backup.size_bytes} bytes)")
        if not get_backup_storage().upload_file(gzip_path, storage_key):
            raise BackupError("Backup upload failed")

        backup.status = "completed"
        backup.completed_at = datetime.utcnow()
        backup.database_name = db_url.rsplit("/", 1)[-1].split("?")[0] or "unknown"
        session.commit()

        logger.info(f"[Backup] Backup {backup_id} completed successfully")

    except (BackupError, OSError, subprocess.SubprocessError, SQLAlchemyError) as e:
        logger.error(f"[Backup] Backup {backup_id} failed: {str(e)}")
        session.rollback()
        if backup:
            backup.status = "failed"
            backup.error_message = str(e)
            backup.completed_at = datetime.utcnow()
            session.commit()
        raise

    finally:
        if work_dir:
            shutil.rmtree(work_dir, ignore_errors=True)
        session.close()


def cleanup_old_backups(now: datetime = None) -> int:
    """
    Delete completed backups older than BACKUP_RETENTION_DAYS from the
    database and the bucket. Returns the number of records removed.
    """
    session = SessionLocal()
    storage = get_backup_storage()
    removed = 0

    try:
        cutoff_date = (now or datetime.utcnow()) - timedelta(days=BACKUP_RETENTION_DAYS)
        old_backups = session.query(Backup).filter(
            Backup.created_at < cutoff_date,
            Backup.status == "completed"
        ).all()

        logger.info(f"[Cleanup] Found {len(old_backups)} backups older than {BACKUP_RETENTION_DAYS} days")

        for backup in old_backups:
            if backup.storage_key and not storage.delete_file(backup.storage_key):
                logger.warning(f"[Cleanup] Keeping record {backup.id}; bucket delete failed")
                continue
            try:
                session.delete(backup)
                session.commit()
                removed += 1
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"[Cleanup] Failed to delete backup {backup.id}: {str(e)}")

        logger.info(f"[Cleanup] Removed {removed} backup(s)")
        return removed

    finally:
        session.close()
