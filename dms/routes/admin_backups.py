"""
Admin-only backup management API.

Endpoints:
- GET /api/admin/backups - List backups
- POST /api/admin/backups - Trigger a manual backup
- GET /api/admin/backups/:id/status - Get backup status
- DELETE /api/admin/backups/:id - Delete a backup
- POST /api/admin/backups/maintenance - Queue notification purge and pin expiry
"""
from datetime import datetime

from quart import Blueprint, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from dms.config import BACKUP_JOB_TIMEOUT_MINUTES
from dms.database import SessionLocal
from dms.models import Backup
from dms.utils.auth_utils import requires_auth
from dms.utils.storage import get_backup_storage
from dms.utils.logging_utils import logger, log_error
from dms.utils.serializers import model_to_dict
from dms.workers import backup_queue, maintenance_queue
from dms.workers.backup_jobs import backup_filename, run_backup_job
from dms.workers.maintenance_jobs import run_maintenance

admin_backups_bp = Blueprint("admin_backups", __name__, url_prefix="/api/admin/backups")

QUEUE_UNAVAILABLE = {"error": "Background job queue is not available"}


@admin_backups_bp.route("", methods=["GET"])
@admin_backups_bp.route("/", methods=["GET"])
@requires_auth(roles=["admin"])
async def list_backups():
    session = SessionLocal()
    try:
        limit = min(request.args.get("limit", 50, type=int), 200)
        offset = request.args.get("offset", 0, type=int)
        status = request.args.get("status")

        query = session.query(Backup).order_by(Backup.created_at.desc())
        if status:
            query = query.filter(Backup.status == status)

        total = query.count()
        backups = query.limit(limit).offset(offset).all()

        return jsonify({
            "backups": [model_to_dict(b) for b in backups],
            "total": total,
            "limit": limit,
            "offset": offset
        })
    finally:
        session.close()


@admin_backups_bp.route("", methods=["POST"])
@admin_backups_bp.route("/", methods=["POST"])
@requires_auth(roles=["admin"])
async def create_backup():
    """Record a pending backup and hand it to the worker."""
    if backup_queue is None:
        return jsonify(QUEUE_UNAVAILABLE), 503

    user = request.user
    session = SessionLocal()
    try:
        now = datetime.utcnow()
        backup = Backup(
            filename=backup_filename("manual", now),
            backup_type="manual",
            status="pending",
            created_by=user.id,
            created_at=now
        )
        session.add(backup)
        session.commit()

        job = backup_queue.enqueue(
            run_backup_job,
            backup_id=backup.id,
            backup_type="manual",
            job_timeout=BACKUP_JOB_TIMEOUT_MINUTES * 60
        )
        backup.job_id = job.id
        session.commit()

        logger.info(f"[Admin] Manual backup {backup.id} enqueued by {user.username}")
        return jsonify({"backup": model_to_dict(backup), "job_id": job.id}), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create backup")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@admin_backups_bp.route("/<int:backup_id>/status", methods=["GET"])
@requires_auth(roles=["admin"])
async def get_backup_status(backup_id: int):
    session = SessionLocal()
    try:
        backup = session.get(Backup, backup_id)
        if not backup:
            return jsonify({"error": "Backup not found"}), 404
        return jsonify(model_to_dict(backup))
    finally:
        session.close()


@admin_backups_bp.route("/<int:backup_id>", methods=["DELETE"])
@requires_auth(roles=["admin"])
async def delete_backup(backup_id: int):
    """Delete a backup from the bucket and the database."""
    user = request.user
    session = SessionLocal()
    try:
        backup = session.get(Backup, backup_id)
        if not backup:
            return jsonify({"error": "Backup not found"}), 404
        if backup.status == "in_progress":
            return jsonify({"error": "Cannot delete a backup that is still running"}), 409

        if backup.storage_key and not get_backup_storage().delete_file(backup.storage_key):
            return jsonify({"error": "Could not delete backup file"}), 502

        session.delete(backup)
        session.commit()

        logger.info(f"[Admin] Backup {backup_id} deleted by {user.username}")
        return jsonify({"message": "Backup deleted successfully"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete backup")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@admin_backups_bp.route("/maintenance", methods=["POST"])
@requires_auth(roles=["admin"])
async def queue_maintenance():
    if maintenance_queue is None:
        return jsonify(QUEUE_UNAVAILABLE), 503
    job = maintenance_queue.enqueue(run_maintenance)
    logger.info(f"[Admin] Maintenance job {job.id} enqueued by {request.user.username}")
    return jsonify({"job_id": job.id}), 202
