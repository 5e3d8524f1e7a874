from datetime import datetime, timedelta

from dateutil import parser as date_parser
from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dms.database import SessionLocal
from dms.models import ActivityType, Customer, Job, JobProgress, JobTemplate, Lead, User, Vehicle
from dms.schemas.jobs import (
    JobCreateSchema, JobUpdateSchema, JobStatusSchema, JobAssignSchema,
    JobProgressCreateSchema, JobFromTemplateSchema,
)
from dms.services.activity import record_activity
from dms.services.jobs import apply_status, generate_job_number, job_stats
from dms.services.notification_events import dispatch_event
from dms.services.realtime import JOB_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict, page_args, user_summary

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")

MANAGE_ROLES = ["admin", "manager", "office_staff"]


def serialize_job(job, include_progress=False):
    vehicle = job.vehicle
    extra = {
        "assigned_to": user_summary(job.assigned_to),
        "vehicle": {
            "id": vehicle.id,
            "stock_number": vehicle.stock_number,
            "registration": vehicle.registration,
            "make": vehicle.make,
            "model": vehicle.model,
        } if vehicle else None,
    }
    if include_progress:
        extra["progress"] = [model_to_dict(p) for p in job.progress_entries]
    return model_to_dict(job, extra=extra)


def _job_query(session):
    return session.query(Job).options(joinedload(Job.assigned_to), joinedload(Job.vehicle))


def _check_links(session, values):
    checks = [
        ("vehicle_id", Vehicle, "Vehicle"),
        ("customer_id", Customer, "Customer"),
        ("lead_id", Lead, "Lead"),
        ("assigned_to_id", User, "User"),
        ("supervisor_id", User, "Supervisor"),
        ("parent_job_id", Job, "Parent job"),
    ]
    for field, model, label in checks:
        if values.get(field) and not session.get(model, values[field]):
            return jsonify({"error": f"{label} not found"}), 404
    return None


def _parse_range_arg(name):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        parsed = date_parser.isoparse(raw)
    except ValueError:
        raise ValueError(f"{name} must be an ISO-8601 date")
    return parsed.replace(tzinfo=None)


def _book_job(session, user, values):
    """Insert a job with a fresh number and fire the booking side effects."""
    values["job_number"] = generate_job_number(session, values.get("job_type"))
    values["created_by_id"] = user.id
    if values.get("assigned_to_id") and values.get("job_status", "pending") == "pending":
        values["job_status"] = "assigned"

    job = Job(**values)
    session.add(job)
    session.flush()
    record_activity(session, user, ActivityType.created, "job", job.id, f"Booked {job.job_number}")
    session.commit()

    job = _job_query(session).filter(Job.id == job.id).one()
    payload = serialize_job(job)
    log_user_action("created", "job", job.id, job_number=job.job_number)

    dispatch_event(session, "job.booked", {
        "job_type": job.job_type,
        "job_number": job.job_number,
    }, triggered_by=user, entity_id=job.id)
    broadcast_change(JOB_UPDATES, "job:created", payload, user=user, refresh_dashboard=True)
    return payload


@jobs_bp.route("", methods=["GET"])
@jobs_bp.route("/", methods=["GET"])
@requires_auth()
async def list_jobs():
    session = SessionLocal()
    try:
        page, per_page = page_args(request.args)
        query = _job_query(session)
        args = request.args
        if args.get("status"):
            query = query.filter(Job.job_status == args["status"])
        if args.get("type"):
            query = query.filter(Job.job_type == args["type"])
        if args.get("assigned_to_id"):
            try:
                query = query.filter(Job.assigned_to_id == int(args["assigned_to_id"]))
            except ValueError:
                return jsonify({"error": "assigned_to_id must be an integer"}), 400
        q = (args.get("q") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                Job.job_number.ilike(pattern),
                Job.contact_name.ilike(pattern),
                Job.postcode.ilike(pattern),
                Job.notes.ilike(pattern),
            ))

        total = query.count()
        jobs = query.order_by(Job.created_at.desc(), Job.id.desc()).offset(
            (page - 1) * per_page).limit(per_page).all()

        response = jsonify({
            "jobs": [serialize_job(j) for j in jobs],
            "total": total,
            "page": page,
            "per_page": per_page,
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@jobs_bp.route("/stats", methods=["GET"])
@requires_auth()
async def get_job_stats():
    session = SessionLocal()
    try:
        response = jsonify(job_stats(session))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@jobs_bp.route("/calendar", methods=["GET"])
@requires_auth()
async def job_calendar():
    """Jobs scheduled in [start, end]; defaults to the current month."""
    try:
        start = _parse_range_arg("start")
        end = _parse_range_arg("end")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    if start is None:
        start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if end is None:
        end = (start.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(microseconds=1)
    if end < start:
        return jsonify({"error": "end must not be before start"}), 400

    session = SessionLocal()
    try:
        jobs = _job_query(session).filter(
            Job.scheduled_date >= start, Job.scheduled_date <= end
        ).order_by(Job.scheduled_date.asc()).all()
        response = jsonify([serialize_job(j) for j in jobs])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>", methods=["GET"])
@requires_auth()
async def get_job(job_id):
    session = SessionLocal()
    try:
        job = _job_query(session).filter(Job.id == job_id).first()
        if not job:
            return jsonify({"error": "Job not found"}), 404

        record_activity(session, request.user, ActivityType.viewed, "job", job.id, f"Viewed {job.job_number}")
        session.commit()

        response = jsonify(serialize_job(job, include_progress=True))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@jobs_bp.route("", methods=["POST"])
@jobs_bp.route("/", methods=["POST"])
@requires_auth()
async def create_job():
    user = request.user
    try:
        data = JobCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        values = data.model_dump()
        missing = _check_links(session, values)
        if missing:
            return missing
        return jsonify(_book_job(session, user, values)), 201
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "Job number already in use, please retry"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create job")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/from-template/<int:template_id>", methods=["POST"])
@requires_auth()
async def create_job_from_template(template_id):
    user = request.user
    try:
        data = JobFromTemplateSchema.model_validate(await request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        template = session.get(JobTemplate, template_id)
        if not template:
            return jsonify({"error": "Job template not found"}), 404
        if not template.is_active:
            return jsonify({"error": "Job template is inactive"}), 400

        overrides = data.model_dump(exclude_none=True)
        missing = _check_links(session, overrides)
        if missing:
            return missing

        notes = overrides.pop("notes", None)
        values = {
            "job_type": template.job_type,
            "job_category": template.template_category,
            "job_priority": template.default_priority or "medium",
            "job_status": "pending",
            "estimated_duration_hours": template.estimated_duration_hours,
            "skills_required": template.required_skills,
            "equipment_required": template.required_equipment,
            "quality_check_required": bool(template.quality_checks),
            "notes": "\n\n".join(part for part in (template.instructions, notes) if part) or None,
            **overrides,
        }
        return jsonify(_book_job(session, user, values)), 201
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "Job number already in use, please retry"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create job from template")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>", methods=["PUT"])
@requires_auth()
async def update_job(job_id):
    user = request.user
    try:
        data = JobUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in ("job_type", "job_category", "job_priority", "job_status"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        job = session.get(Job, job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        missing = _check_links(session, changes)
        if missing:
            return missing

        status = changes.pop("job_status", None)
        for field, value in changes.items():
            setattr(job, field, value)
        if status and status != job.job_status:
            apply_status(job, status)

        record_activity(session, user, ActivityType.edited, "job", job.id,
                        f"Updated {', '.join(sorted(changes)) or 'status'}")
        session.commit()

        job = _job_query(session).filter(Job.id == job_id).one()
        payload = serialize_job(job)
        broadcast_change(JOB_UPDATES, "job:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update job")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>/status", methods=["PATCH"])
@requires_auth()
async def update_job_status(job_id):
    user = request.user
    try:
        data = JobStatusSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        job = session.get(Job, job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404

        previous = job.job_status
        apply_status(job, data.job_status)
        if data.completion_notes:
            job.completion_notes = data.completion_notes
        record_activity(session, user, ActivityType.edited, "job", job.id,
                        f"Status {previous} -> {data.job_status}")
        session.commit()

        job = _job_query(session).filter(Job.id == job_id).one()
        payload = serialize_job(job)
        broadcast_change(JOB_UPDATES, "job:status_changed",
                         {**payload, "previous_status": previous}, user=user, refresh_dashboard=True)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to change job status")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>/assign", methods=["PATCH"])
@requires_auth(roles=MANAGE_ROLES)
async def assign_job(job_id):
    user = request.user
    try:
        data = JobAssignSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        job = session.get(Job, job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        assignee = session.get(User, data.assigned_to_id)
        if not assignee or not assignee.is_active:
            return jsonify({"error": "User not found or inactive"}), 404

        job.assigned_to_id = assignee.id
        job.job_status = "assigned"
        record_activity(session, user, ActivityType.edited, "job", job.id, f"Assigned to {assignee.username}")
        session.commit()

        job = _job_query(session).filter(Job.id == job_id).one()
        payload = serialize_job(job)
        broadcast_change(JOB_UPDATES, "job:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to assign job")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>", methods=["DELETE"])
@requires_auth(roles=MANAGE_ROLES)
async def delete_job(job_id):
    user = request.user
    session = SessionLocal()
    try:
        job = session.get(Job, job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404

        session.query(Job).filter(Job.parent_job_id == job_id).update(
            {Job.parent_job_id: None}, synchronize_session=False)
        session.delete(job)
        record_activity(session, user, ActivityType.deleted, "job", job_id, f"Deleted {job.job_number}")
        session.commit()

        log_user_action("deleted", "job", job_id)
        broadcast_change(JOB_UPDATES, "job:deleted", {"id": job_id}, user=user, refresh_dashboard=True)
        return jsonify({"message": "Job deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete job")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>/progress", methods=["GET"])
@requires_auth()
async def list_job_progress(job_id):
    session = SessionLocal()
    try:
        if not session.get(Job, job_id):
            return jsonify({"error": "Job not found"}), 404
        entries = session.query(JobProgress).filter(JobProgress.job_id == job_id).order_by(
            JobProgress.created_at.asc()).all()
        response = jsonify([model_to_dict(p) for p in entries])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@jobs_bp.route("/<int:job_id>/progress", methods=["POST"])
@requires_auth()
async def add_job_progress(job_id):
    user = request.user
    try:
        data = JobProgressCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        job = session.get(Job, job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404

        values = data.model_dump(exclude_none=True)
        entry = JobProgress(job_id=job_id, user_id=user.id, **values)
        session.add(entry)

        # First progress on an open job means work has started
        if job.job_status in ("pending", "assigned"):
            apply_status(job, "in_progress")
        if data.progress_stage == "completed" and data.stage_status == "completed":
            apply_status(job, "completed")
        session.commit()

        payload = model_to_dict(entry)
        broadcast_change(JOB_UPDATES, "job:progress", {"job_id": job_id, "progress": payload,
                                                       "job_status": job.job_status}, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to record job progress")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
