"""
Staff rota, vehicle movement records and reusable job templates.
"""
from dateutil import parser as date_parser
from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import JobTemplate, StaffSchedule, User, Vehicle, VehicleLogistics
from dms.schemas.jobs import (
    StaffScheduleCreateSchema, StaffScheduleUpdateSchema,
    VehicleLogisticsCreateSchema, VehicleLogisticsUpdateSchema,
    JobTemplateCreateSchema, JobTemplateUpdateSchema,
)
from dms.services.realtime import JOB_UPDATES, VEHICLE_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict

staff_schedules_bp = Blueprint("staff_schedules", __name__, url_prefix="/api/staff-schedules")
vehicle_logistics_bp = Blueprint("vehicle_logistics", __name__, url_prefix="/api/vehicle-logistics")
job_templates_bp = Blueprint("job_templates", __name__, url_prefix="/api/job-templates")

MANAGE_ROLES = ["admin", "manager", "office_staff"]


def _no_store(payload):
    response = jsonify(payload)
    response.headers["Cache-Control"] = "no-store"
    return response


# Staff schedules

@staff_schedules_bp.route("", methods=["GET"])
@staff_schedules_bp.route("/", methods=["GET"])
@requires_auth()
async def list_schedules():
    """Filter by ``user_id`` and an inclusive ``start``/``end`` date range."""
    session = SessionLocal()
    try:
        query = session.query(StaffSchedule)
        args = request.args
        try:
            if args.get("user_id"):
                query = query.filter(StaffSchedule.user_id == int(args["user_id"]))
            if args.get("start"):
                query = query.filter(StaffSchedule.schedule_date >= date_parser.isoparse(args["start"]).replace(tzinfo=None))
            if args.get("end"):
                query = query.filter(StaffSchedule.schedule_date <= date_parser.isoparse(args["end"]).replace(tzinfo=None))
        except ValueError:
            return jsonify({"error": "Invalid filter value"}), 400

        schedules = query.order_by(StaffSchedule.schedule_date.asc(), StaffSchedule.shift_start_time.asc()).all()
        return _no_store([model_to_dict(s) for s in schedules])
    finally:
        session.close()


@staff_schedules_bp.route("", methods=["POST"])
@staff_schedules_bp.route("/", methods=["POST"])
@requires_auth(roles=MANAGE_ROLES)
async def create_schedule():
    user = request.user
    try:
        data = StaffScheduleCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        if not session.get(User, data.user_id):
            return jsonify({"error": "User not found"}), 404

        schedule = StaffSchedule(created_by_id=user.id, **data.model_dump())
        session.add(schedule)
        session.commit()

        payload = model_to_dict(schedule)
        broadcast_change(JOB_UPDATES, "schedule:created", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create staff schedule")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@staff_schedules_bp.route("/<int:schedule_id>", methods=["PUT"])
@requires_auth(roles=MANAGE_ROLES)
async def update_schedule(schedule_id):
    user = request.user
    try:
        data = StaffScheduleUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = {
        field: value for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field not in ("user_id", "schedule_date", "schedule_type", "availability_status")
    }

    session = SessionLocal()
    try:
        schedule = session.get(StaffSchedule, schedule_id)
        if not schedule:
            return jsonify({"error": "Schedule not found"}), 404
        if changes.get("user_id") and not session.get(User, changes["user_id"]):
            return jsonify({"error": "User not found"}), 404

        for field, value in changes.items():
            setattr(schedule, field, value)
        session.commit()

        payload = model_to_dict(schedule)
        broadcast_change(JOB_UPDATES, "schedule:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update staff schedule")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@staff_schedules_bp.route("/<int:schedule_id>", methods=["DELETE"])
@requires_auth(roles=MANAGE_ROLES)
async def delete_schedule(schedule_id):
    user = request.user
    session = SessionLocal()
    try:
        schedule = session.get(StaffSchedule, schedule_id)
        if not schedule:
            return jsonify({"error": "Schedule not found"}), 404
        session.delete(schedule)
        session.commit()
        broadcast_change(JOB_UPDATES, "schedule:deleted", {"id": schedule_id}, user=user)
        return jsonify({"message": "Schedule deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete staff schedule")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


# Vehicle logistics

@vehicle_logistics_bp.route("", methods=["GET"])
@vehicle_logistics_bp.route("/", methods=["GET"])
@requires_auth()
async def list_logistics():
    session = SessionLocal()
    try:
        query = session.query(VehicleLogistics)
        if request.args.get("status"):
            query = query.filter(VehicleLogistics.logistics_status == request.args["status"])
        if request.args.get("vehicle_id"):
            try:
                query = query.filter(VehicleLogistics.vehicle_id == int(request.args["vehicle_id"]))
            except ValueError:
                return jsonify({"error": "vehicle_id must be an integer"}), 400
        records = query.order_by(VehicleLogistics.created_at.desc()).all()
        return _no_store([model_to_dict(r) for r in records])
    finally:
        session.close()


@vehicle_logistics_bp.route("/<int:record_id>", methods=["GET"])
@requires_auth()
async def get_logistics(record_id):
    session = SessionLocal()
    try:
        record = session.get(VehicleLogistics, record_id)
        if not record:
            return jsonify({"error": "Logistics record not found"}), 404
        return _no_store(model_to_dict(record))
    finally:
        session.close()


@vehicle_logistics_bp.route("", methods=["POST"])
@vehicle_logistics_bp.route("/", methods=["POST"])
@requires_auth()
async def create_logistics():
    user = request.user
    try:
        data = VehicleLogisticsCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        if not session.get(Vehicle, data.vehicle_id):
            return jsonify({"error": "Vehicle not found"}), 404
        if data.assigned_to_id and not session.get(User, data.assigned_to_id):
            return jsonify({"error": "User not found"}), 404

        record = VehicleLogistics(**data.model_dump(exclude_none=True))
        session.add(record)
        session.commit()

        payload = model_to_dict(record)
        log_user_action("created", "vehicle_logistics", record.id, vehicle_id=record.vehicle_id)
        broadcast_change(VEHICLE_UPDATES, "logistics:created", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create logistics record")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicle_logistics_bp.route("/<int:record_id>", methods=["PUT"])
@requires_auth()
async def update_logistics(record_id):
    user = request.user
    try:
        data = VehicleLogisticsUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in ("vehicle_id", "logistics_status"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        record = session.get(VehicleLogistics, record_id)
        if not record:
            return jsonify({"error": "Logistics record not found"}), 404
        if changes.get("vehicle_id") and not session.get(Vehicle, changes["vehicle_id"]):
            return jsonify({"error": "Vehicle not found"}), 404

        for field, value in changes.items():
            setattr(record, field, value)
        session.commit()

        payload = model_to_dict(record)
        broadcast_change(VEHICLE_UPDATES, "logistics:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update logistics record")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicle_logistics_bp.route("/<int:record_id>", methods=["DELETE"])
@requires_auth(roles=MANAGE_ROLES)
async def delete_logistics(record_id):
    session = SessionLocal()
    try:
        record = session.get(VehicleLogistics, record_id)
        if not record:
            return jsonify({"error": "Logistics record not found"}), 404
        session.delete(record)
        session.commit()
        return jsonify({"message": "Logistics record deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete logistics record")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


# Job templates

@job_templates_bp.route("", methods=["GET"])
@job_templates_bp.route("/", methods=["GET"])
@requires_auth()
async def list_templates():
    session = SessionLocal()
    try:
        query = session.query(JobTemplate)
        if request.args.get("category"):
            query = query.filter(JobTemplate.template_category == request.args["category"])
        if request.args.get("include_inactive", "").lower() != "true":
            query = query.filter(JobTemplate.is_active == True)  # noqa: E712
        templates = query.order_by(JobTemplate.template_name.asc()).all()
        return _no_store([model_to_dict(t) for t in templates])
    finally:
        session.close()


@job_templates_bp.route("/<int:template_id>", methods=["GET"])
@requires_auth()
async def get_template(template_id):
    session = SessionLocal()
    try:
        template = session.get(JobTemplate, template_id)
        if not template:
            return jsonify({"error": "Job template not found"}), 404
        return _no_store(model_to_dict(template))
    finally:
        session.close()


@job_templates_bp.route("", methods=["POST"])
@job_templates_bp.route("/", methods=["POST"])
@requires_auth(roles=MANAGE_ROLES)
async def create_template():
    user = request.user
    try:
        data = JobTemplateCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        template = JobTemplate(created_by_id=user.id, **data.model_dump(exclude_none=True))
        session.add(template)
        session.commit()
        log_user_action("created", "job_template", template.id)
        return jsonify(model_to_dict(template)), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create job template")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@job_templates_bp.route("/<int:template_id>", methods=["PUT"])
@requires_auth(roles=MANAGE_ROLES)
async def update_template(template_id):
    try:
        data = JobTemplateUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in ("template_name", "template_category", "job_type"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        template = session.get(JobTemplate, template_id)
        if not template:
            return jsonify({"error": "Job template not found"}), 404
        for field, value in changes.items():
            setattr(template, field, value)
        session.commit()
        return jsonify(model_to_dict(template))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update job template")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@job_templates_bp.route("/<int:template_id>", methods=["DELETE"])
@requires_auth(roles=MANAGE_ROLES)
async def delete_template(template_id):
    session = SessionLocal()
    try:
        template = session.get(JobTemplate, template_id)
        if not template:
            return jsonify({"error": "Job template not found"}), 404
        session.delete(template)
        session.commit()
        return jsonify({"message": "Job template deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete job template")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
