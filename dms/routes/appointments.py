import calendar
from datetime import datetime, timedelta

from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Appointment, Customer, Lead, User, Vehicle
from dms.schemas.appointments import AppointmentCreateSchema, AppointmentUpdateSchema, AppointmentStatusSchema
from dms.services.notification_events import dispatch_event
from dms.services.realtime import APPOINTMENT_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict, user_summary

appointments_bp = Blueprint("appointments", __name__, url_prefix="/api/appointments")


def serialize_appointment(appointment):
    return model_to_dict(appointment, extra={"assigned_to": user_summary(appointment.assigned_to)})


def _appointment_query(session):
    return session.query(Appointment).options(joinedload(Appointment.assigned_to)).order_by(
        Appointment.appointment_date.asc(), Appointment.appointment_time.asc()
    )


def _between(session, start, end):
    """Appointments whose date falls in [start, end)."""
    appointments = _appointment_query(session).filter(
        Appointment.appointment_date >= start,
        Appointment.appointment_date < end,
    ).all()
    response = jsonify([serialize_appointment(a) for a in appointments])
    response.headers["Cache-Control"] = "no-store"
    return response


def _check_links(session, values):
    """Return an error response tuple when a linked record is missing."""
    checks = [
        ("customer_id", Customer, "Customer"),
        ("lead_id", Lead, "Lead"),
        ("vehicle_id", Vehicle, "Vehicle"),
        ("assigned_to_id", User, "User"),
    ]
    for field, model, label in checks:
        if values.get(field) and not session.get(model, values[field]):
            return jsonify({"error": f"{label} not found"}), 404
    return None


@appointments_bp.route("", methods=["GET"])
@appointments_bp.route("/", methods=["GET"])
@requires_auth()
async def list_appointments():
    session = SessionLocal()
    try:
        query = _appointment_query(session)
        args = request.args
        if args.get("status"):
            query = query.filter(Appointment.status == args["status"])
        if args.get("assigned_to_id"):
            try:
                query = query.filter(Appointment.assigned_to_id == int(args["assigned_to_id"]))
            except ValueError:
                return jsonify({"error": "assigned_to_id must be an integer"}), 400
        if args.get("upcoming", "").lower() == "true":
            today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            query = query.filter(Appointment.appointment_date >= today)

        response = jsonify([serialize_appointment(a) for a in query.all()])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@appointments_bp.route("/date/<day>", methods=["GET"])
@requires_auth()
async def appointments_by_date(day):
    try:
        start = datetime.strptime(day, "%Y-%m-%d")
    except ValueError:
        return jsonify({"error": "Date must be YYYY-MM-DD"}), 400

    session = SessionLocal()
    try:
        return _between(session, start, start + timedelta(days=1))
    finally:
        session.close()


@appointments_bp.route("/month/<int:year>/<int:month>", methods=["GET"])
@requires_auth()
async def appointments_by_month(year, month):
    if not 1 <= month <= 12 or not 1900 <= year <= 2100:
        return jsonify({"error": "Invalid year or month"}), 400

    start = datetime(year, month, 1)
    days = calendar.monthrange(year, month)[1]
    session = SessionLocal()
    try:
        return _between(session, start, start + timedelta(days=days))
    finally:
        session.close()


@appointments_bp.route("/<int:appointment_id>", methods=["GET"])
@requires_auth()
async def get_appointment(appointment_id):
    session = SessionLocal()
    try:
        appointment = _appointment_query(session).filter(Appointment.id == appointment_id).first()
        if not appointment:
            return jsonify({"error": "Appointment not found"}), 404
        response = jsonify(serialize_appointment(appointment))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@appointments_bp.route("", methods=["POST"])
@appointments_bp.route("/", methods=["POST"])
@requires_auth()
async def create_appointment():
    user = request.user
    try:
        data = AppointmentCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = data.model_dump()
    values["assigned_to_id"] = values.get("assigned_to_id") or user.id
    if values.get("customer_email"):
        values["customer_email"] = str(values["customer_email"])

    session = SessionLocal()
    try:
        missing = _check_links(session, values)
        if missing:
            return missing

        # Fill the contact snapshot from the linked lead when the caller left it blank
        if values.get("lead_id") and not values.get("customer_name"):
            lead = session.get(Lead, values["lead_id"])
            values["customer_name"] = f"{lead.first_name} {lead.last_name}"
            values["customer_phone"] = values.get("customer_phone") or lead.primary_phone
            values["customer_email"] = values.get("customer_email") or lead.email

        appointment = Appointment(**values)
        session.add(appointment)
        session.commit()

        appointment = _appointment_query(session).filter(Appointment.id == appointment.id).one()
        payload = serialize_appointment(appointment)
        log_user_action("created", "appointment", appointment.id, appointment_type=appointment.appointment_type)

        dispatch_event(session, "appointment.booked", {
            "appointment_date": appointment.appointment_date.strftime("%d/%m/%Y"),
            "appointment_time": appointment.appointment_time,
            "appointment_type": appointment.appointment_type,
            "customer_name": appointment.customer_name,
        }, triggered_by=user, entity_id=appointment.id)
        broadcast_change(APPOINTMENT_UPDATES, "appointment:created", payload, user=user, refresh_dashboard=True)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create appointment")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@appointments_bp.route("/<int:appointment_id>", methods=["PUT"])
@requires_auth()
async def update_appointment(appointment_id):
    user = request.user
    try:
        data = AppointmentUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    if changes.get("customer_email"):
        changes["customer_email"] = str(changes["customer_email"])
    # These columns are NOT NULL
    for field in ("appointment_date", "appointment_time", "appointment_type", "status",
                  "assigned_to_id", "duration_minutes"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        appointment = session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "Appointment not found"}), 404
        missing = _check_links(session, changes)
        if missing:
            return missing

        for field, value in changes.items():
            setattr(appointment, field, value)
        session.commit()

        appointment = _appointment_query(session).filter(Appointment.id == appointment_id).one()
        payload = serialize_appointment(appointment)
        broadcast_change(APPOINTMENT_UPDATES, "appointment:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update appointment")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@appointments_bp.route("/<int:appointment_id>/status", methods=["PATCH"])
@requires_auth()
async def update_appointment_status(appointment_id):
    user = request.user
    try:
        data = AppointmentStatusSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        appointment = session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "Appointment not found"}), 404

        appointment.status = data.status
        session.commit()

        appointment = _appointment_query(session).filter(Appointment.id == appointment_id).one()
        payload = serialize_appointment(appointment)
        broadcast_change(APPOINTMENT_UPDATES, "appointment:updated", payload, user=user, refresh_dashboard=True)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to change appointment status")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@appointments_bp.route("/<int:appointment_id>", methods=["DELETE"])
@requires_auth()
async def delete_appointment(appointment_id):
    user = request.user
    session = SessionLocal()
    try:
        appointment = session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "Appointment not found"}), 404

        session.delete(appointment)
        session.commit()

        log_user_action("deleted", "appointment", appointment_id)
        broadcast_change(APPOINTMENT_UPDATES, "appointment:deleted", {"id": appointment_id}, user=user,
                         refresh_dashboard=True)
        return jsonify({"message": "Appointment deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete appointment")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
