from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from dms.constants import BOUGHT_VEHICLE_STATUS_OPTIONS
from dms.database import SessionLocal
from dms.models import BoughtVehicle
from dms.schemas.bought_vehicles import BoughtVehicleCreateSchema, BoughtVehicleUpdateSchema
from dms.services.notification_events import dispatch_event
from dms.services.realtime import VEHICLE_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict

bought_vehicles_bp = Blueprint("bought_vehicles", __name__, url_prefix="/api/bought-vehicles")

EDIT_ROLES = ["admin", "manager", "office_staff"]


@bought_vehicles_bp.route("", methods=["GET"])
@bought_vehicles_bp.route("/", methods=["GET"])
@requires_auth()
async def list_bought_vehicles():
    session = SessionLocal()
    try:
        query = session.query(BoughtVehicle)
        status = (request.args.get("status") or "").upper()
        if status:
            query = query.filter(BoughtVehicle.status == status)
        q = (request.args.get("q") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                BoughtVehicle.stock_number.ilike(pattern),
                BoughtVehicle.registration.ilike(pattern),
                BoughtVehicle.make.ilike(pattern),
                BoughtVehicle.model.ilike(pattern),
            ))

        vehicles = query.order_by(BoughtVehicle.created_at.desc(), BoughtVehicle.id.desc()).all()
        response = jsonify([model_to_dict(v) for v in vehicles])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@bought_vehicles_bp.route("/stats", methods=["GET"])
@requires_auth()
async def bought_vehicle_stats():
    session = SessionLocal()
    try:
        counts = dict(session.query(BoughtVehicle.status, func.count(BoughtVehicle.id)).group_by(
            BoughtVehicle.status).all())
        retail_1, retail_2 = session.query(
            func.coalesce(func.sum(BoughtVehicle.retail_price_1), 0),
            func.coalesce(func.sum(BoughtVehicle.retail_price_2), 0),
        ).filter(BoughtVehicle.status != "PROCESSED").one()

        response = jsonify({
            "total": sum(counts.values()),
            "byStatus": {status: counts.get(status, 0) for status in BOUGHT_VEHICLE_STATUS_OPTIONS},
            "awaiting": counts.get("AWAITING", 0),
            "arrived": counts.get("ARRIVED", 0),
            "processed": counts.get("PROCESSED", 0),
            "totalRetailPrice1": float(retail_1 or 0),
            "totalRetailPrice2": float(retail_2 or 0),
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@bought_vehicles_bp.route("/<int:vehicle_id>", methods=["GET"])
@requires_auth()
async def get_bought_vehicle(vehicle_id):
    session = SessionLocal()
    try:
        vehicle = session.get(BoughtVehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Bought vehicle not found"}), 404
        response = jsonify(model_to_dict(vehicle))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@bought_vehicles_bp.route("", methods=["POST"])
@bought_vehicles_bp.route("/", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def create_bought_vehicle():
    user = request.user
    try:
        data = BoughtVehicleCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        values = data.model_dump()
        values["status"] = values.get("status") or "AWAITING"
        vehicle = BoughtVehicle(**values)
        session.add(vehicle)
        session.commit()

        payload = model_to_dict(vehicle)
        log_user_action("created", "bought_vehicle", vehicle.id, stock_number=vehicle.stock_number)

        dispatch_event(session, "vehicle.bought", {
            "stock_number": vehicle.stock_number,
            "registration": vehicle.registration,
            "make": vehicle.make,
            "model": vehicle.model,
        }, triggered_by=user, entity_id=vehicle.id)
        broadcast_change(VEHICLE_UPDATES, "bought_vehicle:created", payload, user=user, refresh_dashboard=True)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create bought vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@bought_vehicles_bp.route("/<int:vehicle_id>", methods=["PUT"])
@requires_auth(roles=EDIT_ROLES)
async def update_bought_vehicle(vehicle_id):
    user = request.user
    try:
        data = BoughtVehicleUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in ("stock_number", "make", "model", "status"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        vehicle = session.get(BoughtVehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Bought vehicle not found"}), 404

        for field, value in changes.items():
            setattr(vehicle, field, value)
        session.commit()

        payload = model_to_dict(vehicle)
        broadcast_change(VEHICLE_UPDATES, "bought_vehicle:updated", payload, user=user,
                         refresh_dashboard="status" in changes)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update bought vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@bought_vehicles_bp.route("/<int:vehicle_id>", methods=["DELETE"])
@requires_auth(roles=EDIT_ROLES)
async def delete_bought_vehicle(vehicle_id):
    user = request.user
    session = SessionLocal()
    try:
        vehicle = session.get(BoughtVehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Bought vehicle not found"}), 404
        session.delete(vehicle)
        session.commit()

        log_user_action("deleted", "bought_vehicle", vehicle_id)
        broadcast_change(VEHICLE_UPDATES, "bought_vehicle:deleted", {"id": vehicle_id}, user=user,
                         refresh_dashboard=True)
        return jsonify({"message": "Bought vehicle deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete bought vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
