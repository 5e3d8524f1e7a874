from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dms.database import SessionLocal
from dms.models import VehicleMake, VehicleModel
from dms.schemas.vehicles import VehicleMakeSchema, VehicleModelSchema
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error

vehicle_makes_bp = Blueprint("vehicle_makes", __name__, url_prefix="/api/vehicle-makes")


def _make_dict(make, include_models=False):
    data = {"id": make.id, "name": make.name}
    if include_models:
        data["models"] = [{"id": m.id, "name": m.name} for m in sorted(make.models, key=lambda m: m.name)]
    return data


@vehicle_makes_bp.route("", methods=["GET"])
@vehicle_makes_bp.route("/", methods=["GET"])
@requires_auth()
async def list_makes():
    include_models = request.args.get("include_models", "").lower() in {"1", "true", "yes"}
    session = SessionLocal()
    try:
        makes = session.query(VehicleMake).order_by(VehicleMake.name).all()
        return jsonify([_make_dict(m, include_models) for m in makes])
    finally:
        session.close()


@vehicle_makes_bp.route("", methods=["POST"])
@vehicle_makes_bp.route("/", methods=["POST"])
@requires_auth(roles=["admin", "manager", "office_staff"])
async def create_make():
    try:
        data = VehicleMakeSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        if session.query(VehicleMake.id).filter(func.lower(VehicleMake.name) == data.name.lower()).first():
            return jsonify({"error": "Make already exists"}), 409
        make = VehicleMake(name=data.name)
        session.add(make)
        session.commit()
        return jsonify(_make_dict(make)), 201
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "Make already exists"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create make")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicle_makes_bp.route("/<int:make_id>", methods=["DELETE"])
@requires_auth(roles=["admin"])
async def delete_make(make_id):
    session = SessionLocal()
    try:
        make = session.get(VehicleMake, make_id)
        if not make:
            return jsonify({"error": "Make not found"}), 404
        session.delete(make)
        session.commit()
        return jsonify({"message": "Make deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete make")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicle_makes_bp.route("/<int:make_id>/models", methods=["GET"])
@requires_auth()
async def list_models(make_id):
    session = SessionLocal()
    try:
        make = session.get(VehicleMake, make_id)
        if not make:
            return jsonify({"error": "Make not found"}), 404
        return jsonify(_make_dict(make, include_models=True)["models"])
    finally:
        session.close()


@vehicle_makes_bp.route("/<int:make_id>/models", methods=["POST"])
@requires_auth(roles=["admin", "manager", "office_staff"])
async def create_model(make_id):
    try:
        data = VehicleModelSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        make = session.get(VehicleMake, make_id)
        if not make:
            return jsonify({"error": "Make not found"}), 404
        duplicate = session.query(VehicleModel.id).filter(
            VehicleModel.make_id == make_id, func.lower(VehicleModel.name) == data.name.lower()
        ).first()
        if duplicate:
            return jsonify({"error": "Model already exists for this make"}), 409

        model = VehicleModel(make_id=make_id, name=data.name)
        session.add(model)
        session.commit()
        return jsonify({"id": model.id, "make_id": make_id, "name": model.name}), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create model")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicle_makes_bp.route("/models/<int:model_id>", methods=["DELETE"])
@requires_auth(roles=["admin"])
async def delete_model(model_id):
    session = SessionLocal()
    try:
        model = session.get(VehicleModel, model_id)
        if not model:
            return jsonify({"error": "Model not found"}), 404
        session.delete(model)
        session.commit()
        return jsonify({"message": "Model deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete model")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
