from datetime import datetime

from quart import Blueprint, request, jsonify, Response
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dms.database import SessionLocal
from dms.models import (
    ActivityType, Appointment, CustomerPurchase, Interaction, Job, Lead, Vehicle, VehicleLogistics,
)
from dms.schemas.vehicles import VehicleCreateSchema, VehicleUpdateSchema, VehicleStatusSchema
from dms.services.activity import record_activity
from dms.services.financials import DERIVED_FIELDS, apply_financials, is_sold
from dms.services.notification_events import dispatch_event
from dms.services.realtime import VEHICLE_UPDATES, broadcast_change
from dms.services.vehicle_import import (
    CsvFormatError, export_vehicles_csv, import_vehicles, normalise_statuses, parse_csv_text,
)
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import logger, log_error, log_user_action
from dms.utils.serializers import model_to_dict, page_args

vehicles_bp = Blueprint("vehicles", __name__, url_prefix="/api/vehicles")

SORTABLE_COLUMNS = {
    "created_at", "updated_at", "stock_number", "registration", "make", "model", "year", "mileage",
    "purchase_invoice_date", "sale_date", "purchase_price_total", "total_sale_price", "total_gp",
}

EDIT_ROLES = ["admin", "manager", "office_staff"]


def _money_text(value):
    return f"{float(value):,.2f}" if value is not None else ""


def _apply_filters(query, args, sales_status=None):
    q = (args.get("q") or args.get("search") or "").strip()
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            Vehicle.stock_number.ilike(pattern),
            Vehicle.registration.ilike(pattern),
            Vehicle.make.ilike(pattern),
            Vehicle.model.ilike(pattern),
            Vehicle.customer_first_name.ilike(pattern),
            Vehicle.customer_surname.ilike(pattern),
        ))

    status = sales_status or args.get("sales_status") or args.get("status")
    if status:
        query = query.filter(func.lower(Vehicle.sales_status) == status.lower())
    if args.get("collection_status"):
        query = query.filter(func.lower(Vehicle.collection_status) == args["collection_status"].lower())
    if args.get("make"):
        query = query.filter(func.lower(Vehicle.make) == args["make"].lower())
    if args.get("department"):
        query = query.filter(func.upper(Vehicle.department) == args["department"].upper())
    return query


def _apply_sort(query, args):
    sort = args.get("sort", "created_at")
    if sort not in SORTABLE_COLUMNS:
        sort = "created_at"
    column = getattr(Vehicle, sort)
    if args.get("order", "desc").lower() == "asc":
        return query.order_by(column.asc(), Vehicle.id.asc())
    return query.order_by(column.desc(), Vehicle.id.desc())


def _list_vehicles(sales_status=None):
    session = SessionLocal()
    try:
        page, per_page = page_args(request.args, default_per_page=100, max_per_page=1000)
        query = _apply_filters(session.query(Vehicle), request.args, sales_status)
        total = query.count()
        vehicles = _apply_sort(query, request.args).offset((page - 1) * per_page).limit(per_page).all()

        response = jsonify({
            "vehicles": [model_to_dict(v) for v in vehicles],
            "total": total,
            "page": page,
            "per_page": per_page,
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@vehicles_bp.route("", methods=["GET"])
@vehicles_bp.route("/", methods=["GET"])
@requires_auth()
async def list_vehicles():
    return _list_vehicles()


@vehicles_bp.route("/stock", methods=["GET"])
@requires_auth()
async def list_stock_vehicles():
    return _list_vehicles("Stock")


@vehicles_bp.route("/sold", methods=["GET"])
@requires_auth()
async def list_sold_vehicles():
    return _list_vehicles("Sold")


@vehicles_bp.route("/autolab", methods=["GET"])
@requires_auth()
async def list_autolab_vehicles():
    return _list_vehicles("Autolab")


@vehicles_bp.route("/<int:vehicle_id>", methods=["GET"])
@requires_auth()
async def get_vehicle(vehicle_id):
    session = SessionLocal()
    try:
        vehicle = session.get(Vehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Vehicle not found"}), 404

        record_activity(session, request.user, ActivityType.viewed, "vehicle", vehicle.id,
                        f"Viewed vehicle '{vehicle.registration or vehicle.stock_number}'")
        session.commit()

        response = jsonify(model_to_dict(vehicle))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@vehicles_bp.route("", methods=["POST"])
@vehicles_bp.route("/", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def create_vehicle():
    user = request.user
    try:
        data = VehicleCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = normalise_statuses(data.model_dump())
    for field in DERIVED_FIELDS:
        values.pop(field, None)

    session = SessionLocal()
    try:
        vehicle = Vehicle(**values)
        apply_financials(vehicle)
        session.add(vehicle)
        session.flush()
        record_activity(session, user, ActivityType.created, "vehicle", vehicle.id,
                        f"Created vehicle '{vehicle.registration or vehicle.stock_number}'")
        session.commit()
        session.refresh(vehicle)

        payload = model_to_dict(vehicle)
        log_user_action("created", "vehicle", vehicle.id, stock_number=vehicle.stock_number)

        dispatch_event(session, "vehicle.added", {
            "registration": vehicle.registration or vehicle.stock_number,
            "make": vehicle.make,
            "model": vehicle.model,
        }, triggered_by=user, entity_id=vehicle.id)
        if is_sold(vehicle.sales_status):
            dispatch_event(session, "vehicle.sold", {
                "registration": vehicle.registration or vehicle.stock_number,
                "sale_price": _money_text(vehicle.total_sale_price),
            }, triggered_by=user, entity_id=vehicle.id)

        broadcast_change(VEHICLE_UPDATES, "vehicle:created", payload, user=user, refresh_dashboard=True)
        return jsonify(payload), 201
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "A vehicle with this stock number already exists"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicles_bp.route("/<int:vehicle_id>", methods=["PUT"])
@requires_auth(roles=EDIT_ROLES)
async def update_vehicle(vehicle_id):
    user = request.user
    try:
        data = VehicleUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = normalise_statuses(data.model_dump(exclude_unset=True))
    for field in DERIVED_FIELDS:
        changes.pop(field, None)

    session = SessionLocal()
    try:
        vehicle = session.get(Vehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Vehicle not found"}), 404

        was_sold = is_sold(vehicle.sales_status)
        changed_fields = [field for field, value in changes.items() if getattr(vehicle, field) != value]
        for field, value in changes.items():
            setattr(vehicle, field, value)
        apply_financials(vehicle)

        if changed_fields:
            record_activity(session, user, ActivityType.edited, "vehicle", vehicle.id,
                            f"Updated {', '.join(changed_fields)}")
        session.commit()
        session.refresh(vehicle)

        payload = model_to_dict(vehicle)
        if changed_fields:
            log_user_action("edited", "vehicle", vehicle.id, fields=changed_fields)
            dispatch_event(session, "vehicle.updated", {
                "registration": vehicle.registration or vehicle.stock_number,
                "field_name": ", ".join(changed_fields),
            }, triggered_by=user, entity_id=vehicle.id)
        if not was_sold and is_sold(vehicle.sales_status):
            dispatch_event(session, "vehicle.sold", {
                "registration": vehicle.registration or vehicle.stock_number,
                "sale_price": _money_text(vehicle.total_sale_price),
            }, triggered_by=user, entity_id=vehicle.id)

        broadcast_change(VEHICLE_UPDATES, "vehicle:updated", payload, user=user, refresh_dashboard=True)
        return jsonify(payload)
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "A vehicle with this stock number already exists"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicles_bp.route("/<int:vehicle_id>/status", methods=["PATCH"])
@requires_auth(roles=EDIT_ROLES)
async def update_vehicle_status(vehicle_id):
    user = request.user
    try:
        data = VehicleStatusSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = normalise_statuses(data.model_dump(exclude_unset=True))
    if not changes:
        return jsonify({"error": "No status supplied"}), 400

    session = SessionLocal()
    try:
        vehicle = session.get(Vehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Vehicle not found"}), 404

        was_sold = is_sold(vehicle.sales_status)
        for field, value in changes.items():
            setattr(vehicle, field, value)
        apply_financials(vehicle)
        record_activity(session, user, ActivityType.edited, "vehicle", vehicle.id,
                        f"Status changed to {vehicle.sales_status} / {vehicle.collection_status}")
        session.commit()
        session.refresh(vehicle)

        payload = model_to_dict(vehicle)
        if not was_sold and is_sold(vehicle.sales_status):
            dispatch_event(session, "vehicle.sold", {
                "registration": vehicle.registration or vehicle.stock_number,
                "sale_price": _money_text(vehicle.total_sale_price),
            }, triggered_by=user, entity_id=vehicle.id)

        broadcast_change(VEHICLE_UPDATES, "vehicle:status_changed", {
            "id": vehicle.id,
            "sales_status": vehicle.sales_status,
            "collection_status": vehicle.collection_status,
        }, user=user, refresh_dashboard=True)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to change vehicle status")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicles_bp.route("/<int:vehicle_id>", methods=["DELETE"])
@requires_auth(roles=["admin", "manager"])
async def delete_vehicle(vehicle_id):
    user = request.user
    session = SessionLocal()
    try:
        vehicle = session.get(Vehicle, vehicle_id)
        if not vehicle:
            return jsonify({"error": "Vehicle not found"}), 404

        has_history = (
            session.query(CustomerPurchase.id).filter(CustomerPurchase.vehicle_id == vehicle_id).first()
            or session.query(VehicleLogistics.id).filter(VehicleLogistics.vehicle_id == vehicle_id).first()
        )
        if has_history:
            return jsonify({"error": "Vehicle has purchase or logistics records"}), 409

        # Optional links are cleared rather than blocking the delete
        session.query(Lead).filter(Lead.assigned_vehicle_id == vehicle_id).update(
            {Lead.assigned_vehicle_id: None}, synchronize_session=False)
        for model in (Appointment, Interaction, Job):
            session.query(model).filter(model.vehicle_id == vehicle_id).update(
                {model.vehicle_id: None}, synchronize_session=False)

        label = vehicle.registration or vehicle.stock_number
        session.delete(vehicle)
        record_activity(session, user, ActivityType.deleted, "vehicle", vehicle_id, f"Deleted vehicle '{label}'")
        session.commit()

        log_user_action("deleted", "vehicle", vehicle_id)
        broadcast_change(VEHICLE_UPDATES, "vehicle:deleted", {"id": vehicle_id}, user=user, refresh_dashboard=True)
        return jsonify({"message": "Vehicle deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete vehicle")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


def _run_import(rows, source):
    user = request.user
    session = SessionLocal()
    try:
        result = import_vehicles(session, rows)
        session.commit()

        sold = [
            (v.id, v.registration or v.stock_number, _money_text(v.total_sale_price))
            for v in result["sold"]
        ]
        for vehicle_id, registration, sale_price in sold:
            dispatch_event(session, "vehicle.sold", {
                "registration": registration,
                "sale_price": sale_price,
            }, triggered_by=user, entity_id=vehicle_id)

        summary = {key: result[key] for key in ("imported", "updated", "failed", "errors")}
        log_user_action("imported", "vehicle", user_id=user.id, source=source,
                        imported=result["imported"], updated=result["updated"], failed=result["failed"])
        broadcast_change(VEHICLE_UPDATES, "vehicle:imported", {
            key: summary[key] for key in ("imported", "updated", "failed")
        }, user=user, refresh_dashboard=True)
        return jsonify(summary)
    except IntegrityError as e:
        session.rollback()
        log_error(e, "Vehicle import conflicted with existing data")
        return jsonify({"error": "Import conflicted with existing vehicles"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Vehicle import failed")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@vehicles_bp.route("/import", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def import_vehicle_rows():
    """Import already-parsed rows: ``{"vehicles": [...]}`` or a bare list."""
    body = await request.get_json()
    rows = body.get("vehicles") if isinstance(body, dict) else body
    if not isinstance(rows, list):
        return jsonify({"error": "Expected a list of vehicles"}), 400
    return _run_import(rows, "json")


@vehicles_bp.route("/import/csv", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def import_vehicle_csv():
    """Import stock book CSV sent as a multipart ``file`` or as the raw body."""
    files = await request.files
    upload = files.get("file")
    if upload is not None:
        text = upload.read().decode("utf-8-sig", errors="replace")
    else:
        text = await request.get_data(as_text=True)

    if not text or not text.strip():
        return jsonify({"error": "Empty CSV file"}), 400
    try:
        rows = parse_csv_text(text)
    except CsvFormatError as e:
        return jsonify({"error": str(e)}), 400

    logger.info(f"[Import] Parsed {len(rows)} CSV row(s)")
    return _run_import(rows, "csv")


@vehicles_bp.route("/export", methods=["GET"])
@requires_auth()
async def export_vehicles():
    session = SessionLocal()
    try:
        query = _apply_sort(_apply_filters(session.query(Vehicle), request.args), request.args)
        csv_text = export_vehicles_csv(query.all())
        filename = f"vehicles_{datetime.utcnow():%Y%m%d}.csv"
        log_user_action("exported", "vehicle", status=request.args.get("status"))
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    finally:
        session.close()
