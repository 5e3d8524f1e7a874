from datetime import datetime

from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import ActivityType, Appointment, Customer, CustomerPurchase, Interaction, Job, Lead, Vehicle
from dms.schemas.customers import (
    CustomerCreateSchema, CustomerUpdateSchema, CustomerPurchaseCreateSchema, CustomerPurchaseUpdateSchema,
)
from dms.services.activity import record_activity
from dms.services.realtime import CUSTOMER_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import iso, model_to_dict, page_args

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
customer_purchases_bp = Blueprint("customer_purchases", __name__, url_prefix="/api/customer-purchases")


def _purchase_dict(purchase):
    vehicle = purchase.vehicle
    return model_to_dict(purchase, extra={
        "vehicle": {
            "id": vehicle.id,
            "stock_number": vehicle.stock_number,
            "registration": vehicle.registration,
            "make": vehicle.make,
            "model": vehicle.model,
        } if vehicle else None,
    })


@customers_bp.route("", methods=["GET"])
@customers_bp.route("/", methods=["GET"])
@requires_auth()
async def list_customers():
    session = SessionLocal()
    try:
        page, per_page = page_args(request.args)
        sort_order = request.args.get("sort", "newest")
        if sort_order not in ["newest", "oldest", "alphabetical"]:
            sort_order = "newest"

        query = session.query(Customer)
        q = (request.args.get("q") or request.args.get("search") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                (Customer.first_name + " " + Customer.last_name).ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.phone.ilike(pattern),
                Customer.mobile.ilike(pattern),
                Customer.postcode.ilike(pattern),
            ))

        if sort_order == "newest":
            query = query.order_by(Customer.created_at.desc(), Customer.id.desc())
        elif sort_order == "oldest":
            query = query.order_by(Customer.created_at.asc(), Customer.id.asc())
        else:
            query = query.order_by(Customer.last_name.asc(), Customer.first_name.asc())

        total = query.count()
        customers = query.offset((page - 1) * per_page).limit(per_page).all()

        # Interaction and purchase statistics in two grouped queries
        customer_ids = [c.id for c in customers]
        interaction_stats, purchase_stats = {}, {}
        if customer_ids:
            for customer_id, count, last in session.query(
                Interaction.customer_id, func.count(Interaction.id), func.max(Interaction.created_at)
            ).filter(Interaction.customer_id.in_(customer_ids)).group_by(Interaction.customer_id):
                interaction_stats[customer_id] = (count, last)
            for customer_id, count, spend in session.query(
                CustomerPurchase.customer_id, func.count(CustomerPurchase.id),
                func.coalesce(func.sum(CustomerPurchase.purchase_price), 0),
            ).filter(CustomerPurchase.customer_id.in_(customer_ids)).group_by(CustomerPurchase.customer_id):
                purchase_stats[customer_id] = (count, spend)

        response = jsonify({
            "customers": [
                model_to_dict(c, extra={
                    "interaction_count": interaction_stats.get(c.id, (0, None))[0],
                    "last_interaction_date": iso(interaction_stats.get(c.id, (0, None))[1]),
                    "purchase_count": purchase_stats.get(c.id, (0, 0))[0],
                    "total_spend": float(purchase_stats.get(c.id, (0, 0))[1] or 0),
                })
                for c in customers
            ],
            "total": total,
            "page": page,
            "per_page": per_page,
            "sort_order": sort_order,
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@customers_bp.route("/stats", methods=["GET"])
@requires_auth()
async def customer_stats():
    session = SessionLocal()
    try:
        month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        total = session.query(func.count(Customer.id)).scalar()
        new_this_month = session.query(func.count(Customer.id)).filter(Customer.created_at >= month_start).scalar()
        with_purchases = session.query(func.count(func.distinct(CustomerPurchase.customer_id))).scalar()
        total_spend = session.query(func.coalesce(func.sum(CustomerPurchase.purchase_price), 0)).scalar()

        response = jsonify({
            "totalCustomers": total,
            "newThisMonth": new_this_month,
            "customersWithPurchases": with_purchases,
            "totalSpend": float(total_spend or 0),
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@customers_bp.route("/<int:customer_id>", methods=["GET"])
@requires_auth()
async def get_customer(customer_id):
    session = SessionLocal()
    try:
        customer = session.get(Customer, customer_id)
        if not customer:
            return jsonify({"error": "Customer not found"}), 404

        record_activity(session, request.user, ActivityType.viewed, "customer", customer.id,
                        f"Viewed customer '{customer.first_name} {customer.last_name}'")
        session.commit()

        response = jsonify(model_to_dict(customer, extra={
            "purchases": [_purchase_dict(p) for p in customer.purchases],
        }))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@customers_bp.route("", methods=["POST"])
@customers_bp.route("/", methods=["POST"])
@requires_auth()
async def create_customer():
    user = request.user
    try:
        data = CustomerCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = data.model_dump()
    if values.get("email"):
        values["email"] = str(values["email"]).lower()

    session = SessionLocal()
    try:
        customer = Customer(**values)
        session.add(customer)
        session.flush()
        record_activity(session, user, ActivityType.created, "customer", customer.id,
                        f"Created customer '{customer.first_name} {customer.last_name}'")
        session.commit()
        session.refresh(customer)

        payload = model_to_dict(customer)
        log_user_action("created", "customer", customer.id)
        broadcast_change(CUSTOMER_UPDATES, "customer:created", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create customer")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@customers_bp.route("/<int:customer_id>", methods=["PUT"])
@requires_auth()
async def update_customer(customer_id):
    user = request.user
    try:
        data = CustomerUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    if changes.get("email"):
        changes["email"] = str(changes["email"]).lower()

    session = SessionLocal()
    try:
        customer = session.get(Customer, customer_id)
        if not customer:
            return jsonify({"error": "Customer not found"}), 404

        for field, value in changes.items():
            setattr(customer, field, value)
        record_activity(session, user, ActivityType.edited, "customer", customer.id,
                        f"Updated {', '.join(sorted(changes)) or 'nothing'}")
        session.commit()
        session.refresh(customer)

        payload = model_to_dict(customer)
        broadcast_change(CUSTOMER_UPDATES, "customer:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update customer")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@customers_bp.route("/<int:customer_id>", methods=["DELETE"])
@requires_auth(roles=["admin", "manager"])
async def delete_customer(customer_id):
    user = request.user
    session = SessionLocal()
    try:
        customer = session.get(Customer, customer_id)
        if not customer:
            return jsonify({"error": "Customer not found"}), 404

        # Keep history rows but drop their link to this customer
        session.query(Lead).filter(Lead.converted_customer_id == customer_id).update(
            {Lead.converted_customer_id: None}, synchronize_session=False)
        for model in (Appointment, Interaction, Job):
            session.query(model).filter(model.customer_id == customer_id).update(
                {model.customer_id: None}, synchronize_session=False)

        session.delete(customer)
        record_activity(session, user, ActivityType.deleted, "customer", customer_id, "Deleted customer")
        session.commit()

        log_user_action("deleted", "customer", customer_id)
        broadcast_change(CUSTOMER_UPDATES, "customer:deleted", {"id": customer_id}, user=user)
        return jsonify({"message": "Customer deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete customer")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@customers_bp.route("/<int:customer_id>/purchases", methods=["GET"])
@requires_auth()
async def list_customer_purchases(customer_id):
    session = SessionLocal()
    try:
        if not session.get(Customer, customer_id):
            return jsonify({"error": "Customer not found"}), 404
        purchases = session.query(CustomerPurchase).filter(
            CustomerPurchase.customer_id == customer_id
        ).order_by(CustomerPurchase.purchase_date.desc()).all()
        return jsonify([_purchase_dict(p) for p in purchases])
    finally:
        session.close()


@customers_bp.route("/<int:customer_id>/purchases", methods=["POST"])
@requires_auth()
async def create_customer_purchase(customer_id):
    user = request.user
    try:
        data = CustomerPurchaseCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        if not session.get(Customer, customer_id):
            return jsonify({"error": "Customer not found"}), 404
        if not session.get(Vehicle, data.vehicle_id):
            return jsonify({"error": "Vehicle not found"}), 404

        values = data.model_dump()
        values["salesperson_id"] = values.get("salesperson_id") or user.id
        purchase = CustomerPurchase(customer_id=customer_id, **values)
        session.add(purchase)
        session.commit()
        session.refresh(purchase)

        payload = _purchase_dict(purchase)
        log_user_action("created", "customer_purchase", purchase.id, customer_id=customer_id)
        broadcast_change(CUSTOMER_UPDATES, "customer:purchase_added", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to record customer purchase")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@customer_purchases_bp.route("/<int:purchase_id>", methods=["PUT"])
@requires_auth()
async def update_customer_purchase(purchase_id):
    try:
        data = CustomerPurchaseUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        purchase = session.get(CustomerPurchase, purchase_id)
        if not purchase:
            return jsonify({"error": "Purchase not found"}), 404

        changes = data.model_dump(exclude_unset=True)
        if changes.get("vehicle_id") and not session.get(Vehicle, changes["vehicle_id"]):
            return jsonify({"error": "Vehicle not found"}), 404
        for field in ("purchase_date", "purchase_price", "vehicle_id"):
            if field in changes and changes[field] is None:
                return jsonify({"error": f"{field} cannot be cleared"}), 400

        for field, value in changes.items():
            setattr(purchase, field, value)
        session.commit()
        session.refresh(purchase)
        return jsonify(_purchase_dict(purchase))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update customer purchase")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@customer_purchases_bp.route("/<int:purchase_id>", methods=["DELETE"])
@requires_auth(roles=["admin", "manager"])
async def delete_customer_purchase(purchase_id):
    session = SessionLocal()
    try:
        purchase = session.get(CustomerPurchase, purchase_id)
        if not purchase:
            return jsonify({"error": "Purchase not found"}), 404
        session.delete(purchase)
        session.commit()
        log_user_action("deleted", "customer_purchase", purchase_id)
        return jsonify({"message": "Purchase deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete customer purchase")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
