from datetime import datetime

from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import case, func, or_
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import SQLAlchemyError

from dms.constants import PIPELINE_STAGES
from dms.database import SessionLocal
from dms.models import ActivityType, Appointment, Customer, Interaction, Job, Lead, User, Vehicle
from dms.schemas.customers import CustomerUpdateSchema
from dms.schemas.leads import LeadCreateSchema, LeadUpdateSchema, LeadStageSchema, LeadAssignVehicleSchema
from dms.services.activity import record_activity
from dms.services.notification_events import dispatch_event
from dms.services.realtime import LEAD_UPDATES, CUSTOMER_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict, page_args, user_summary

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")


def serialize_lead(lead):
    vehicle = lead.assigned_vehicle
    return model_to_dict(lead, extra={
        "full_name": f"{lead.first_name} {lead.last_name}",
        "assigned_salesperson": user_summary(lead.assigned_salesperson),
        "assigned_vehicle": {
            "id": vehicle.id,
            "stock_number": vehicle.stock_number,
            "registration": vehicle.registration,
            "make": vehicle.make,
            "model": vehicle.model,
        } if vehicle else None,
    })


def _lead_query(session):
    return session.query(Lead).options(
        joinedload(Lead.assigned_salesperson),
        joinedload(Lead.assigned_vehicle),
    )


@leads_bp.route("", methods=["GET"])
@leads_bp.route("/", methods=["GET"])
@requires_auth()
async def list_leads():
    session = SessionLocal()
    try:
        page, per_page = page_args(request.args)
        sort_order = request.args.get("sort", "newest")
        if sort_order not in ["newest", "oldest", "alphabetical", "follow_up"]:
            sort_order = "newest"

        query = _lead_query(session)
        args = request.args
        if args.get("stage"):
            query = query.filter(Lead.pipeline_stage == args["stage"])
        if args.get("source"):
            query = query.filter(Lead.lead_source == args["source"])
        if args.get("quality"):
            query = query.filter(Lead.lead_quality == args["quality"])
        if args.get("priority"):
            query = query.filter(Lead.priority == args["priority"])
        if args.get("salesperson_id"):
            try:
                query = query.filter(Lead.assigned_salesperson_id == int(args["salesperson_id"]))
            except ValueError:
                return jsonify({"error": "salesperson_id must be an integer"}), 400
        if args.get("include_converted", "true").lower() == "false":
            query = query.filter(Lead.converted_customer_id.is_(None))

        q = (args.get("q") or args.get("search") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                Lead.first_name.ilike(pattern),
                Lead.last_name.ilike(pattern),
                (Lead.first_name + " " + Lead.last_name).ilike(pattern),
                Lead.email.ilike(pattern),
                Lead.primary_phone.ilike(pattern),
                Lead.vehicle_interests.ilike(pattern),
            ))

        if sort_order == "newest":
            query = query.order_by(Lead.created_at.desc(), Lead.id.desc())
        elif sort_order == "oldest":
            query = query.order_by(Lead.created_at.asc(), Lead.id.asc())
        elif sort_order == "alphabetical":
            query = query.order_by(Lead.last_name.asc(), Lead.first_name.asc())
        else:
            query = query.order_by(Lead.next_follow_up_date.is_(None), Lead.next_follow_up_date.asc())

        total = query.count()
        leads = query.offset((page - 1) * per_page).limit(per_page).all()

        response = jsonify({
            "leads": [serialize_lead(l) for l in leads],
            "total": total,
            "page": page,
            "per_page": per_page,
            "sort_order": sort_order,
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@leads_bp.route("/stats", methods=["GET"])
@requires_auth()
async def lead_stats():
    session = SessionLocal()
    try:
        open_leads = Lead.converted_customer_id.is_(None)

        def count_open(*conditions):
            return session.query(func.count(Lead.id)).filter(open_leads, *conditions).scalar()

        total_open = count_open()
        all_leads = session.query(func.count(Lead.id)).scalar()
        converted = session.query(func.count(Lead.id)).filter(Lead.converted_customer_id.isnot(None)).scalar()

        by_stage = session.query(Lead.pipeline_stage, func.count(Lead.id)).filter(open_leads).group_by(
            Lead.pipeline_stage).all()
        by_source = session.query(Lead.lead_source, func.count(Lead.id)).filter(open_leads).group_by(
            Lead.lead_source).all()

        active_count = func.count(case((Lead.converted_customer_id.is_(None), 1)))
        conversion_count = func.count(case((Lead.converted_customer_id.isnot(None), 1)))
        performers = (
            session.query(Lead.assigned_salesperson_id, active_count, conversion_count)
            .filter(Lead.assigned_salesperson_id.isnot(None))
            .group_by(Lead.assigned_salesperson_id)
            .order_by(active_count.desc())
            .limit(5)
            .all()
        )
        names = {
            u.id: u.full_name
            for u in session.query(User).filter(User.id.in_([p[0] for p in performers]))
        } if performers else {}

        response = jsonify({
            "totalLeads": total_open,
            "newLeads": count_open(Lead.pipeline_stage == "new"),
            "qualifiedLeads": count_open(Lead.pipeline_stage == "qualified"),
            "hotLeads": count_open(Lead.lead_quality == "hot"),
            "conversionRate": round(converted / all_leads * 100, 2) if all_leads else 0,
            "leadsByStage": [{"stage": stage or "unknown", "count": count} for stage, count in by_stage],
            "leadsBySource": [{"source": source or "unknown", "count": count} for source, count in by_source],
            "topPerformers": [
                {
                    "salespersonId": salesperson_id,
                    "name": names.get(salesperson_id, f"User {salesperson_id}"),
                    "leadsAssigned": assigned,
                    "conversions": conversions,
                    "conversionRate": round(conversions / assigned * 100, 2) if assigned else 0,
                }
                for salesperson_id, assigned, conversions in performers
            ],
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@leads_bp.route("/by-stage", methods=["GET"])
@requires_auth()
async def leads_by_stage():
    """Leads grouped into pipeline columns, optionally a single ``stage``."""
    stage = request.args.get("stage")
    if stage and stage not in PIPELINE_STAGES:
        return jsonify({"error": f"stage must be one of: {', '.join(PIPELINE_STAGES)}"}), 400

    session = SessionLocal()
    try:
        query = _lead_query(session).order_by(Lead.created_at.desc())
        if stage:
            query = query.filter(Lead.pipeline_stage == stage)
        grouped = {s: [] for s in ([stage] if stage else PIPELINE_STAGES)}
        for lead in query.all():
            grouped.setdefault(lead.pipeline_stage, []).append(serialize_lead(lead))

        response = jsonify(grouped)
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>", methods=["GET"])
@requires_auth()
async def get_lead(lead_id):
    session = SessionLocal()
    try:
        lead = _lead_query(session).filter(Lead.id == lead_id).first()
        if not lead:
            return jsonify({"error": "Lead not found"}), 404

        record_activity(session, request.user, ActivityType.viewed, "lead", lead.id,
                        f"Viewed lead '{lead.first_name} {lead.last_name}'")
        session.commit()

        response = jsonify(serialize_lead(lead))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@leads_bp.route("", methods=["POST"])
@leads_bp.route("/", methods=["POST"])
@requires_auth()
async def create_lead():
    user = request.user
    try:
        data = LeadCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = data.model_dump()
    if values.get("email"):
        values["email"] = str(values["email"]).lower()

    session = SessionLocal()
    try:
        if values.get("assigned_vehicle_id") and not session.get(Vehicle, values["assigned_vehicle_id"]):
            return jsonify({"error": "Vehicle not found"}), 404

        lead = Lead(**values)
        session.add(lead)
        session.flush()
        record_activity(session, user, ActivityType.created, "lead", lead.id,
                        f"Created lead '{lead.first_name} {lead.last_name}'")
        session.commit()

        lead = _lead_query(session).filter(Lead.id == lead.id).one()
        payload = serialize_lead(lead)
        log_user_action("created", "lead", lead.id, source=lead.lead_source)

        dispatch_event(session, "lead.created", {
            "lead_name": f"{lead.first_name} {lead.last_name}",
            "lead_source": lead.lead_source,
        }, triggered_by=user, entity_id=lead.id)
        broadcast_change(LEAD_UPDATES, "lead:created", payload, user=user, refresh_dashboard=True)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create lead")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>", methods=["PUT"])
@requires_auth()
async def update_lead(lead_id):
    user = request.user
    try:
        data = LeadUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    if changes.get("email"):
        changes["email"] = str(changes["email"]).lower()

    session = SessionLocal()
    try:
        lead = session.get(Lead, lead_id)
        if not lead:
            return jsonify({"error": "Lead not found"}), 404

        for field, value in changes.items():
            setattr(lead, field, value)
        record_activity(session, user, ActivityType.edited, "lead", lead.id,
                        f"Updated {', '.join(sorted(changes)) or 'nothing'}")
        session.commit()

        lead = _lead_query(session).filter(Lead.id == lead_id).one()
        payload = serialize_lead(lead)
        broadcast_change(LEAD_UPDATES, "lead:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update lead")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>/stage", methods=["PATCH"])
@requires_auth()
async def update_lead_stage(lead_id):
    user = request.user
    try:
        data = LeadStageSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    if data.pipeline_stage == "converted":
        return jsonify({"error": "Use the convert endpoint to convert a lead"}), 400

    session = SessionLocal()
    try:
        lead = session.get(Lead, lead_id)
        if not lead:
            return jsonify({"error": "Lead not found"}), 404

        previous = lead.pipeline_stage
        lead.pipeline_stage = data.pipeline_stage
        if data.pipeline_stage == "lost":
            lead.lost_reason = data.lost_reason
        record_activity(session, user, ActivityType.edited, "lead", lead.id,
                        f"Stage {previous} -> {data.pipeline_stage}")
        session.commit()

        lead = _lead_query(session).filter(Lead.id == lead_id).one()
        payload = serialize_lead(lead)
        broadcast_change(LEAD_UPDATES, "lead:updated", payload, user=user, refresh_dashboard=True)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to change lead stage")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>/assign-vehicle", methods=["PATCH"])
@requires_auth()
async def assign_vehicle_to_lead(lead_id):
    user = request.user
    try:
        data = LeadAssignVehicleSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        lead = session.get(Lead, lead_id)
        if not lead:
            return jsonify({"error": "Lead not found"}), 404
        if data.assigned_vehicle_id and not session.get(Vehicle, data.assigned_vehicle_id):
            return jsonify({"error": "Vehicle not found"}), 404

        lead.assigned_vehicle_id = data.assigned_vehicle_id
        session.commit()

        lead = _lead_query(session).filter(Lead.id == lead_id).one()
        payload = serialize_lead(lead)
        broadcast_change(LEAD_UPDATES, "lead:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to assign vehicle to lead")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>/convert", methods=["POST"])
@requires_auth()
async def convert_lead(lead_id):
    """Create a customer from the lead and mark the lead converted."""
    user = request.user
    try:
        data = CustomerUpdateSchema.model_validate(await request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400
    overrides = data.model_dump(exclude_none=True)
    if overrides.get("email"):
        overrides["email"] = str(overrides["email"]).lower()

    session = SessionLocal()
    try:
        lead = session.get(Lead, lead_id)
        if not lead:
            return jsonify({"error": "Lead not found"}), 404
        if lead.converted_customer_id or lead.pipeline_stage == "converted":
            return jsonify({"error": "Lead already converted"}), 409

        customer = Customer(
            first_name=overrides.get("first_name") or lead.first_name,
            last_name=overrides.get("last_name") or lead.last_name,
            email=overrides.get("email") or lead.email,
            phone=overrides.get("phone") or lead.primary_phone,
            mobile=overrides.get("mobile") or lead.secondary_phone,
            address=overrides.get("address"),
            city=overrides.get("city"),
            county=overrides.get("county"),
            postcode=overrides.get("postcode"),
            notes=overrides.get("notes") or lead.notes,
        )
        session.add(customer)
        session.flush()

        lead.pipeline_stage = "converted"
        lead.converted_customer_id = customer.id
        record_activity(session, user, ActivityType.edited, "lead", lead.id,
                        f"Converted to customer #{customer.id}")
        record_activity(session, user, ActivityType.created, "customer", customer.id,
                        f"Created from lead #{lead.id}")
        session.commit()

        lead = _lead_query(session).filter(Lead.id == lead_id).one()
        payload = {"lead": serialize_lead(lead), "customer": model_to_dict(customer)}
        log_user_action("converted", "lead", lead.id, customer_id=customer.id)
        broadcast_change(LEAD_UPDATES, "lead:converted", payload, user=user, refresh_dashboard=True)
        broadcast_change(CUSTOMER_UPDATES, "customer:created", payload["customer"], user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to convert lead")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@leads_bp.route("/<int:lead_id>", methods=["DELETE"])
@requires_auth(roles=["admin", "manager"])
async def delete_lead(lead_id):
    user = request.user
    session = SessionLocal()
    try:
        lead = session.get(Lead, lead_id)
        if not lead:
            return jsonify({"error": "Lead not found"}), 404

        # Keep the history rows, just detach them from the lead
        for model in (Appointment, Interaction, Job):
            session.query(model).filter(model.lead_id == lead_id).update(
                {model.lead_id: None}, synchronize_session=False)

        session.delete(lead)
        record_activity(session, user, ActivityType.deleted, "lead", lead_id, "Deleted lead")
        session.commit()

        log_user_action("deleted", "lead", lead_id)
        broadcast_change(LEAD_UPDATES, "lead:deleted", {"id": lead_id}, user=user, refresh_dashboard=True)
        return jsonify({"message": "Lead deleted", "deleted_at": datetime.utcnow().isoformat() + "Z"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete lead")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
