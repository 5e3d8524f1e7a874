from datetime import datetime

from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Customer, Interaction, Lead, User, Vehicle
from dms.schemas.interactions import InteractionCreateSchema, InteractionUpdateSchema
from dms.services.realtime import LEAD_UPDATES, CUSTOMER_UPDATES, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict, page_args, user_summary

interactions_bp = Blueprint("interactions", __name__, url_prefix="/api")


def serialize_interaction(interaction):
    return model_to_dict(interaction, extra={"user": user_summary(interaction.user)})


def _interaction_query(session):
    return session.query(Interaction).options(joinedload(Interaction.user))


def _listing(query):
    page, per_page = page_args(request.args)
    total = query.count()
    interactions = (
        query.order_by(Interaction.created_at.desc(), Interaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    response = jsonify({
        "interactions": [serialize_interaction(i) for i in interactions],
        "total": total,
        "page": page,
        "per_page": per_page,
    })
    response.headers["Cache-Control"] = "no-store"
    return response


def _room_for(interaction):
    return LEAD_UPDATES if interaction.lead_id else CUSTOMER_UPDATES


@interactions_bp.route("/interactions", methods=["GET"])
@interactions_bp.route("/interactions/", methods=["GET"])
@requires_auth()
async def list_interactions():
    session = SessionLocal()
    try:
        query = _interaction_query(session)
        args = request.args
        if args.get("type"):
            query = query.filter(Interaction.interaction_type == args["type"])
        if args.get("user_id"):
            try:
                query = query.filter(Interaction.user_id == int(args["user_id"]))
            except ValueError:
                return jsonify({"error": "user_id must be an integer"}), 400
        if args.get("follow_up_required", "").lower() == "true":
            query = query.filter(Interaction.follow_up_required == True)  # noqa: E712
        return _listing(query)
    finally:
        session.close()


@interactions_bp.route("/leads/<int:lead_id>/interactions", methods=["GET"])
@requires_auth()
async def list_lead_interactions(lead_id):
    session = SessionLocal()
    try:
        if not session.get(Lead, lead_id):
            return jsonify({"error": "Lead not found"}), 404
        return _listing(_interaction_query(session).filter(Interaction.lead_id == lead_id))
    finally:
        session.close()


@interactions_bp.route("/customers/<int:customer_id>/interactions", methods=["GET"])
@requires_auth()
async def list_customer_interactions(customer_id):
    session = SessionLocal()
    try:
        if not session.get(Customer, customer_id):
            return jsonify({"error": "Customer not found"}), 404
        return _listing(_interaction_query(session).filter(Interaction.customer_id == customer_id))
    finally:
        session.close()


@interactions_bp.route("/interactions/<int:interaction_id>", methods=["GET"])
@requires_auth()
async def get_interaction(interaction_id):
    session = SessionLocal()
    try:
        interaction = _interaction_query(session).filter(Interaction.id == interaction_id).first()
        if not interaction:
            return jsonify({"error": "Interaction not found"}), 404
        response = jsonify(serialize_interaction(interaction))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@interactions_bp.route("/interactions", methods=["POST"])
@interactions_bp.route("/interactions/", methods=["POST"])
@requires_auth()
async def create_interaction():
    user = request.user
    try:
        data = InteractionCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = data.model_dump()
    values["user_id"] = values.get("user_id") or user.id

    session = SessionLocal()
    try:
        lead = None
        if data.lead_id:
            lead = session.get(Lead, data.lead_id)
            if not lead:
                return jsonify({"error": "Lead not found"}), 404
        if data.customer_id and not session.get(Customer, data.customer_id):
            return jsonify({"error": "Customer not found"}), 404
        if data.vehicle_id and not session.get(Vehicle, data.vehicle_id):
            return jsonify({"error": "Vehicle not found"}), 404
        if values["user_id"] != user.id and not session.get(User, values["user_id"]):
            return jsonify({"error": "User not found"}), 404

        interaction = Interaction(**values)
        session.add(interaction)

        # Contact on a lead feeds its follow-up tracking
        if lead is not None:
            lead.last_contact_date = datetime.utcnow()
            lead.contact_attempts = (lead.contact_attempts or 0) + 1
            if data.follow_up_date:
                lead.next_follow_up_date = data.follow_up_date

        session.commit()

        interaction = _interaction_query(session).filter(Interaction.id == interaction.id).one()
        payload = serialize_interaction(interaction)
        log_user_action("created", "interaction", interaction.id,
                        lead_id=interaction.lead_id, customer_id=interaction.customer_id)
        broadcast_change(_room_for(interaction), "interaction:created", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create interaction")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@interactions_bp.route("/interactions/<int:interaction_id>", methods=["PUT"])
@requires_auth()
async def update_interaction(interaction_id):
    user = request.user
    try:
        data = InteractionUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        interaction = session.get(Interaction, interaction_id)
        if not interaction:
            return jsonify({"error": "Interaction not found"}), 404

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(interaction, field, value)

        if "follow_up_date" in changes and interaction.lead_id:
            lead = session.get(Lead, interaction.lead_id)
            if lead is not None:
                lead.next_follow_up_date = changes["follow_up_date"]

        session.commit()

        interaction = _interaction_query(session).filter(Interaction.id == interaction_id).one()
        payload = serialize_interaction(interaction)
        broadcast_change(_room_for(interaction), "interaction:updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update interaction")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@interactions_bp.route("/interactions/<int:interaction_id>", methods=["DELETE"])
@requires_auth()
async def delete_interaction(interaction_id):
    user = request.user
    session = SessionLocal()
    try:
        interaction = session.get(Interaction, interaction_id)
        if not interaction:
            return jsonify({"error": "Interaction not found"}), 404
        if interaction.user_id != user.id and user.role not in ("admin", "manager"):
            return jsonify({"error": "Only the author or a manager can delete this interaction"}), 403

        room = _room_for(interaction)
        session.delete(interaction)
        session.commit()

        log_user_action("deleted", "interaction", interaction_id)
        broadcast_change(room, "interaction:deleted", {"id": interaction_id}, user=user)
        return jsonify({"message": "Interaction deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete interaction")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
