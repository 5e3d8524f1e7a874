from datetime import datetime

from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import case, or_
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import PinnedMessage, User
from dms.schemas.pins import PinnedMessageCreateSchema, PinnedMessageUpdateSchema
from dms.services.realtime import ALL_USERS, broadcast_change
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error
from dms.utils.serializers import model_to_dict, user_summary

pins_bp = Blueprint("pins", __name__, url_prefix="/api/pinned-messages")

PRIORITY_ORDER = case(
    (PinnedMessage.priority == "urgent", 0),
    (PinnedMessage.priority == "high", 1),
    (PinnedMessage.priority == "normal", 2),
    else_=3,
)


def serialize_pin(message):
    return model_to_dict(message, extra={"author": user_summary(message.author)})


def is_visible_to(message, user, now=None):
    """Pinned, unexpired, and public, targeted at the user, or written by them. Admins see every target list."""
    now = now or datetime.utcnow()
    if not message.is_pinned:
        return False
    if message.expires_at is not None and message.expires_at <= now:
        return False
    if message.is_public or message.author_id == user.id or user.role == "admin":
        return True
    return user.id in (message.target_user_ids or [])


def _pin_query(session):
    return session.query(PinnedMessage).options(joinedload(PinnedMessage.author)).order_by(
        PRIORITY_ORDER, PinnedMessage.created_at.desc())


def _active(query, now):
    return query.filter(
        PinnedMessage.is_pinned == True,  # noqa: E712
        or_(PinnedMessage.expires_at.is_(None), PinnedMessage.expires_at > now),
    )


def _can_manage(message, user):
    return message.author_id == user.id or user.role == "admin"


def _check_targets(session, target_ids):
    if not target_ids:
        return None
    found = {uid for (uid,) in session.query(User.id).filter(User.id.in_(target_ids))}
    unknown = sorted(set(target_ids) - found)
    if unknown:
        return jsonify({"error": f"Unknown target users: {', '.join(map(str, unknown))}"}), 400
    return None


@pins_bp.route("", methods=["GET"])
@pins_bp.route("/", methods=["GET"])
@requires_auth()
async def list_visible_pins():
    user = request.user
    now = datetime.utcnow()
    session = SessionLocal()
    try:
        # Target lists live in a JSON column, so visibility is finished in Python
        messages = [m for m in _active(_pin_query(session), now).all() if is_visible_to(m, user, now)]

        response = jsonify([serialize_pin(m) for m in messages])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@pins_bp.route("/all", methods=["GET"])
@requires_auth(roles=["admin"])
async def list_all_pins():
    session = SessionLocal()
    try:
        messages = _active(_pin_query(session), datetime.utcnow()).all()
        response = jsonify([serialize_pin(m) for m in messages])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@pins_bp.route("", methods=["POST"])
@pins_bp.route("/", methods=["POST"])
@requires_auth()
async def create_pin():
    user = request.user
    try:
        data = PinnedMessageCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        invalid = _check_targets(session, data.target_user_ids)
        if invalid:
            return invalid

        message = PinnedMessage(author_id=user.id, **data.model_dump())
        session.add(message)
        session.commit()

        message = _pin_query(session).filter(PinnedMessage.id == message.id).one()
        payload = serialize_pin(message)
        broadcast_change(ALL_USERS, "pinned_message_created", payload, user=user)
        return jsonify(payload), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create pinned message")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@pins_bp.route("/<int:message_id>", methods=["PUT"])
@requires_auth()
async def update_pin(message_id):
    user = request.user
    try:
        data = PinnedMessageUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in ("title", "content", "is_public", "priority", "is_pinned"):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        message = session.get(PinnedMessage, message_id)
        if not message:
            return jsonify({"error": "Pinned message not found"}), 404
        if not _can_manage(message, user):
            return jsonify({"error": "Only the author or an admin can edit this message"}), 403
        invalid = _check_targets(session, changes.get("target_user_ids"))
        if invalid:
            return invalid

        for field, value in changes.items():
            setattr(message, field, value)
        session.commit()

        message = _pin_query(session).filter(PinnedMessage.id == message_id).one()
        payload = serialize_pin(message)
        broadcast_change(ALL_USERS, "pinned_message_updated", payload, user=user)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update pinned message")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@pins_bp.route("/<int:message_id>", methods=["DELETE"])
@requires_auth()
async def delete_pin(message_id):
    user = request.user
    session = SessionLocal()
    try:
        message = session.get(PinnedMessage, message_id)
        if not message:
            return jsonify({"error": "Pinned message not found"}), 404
        if not _can_manage(message, user):
            return jsonify({"error": "Only the author or an admin can delete this message"}), 403

        session.delete(message)
        session.commit()
        broadcast_change(ALL_USERS, "pinned_message_deleted", {"id": message_id}, user=user)
        return jsonify({"message": "Pinned message deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete pinned message")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
