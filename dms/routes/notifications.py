from datetime import datetime, timezone

from dateutil import parser as date_parser
from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Notification, NotificationPreference, NotificationStatus
from dms.schemas.notifications import DeliveredSchema, NotificationPreferencesSchema, NotificationTestSchema
from dms.services.notification_events import (
    NOTIFICATION_REGISTRY, default_preferences_for_role, trigger_event,
)
from dms.services.realtime import broadcast_change, user_room
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error
from dms.utils.serializers import iso, model_to_dict

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

UNREAD_STATUSES = [NotificationStatus.pending, NotificationStatus.delivered]
PREFERENCE_FIELDS = list(NotificationPreferencesSchema.model_fields)
SYNC_BATCH_SIZE = 500


def _own(session, user):
    return session.query(Notification).filter(Notification.recipient_user_id == user.id)


def _no_store(payload):
    response = jsonify(payload)
    response.headers["Cache-Control"] = "no-store"
    return response


def _preferences_dict(preference, role):
    if preference is None:
        values = {field: None for field in PREFERENCE_FIELDS}
        values.update(default_preferences_for_role(role))
        return values
    return {field: getattr(preference, field) for field in PREFERENCE_FIELDS}


def _set_status(notification_id, status, event):
    """Move one of the caller's notifications to ``status`` and tell their other tabs."""
    user = request.user
    session = SessionLocal()
    try:
        notification = _own(session, user).filter(Notification.id == notification_id).first()
        if not notification:
            return jsonify({"error": "Notification not found"}), 404

        now = datetime.utcnow()
        notification.status = status
        if status == NotificationStatus.read and notification.read_at is None:
            notification.read_at = now
        if status == NotificationStatus.dismissed:
            notification.dismissed_at = now
        session.commit()

        payload = model_to_dict(notification)
        broadcast_change(user_room(user.id), event, payload)
        return jsonify(payload)
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, f"Failed to mark notification {status.value}")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("", methods=["GET"])
@notifications_bp.route("/", methods=["GET"])
@requires_auth()
async def list_notifications():
    user = request.user
    status = request.args.get("status")
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
    except ValueError:
        limit = 50

    session = SessionLocal()
    try:
        query = _own(session, user)
        if status == "unread":
            query = query.filter(Notification.status.in_(UNREAD_STATUSES))
        elif status:
            try:
                query = query.filter(Notification.status == NotificationStatus(status))
            except ValueError:
                return jsonify({"error": "Unknown status"}), 400
        else:
            query = query.filter(Notification.status != NotificationStatus.dismissed)

        notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
        return _no_store([model_to_dict(n) for n in notifications])
    finally:
        session.close()


@notifications_bp.route("/stats", methods=["GET"])
@requires_auth()
async def notification_stats():
    user = request.user
    session = SessionLocal()
    try:
        by_status = dict(
            session.query(Notification.status, func.count(Notification.id))
            .filter(Notification.recipient_user_id == user.id)
            .group_by(Notification.status).all()
        )
        by_priority = (
            session.query(Notification.priority_level, func.count(Notification.id))
            .filter(Notification.recipient_user_id == user.id)
            .group_by(Notification.priority_level).all()
        )
        by_type = (
            session.query(Notification.notification_type, func.count(Notification.id))
            .filter(Notification.recipient_user_id == user.id)
            .group_by(Notification.notification_type).all()
        )
        return _no_store({
            "total_notifications": sum(by_status.values()),
            "unread_notifications": sum(by_status.get(s, 0) for s in UNREAD_STATUSES),
            "read_notifications": by_status.get(NotificationStatus.read, 0),
            "dismissed_notifications": by_status.get(NotificationStatus.dismissed, 0),
            "by_priority": [{"priority": p, "count": n} for p, n in by_priority],
            "by_type": [{"type": t, "count": n} for t, n in by_type],
        })
    finally:
        session.close()


@notifications_bp.route("/pending", methods=["GET"])
@requires_auth()
async def pending_notifications():
    """Notifications never delivered to a live connection, oldest first."""
    user = request.user
    session = SessionLocal()
    try:
        notifications = _own(session, user).filter(
            Notification.status == NotificationStatus.pending
        ).order_by(Notification.created_at.asc(), Notification.id.asc()).all()
        return _no_store([model_to_dict(n) for n in notifications])
    finally:
        session.close()


@notifications_bp.route("/delivered", methods=["POST"])
@requires_auth()
async def mark_delivered():
    user = request.user
    try:
        data = DeliveredSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400
    if not data.notification_ids:
        return jsonify({"updated": 0})

    session = SessionLocal()
    try:
        updated = _own(session, user).filter(
            Notification.id.in_(data.notification_ids),
            Notification.status == NotificationStatus.pending,
        ).update(
            {Notification.status: NotificationStatus.delivered, Notification.delivered_at: datetime.utcnow()},
            synchronize_session=False,
        )
        session.commit()
        return jsonify({"updated": updated})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to mark notifications delivered")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/sync", methods=["GET"])
@requires_auth()
async def sync_notifications():
    """
    Catch-up feed for a reconnecting client: everything created or changed
    after ``since``, oldest change first. Pending rows in the reply are
    marked delivered without moving their ``updated_at``, so ``synced_at``
    (the newest ``updated_at`` returned) is the cursor for the next call.
    ``has_more`` is set when the batch was cut at ``SYNC_BATCH_SIZE``.
    """
    user = request.user
    since_raw = request.args.get("since")
    since = None
    if since_raw:
        try:
            since = date_parser.isoparse(since_raw)
        except ValueError:
            return jsonify({"error": "since must be an ISO-8601 timestamp"}), 400
        if since.tzinfo is not None:
            since = since.astimezone(timezone.utc).replace(tzinfo=None)

    session = SessionLocal()
    try:
        query = _own(session, user)
        if since is not None:
            query = query.filter(Notification.updated_at > since)
        else:
            query = query.filter(Notification.status.in_(UNREAD_STATUSES))
        notifications = (
            query.order_by(Notification.updated_at.asc(), Notification.id.asc())
            .limit(SYNC_BATCH_SIZE + 1)
            .all()
        )
        has_more = len(notifications) > SYNC_BATCH_SIZE
        notifications = notifications[:SYNC_BATCH_SIZE]

        now = datetime.utcnow()
        payload = []
        pending_ids = []
        for notification in notifications:
            item = model_to_dict(notification)
            if notification.status == NotificationStatus.pending:
                pending_ids.append(notification.id)
                item["status"] = NotificationStatus.delivered.value
                item["delivered_at"] = iso(now)
            payload.append(item)

        if notifications:
            cursor = max(n.updated_at for n in notifications)
        else:
            cursor = since or now

        if pending_ids:
            session.query(Notification).filter(Notification.id.in_(pending_ids)).update({
                Notification.status: NotificationStatus.delivered,
                Notification.delivered_at: now,
                Notification.updated_at: Notification.updated_at,
            }, synchronize_session=False)
            session.commit()

        return _no_store({"notifications": payload, "synced_at": iso(cursor), "has_more": has_more})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to sync notifications")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/<int:notification_id>/read", methods=["PUT", "PATCH", "POST"])
@requires_auth()
async def mark_read(notification_id):
    return _set_status(notification_id, NotificationStatus.read, "notification:read")


@notifications_bp.route("/<int:notification_id>/dismiss", methods=["PUT", "PATCH", "POST"])
@requires_auth()
async def dismiss(notification_id):
    return _set_status(notification_id, NotificationStatus.dismissed, "notification:dismissed")


@notifications_bp.route("/read-all", methods=["PUT", "PATCH", "POST"])
@requires_auth()
async def mark_all_read():
    user = request.user
    session = SessionLocal()
    try:
        now = datetime.utcnow()
        updated = _own(session, user).filter(Notification.status.in_(UNREAD_STATUSES)).update(
            {Notification.status: NotificationStatus.read, Notification.read_at: now},
            synchronize_session=False,
        )
        session.commit()
        broadcast_change(user_room(user.id), "notification:all_read", {"updated": updated})
        return jsonify({"updated": updated})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to mark all notifications read")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/<int:notification_id>", methods=["DELETE"])
@requires_auth()
async def delete_notification(notification_id):
    user = request.user
    session = SessionLocal()
    try:
        notification = _own(session, user).filter(Notification.id == notification_id).first()
        if not notification:
            return jsonify({"error": "Notification not found"}), 404
        session.delete(notification)
        session.commit()
        broadcast_change(user_room(user.id), "notification:deleted", {"id": notification_id})
        return jsonify({"message": "Notification deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete notification")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/preferences", methods=["GET"])
@requires_auth()
async def get_preferences():
    user = request.user
    session = SessionLocal()
    try:
        preference = session.query(NotificationPreference).filter(
            NotificationPreference.user_id == user.id).first()
        return _no_store(_preferences_dict(preference, user.role))
    finally:
        session.close()


@notifications_bp.route("/preferences", methods=["PUT"])
@requires_auth()
async def update_preferences():
    user = request.user
    try:
        data = NotificationPreferencesSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = {field: value for field, value in data.model_dump(exclude_unset=True).items() if value is not None}

    session = SessionLocal()
    try:
        preference = session.query(NotificationPreference).filter(
            NotificationPreference.user_id == user.id).first()
        if preference is None:
            preference = NotificationPreference(user_id=user.id, **default_preferences_for_role(user.role))
            session.add(preference)

        for field, value in changes.items():
            setattr(preference, field, value)
        session.commit()
        return jsonify(_preferences_dict(preference, user.role))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update notification preferences")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/test", methods=["POST"])
@requires_auth(roles=["admin"])
async def test_notification():
    """Fire a registered event with sample data. The caller is not excluded."""
    try:
        data = NotificationTestSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400
    if data.event_type not in NOTIFICATION_REGISTRY:
        return jsonify({"error": f"Unknown event type: {data.event_type}"}), 400

    values = {"username": request.user.username, **data.data}
    session = SessionLocal()
    try:
        created = trigger_event(session, data.event_type, values, triggered_by=None, entity_id=data.entity_id)
        return jsonify({
            "event_type": data.event_type,
            "notifications_created": len(created),
            "recipients": [n.recipient_user_id for n in created],
        })
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to send test notification")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@notifications_bp.route("/registry", methods=["GET"])
@requires_auth(roles=["admin"])
async def notification_registry():
    return _no_store({event: dict(config) for event, config in NOTIFICATION_REGISTRY.items()})
