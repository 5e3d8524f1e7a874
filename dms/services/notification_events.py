"""
Business event notifications.

Each registered event names the roles that hear about it, the preference
flags that can silence it, and the title/body templates. ``trigger_event``
resolves recipients, stores a Notification per recipient and pushes it to
any live websocket connections.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from dms.models import Notification, NotificationPreference, NotificationStatus, User, UserPermission
from dms.services.realtime import hub
from dms.utils.logging_utils import logger, log_error
from dms.utils.serializers import model_to_dict

NOTIFICATION_REGISTRY: Dict[str, Dict[str, Any]] = {
    "vehicle.updated": {
        "category": "inventory",
        "priority": "medium",
        "title_template": "Vehicle Updated",
        "body_template": "User {username} updated '{registration}' - {field_name} changed",
        "action_url": "/vehicle-master",
        "entity_type": "vehicle",
        "roles": ["admin"],
        "preference_key": "inventory_notifications",
    },
    "vehicle.added": {
        "category": "inventory",
        "priority": "medium",
        "title_template": "New Vehicle Added",
        "body_template": "User {username} added '{registration}' to Vehicle Master",
        "action_url": "/vehicle-master",
        "entity_type": "vehicle",
        "roles": ["admin", "manager"],
        "preference_key": "inventory_notifications",
    },
    "vehicle.sold": {
        "category": "sales",
        "priority": "high",
        "title_template": "Vehicle Sold",
        "body_template": "User {username} marked '{registration}' as sold - £{sale_price}",
        "action_url": "/vehicle-master",
        "entity_type": "vehicle",
        "roles": ["admin", "manager", "salesperson"],
        "preference_key": "sales_notifications",
    },
    "vehicle.bought": {
        "category": "inventory",
        "priority": "medium",
        "title_template": "Vehicle Bought",
        "body_template": "User {username} added a vehicle to Bought Vehicles",
        "action_url": "/bought-vehicles",
        "entity_type": "bought_vehicle",
        "roles": ["admin", "manager"],
        "preference_key": "inventory_notifications",
    },
    "lead.created": {
        "category": "customer",
        "priority": "high",
        "title_template": "New Lead Created",
        "body_template": "User {username} added a new lead: {lead_name}",
        "action_url": "/leads",
        "entity_type": "lead",
        "roles": ["admin", "manager", "salesperson"],
        "preference_key": "customer_notifications",
    },
    "appointment.booked": {
        "category": "customer",
        "priority": "medium",
        "title_template": "Appointment Booked",
        "body_template": "User {username} booked an appointment on {appointment_date}",
        "action_url": "/appointments",
        "entity_type": "appointment",
        "roles": ["admin", "manager", "salesperson"],
        "preference_key": "customer_notifications",
    },
    "job.booked": {
        "category": "staff",
        "priority": "medium",
        "title_template": "Job Booked",
        "body_template": "User {username} booked a new job: {job_type}",
        "action_url": "/calendar",
        "entity_type": "job",
        "roles": ["admin", "manager"],
        "preference_key": "staff_notifications",
    },
}

DEFAULT_NOTIFICATION_PREFERENCES = {
    "admin": {
        "vehicle_updated_enabled": True,
        "vehicle_added_enabled": True,
        "vehicle_sold_enabled": True,
        "vehicle_bought_enabled": True,
        "lead_created_enabled": True,
        "appointment_booked_enabled": True,
        "job_booked_enabled": True,
    },
    "manager": {
        "vehicle_updated_enabled": False,
        "vehicle_added_enabled": True,
        "vehicle_sold_enabled": True,
        "vehicle_bought_enabled": True,
        "lead_created_enabled": True,
        "appointment_booked_enabled": True,
        "job_booked_enabled": True,
    },
    "salesperson": {
        "vehicle_updated_enabled": False,
        "vehicle_added_enabled": False,
        "vehicle_sold_enabled": True,
        "vehicle_bought_enabled": False,
        "lead_created_enabled": True,
        "appointment_booked_enabled": True,
        "job_booked_enabled": False,
    },
}

# Column defaults for users without a stored preference row
BASE_PREFERENCES = {
    "notifications_enabled": True,
    "in_app_notifications_enabled": True,
    "sales_notifications": True,
    "inventory_notifications": True,
    "customer_notifications": True,
    "financial_notifications": True,
    "system_notifications": True,
    "staff_notifications": True,
    "urgent_notifications": True,
    "high_notifications": True,
    "medium_notifications": True,
    "low_notifications": False,
}


def event_preference_key(event_type: str) -> str:
    return event_type.replace(".", "_") + "_enabled"


def default_preferences_for_role(role: str) -> Dict[str, bool]:
    prefs = dict(BASE_PREFERENCES)
    prefs.update(DEFAULT_NOTIFICATION_PREFERENCES.get(role, {}))
    return prefs


def render_template(template: str, data: Dict[str, Any]) -> str:
    """Fill ``{key}`` placeholders; unknown keys render as empty strings."""
    class _Values(dict):
        def __missing__(self, key):
            return ""

    return template.format_map(_Values({k: "" if v is None else v for k, v in data.items()}))


def preferences_allow(preferences, event_type: str, config: Dict[str, Any]) -> bool:
    """
    Check a user's preferences against an event.

    ``preferences`` may be a NotificationPreference row or a plain dict.
    """
    def flag(name):
        if isinstance(preferences, dict):
            value = preferences.get(name)
        else:
            value = getattr(preferences, name, None)
        return True if value is None else bool(value)

    return all([
        flag("notifications_enabled"),
        flag("in_app_notifications_enabled"),
        flag(config["preference_key"]),
        flag(f"{config['priority']}_notifications"),
        flag(event_preference_key(event_type)),
    ])


def page_key_for(action_url: str) -> str:
    return action_url.strip("/").split("/")[0]


def resolve_recipients(session, event_type: str, triggered_by_id: Optional[int] = None) -> List[User]:
    config = NOTIFICATION_REGISTRY[event_type]
    candidates = session.query(User).filter(
        User.is_active == True,  # noqa: E712
        User.role.in_(config["roles"]),
    ).all()

    page_key = page_key_for(config["action_url"])
    hidden = {
        user_id for (user_id,) in session.query(UserPermission.user_id).filter(
            UserPermission.page_key == page_key,
            UserPermission.permission_level == "hidden",
        )
    }

    recipients = []
    for user in candidates:
        if user.id == triggered_by_id or user.id in hidden:
            continue
        prefs = user.notification_preference or default_preferences_for_role(user.role)
        if preferences_allow(prefs, event_type, config):
            recipients.append(user)
    return recipients


def trigger_event(session, event_type: str, data: Dict[str, Any],
                  triggered_by: Optional[User] = None, entity_id: Optional[int] = None) -> List[Notification]:
    """Create and push notifications for a business event. Commits the session."""
    config = NOTIFICATION_REGISTRY.get(event_type)
    if config is None:
        raise ValueError(f"Unknown notification event: {event_type}")

    values = dict(data)
    if triggered_by is not None:
        values.setdefault("username", triggered_by.username)

    recipients = resolve_recipients(session, event_type, triggered_by.id if triggered_by else None)
    if not recipients:
        logger.info(f"[Notifications] {event_type}: no eligible recipients")
        return []

    title = render_template(config["title_template"], values)
    body = render_template(config["body_template"], values)

    notifications = []
    for user in recipients:
        notification = Notification(
            recipient_user_id=user.id,
            notification_type=config["category"],
            event_type=event_type,
            priority_level=config["priority"],
            title=title,
            body=body,
            action_url=config["action_url"],
            related_entity_type=config["entity_type"],
            related_entity_id=entity_id,
            status=NotificationStatus.pending,
            action_data={"event_type": event_type, **{k: str(v) for k, v in data.items() if v is not None}},
        )
        session.add(notification)
        notifications.append(notification)
    session.commit()

    now = datetime.utcnow()
    for notification in notifications:
        live = hub.send_to_users(
            [notification.recipient_user_id], "notification:created", model_to_dict(notification)
        )
        if live.get(notification.recipient_user_id):
            notification.status = NotificationStatus.delivered
            notification.delivered_at = now
    session.commit()

    logger.info(f"[Notifications] {event_type}: {len(notifications)} notification(s) created")
    return notifications


def dispatch_event(session, event_type: str, data: Dict[str, Any],
                   triggered_by: Optional[User] = None, entity_id: Optional[int] = None) -> int:
    """
    Fire-and-log wrapper for request handlers. The business change has
    already been committed, so a notification failure is logged rather
    than turned into an error response.
    """
    try:
        return len(trigger_event(session, event_type, data, triggered_by, entity_id))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, f"Failed to dispatch {event_type} notifications")
        return 0
