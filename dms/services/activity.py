from typing import Optional

from dms.models import ActivityLog, ActivityType


def record_activity(session, user, action: ActivityType, entity_type: str, entity_id: int,
                    description: Optional[str] = None) -> ActivityLog:
    """Add an ActivityLog row to ``session``; the caller commits."""
    log = ActivityLog(
        user_id=user.id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
    )
    session.add(log)
    return log
