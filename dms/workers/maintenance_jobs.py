"""
Housekeeping jobs run from the maintenance queue or a scheduled machine.
"""
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from dms.config import NOTIFICATION_RETENTION_DAYS
from dms.database import SessionLocal
from dms.models import Notification, NotificationStatus, PinnedMessage
from dms.utils.logging_utils import logger


def purge_old_notifications(now: datetime = None, retention_days: int = NOTIFICATION_RETENTION_DAYS) -> int:
    """Delete read or dismissed notifications older than the retention window."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)
    session = SessionLocal()
    try:
        deleted = session.query(Notification).filter(
            Notification.status.in_([NotificationStatus.read, NotificationStatus.dismissed]),
            Notification.created_at < cutoff,
        ).delete(synchronize_session=False)
        session.commit()
        logger.info(f"[Maintenance] Purged {deleted} notification(s) older than {retention_days} days")
        return deleted
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def unpin_expired_messages(now: datetime = None) -> int:
    now = now or datetime.utcnow()
    session = SessionLocal()
    try:
        updated = session.query(PinnedMessage).filter(
            PinnedMessage.is_pinned == True,  # noqa: E712
            PinnedMessage.expires_at.isnot(None),
            PinnedMessage.expires_at <= now,
        ).update({PinnedMessage.is_pinned: False}, synchronize_session=False)
        session.commit()
        logger.info(f"[Maintenance] Unpinned {updated} expired message(s)")
        return updated
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def run_maintenance(now: datetime = None) -> dict:
    return {
        "notifications_purged": purge_old_notifications(now),
        "messages_unpinned": unpin_expired_messages(now),
    }
