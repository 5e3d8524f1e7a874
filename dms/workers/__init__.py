"""
RQ (Redis Queue) worker infrastructure for background jobs.
"""
import redis
from rq import Queue
from dms.config import REDIS_URL, BACKUP_JOB_TIMEOUT_MINUTES
from dms.utils.logging_utils import logger

# Redis connection (shared across all queues)
# Gracefully handle missing Redis in development
redis_conn = None
backup_queue = None
maintenance_queue = None

try:
    redis_conn = redis.from_url(REDIS_URL)
    redis_conn.ping()

    backup_queue = Queue('backups', connection=redis_conn, default_timeout=BACKUP_JOB_TIMEOUT_MINUTES * 60)
    # Notification purge and pin expiry
    maintenance_queue = Queue('maintenance', connection=redis_conn, default_timeout=600)
    logger.info("[Workers] Redis connection established successfully")
except (redis.ConnectionError, redis.TimeoutError) as e:
    redis_conn = None
    logger.warning(f"[Workers] Redis not available: {str(e)}")
    logger.warning("[Workers] Background jobs (backups, maintenance) will not be available")
