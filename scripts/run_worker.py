#!/usr/bin/env python
"""
RQ worker startup script.

Usage:
    python scripts/run_worker.py

Processes jobs from the 'backups' and 'maintenance' queues. Run it as a
separate process next to the web app.
"""
import sys

from rq import Worker
from dms.workers import redis_conn, backup_queue, maintenance_queue
from dms.utils.logging_utils import logger


def main():
    if redis_conn is None:
        logger.error("Redis is not reachable; set REDIS_URL before starting a worker")
        return 1

    queues = [backup_queue, maintenance_queue]
    worker = Worker(queues, connection=redis_conn)

    logger.info(f"Worker listening on queues: {', '.join(q.name for q in queues)}")
    logger.info("Press Ctrl+C to stop")

    try:
        worker.work(with_scheduler=True)
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    return 0


if __name__ == "__main__":
    sys.exit(main())
