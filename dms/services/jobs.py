"""
Job numbering, status transitions and job statistics.
"""
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func

from dms.constants import OPEN_JOB_STATUSES
from dms.models import Job

MAX_NUMBER_ATTEMPTS = 20


def job_number_base(job_type: Optional[str], now_ms: Optional[int] = None) -> str:
    """``DEL-123456`` style number: type prefix plus the last six digits of the ms clock."""
    prefix = (job_type or "JOB")[:3].upper()
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}-{str(now_ms)[-6:]}"


def generate_job_number(session, job_type: Optional[str], now_ms: Optional[int] = None,
                        exists: Optional[Callable[[str], bool]] = None) -> str:
    """Pick an unused job number, appending ``-1``, ``-2``... on collision."""
    base = job_number_base(job_type, now_ms)
    if exists is None:
        def exists(number):
            return session.query(Job.id).filter(Job.job_number == number).first() is not None

    candidate = base
    for suffix in range(1, MAX_NUMBER_ATTEMPTS + 1):
        if not exists(candidate):
            return candidate
        candidate = f"{base}-{suffix}"
    raise RuntimeError(f"Could not allocate a job number for {base}")


def apply_status(job: Job, status: str, now: Optional[datetime] = None):
    """Set ``job_status`` and stamp start/end times for the transition."""
    now = now or datetime.utcnow()
    job.job_status = status
    if status == "in_progress" and job.actual_start_date is None:
        job.actual_start_date = now
    elif status == "completed":
        job.actual_end_date = now
        if job.actual_start_date is not None:
            hours = (now - job.actual_start_date).total_seconds() / 3600
            job.actual_duration_hours = Decimal(str(round(hours, 2)))


def job_stats(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    week_start = (now - timedelta(days=(now.weekday() + 1) % 7)).replace(
        hour=0, minute=0, second=0, microsecond=0)

    def count(*conditions):
        return session.query(func.count(Job.id)).filter(*conditions).scalar()

    by_status = session.query(Job.job_status, func.count(Job.id)).group_by(Job.job_status).all()
    by_type = session.query(Job.job_type, func.count(Job.id)).group_by(Job.job_type).all()
    average_hours = session.query(func.avg(Job.actual_duration_hours)).filter(
        Job.job_status == "completed", Job.actual_duration_hours.isnot(None)
    ).scalar()

    return {
        "totalJobs": count(),
        "pendingJobs": count(Job.job_status == "pending"),
        "inProgressJobs": count(Job.job_status == "in_progress"),
        "completedJobs": count(Job.job_status == "completed"),
        "overdueJobs": count(Job.job_status.in_(OPEN_JOB_STATUSES), Job.scheduled_date < now),
        "completedThisWeek": count(Job.job_status == "completed", Job.actual_end_date >= week_start),
        "jobsByType": [{"jobType": job_type, "count": n} for job_type, n in by_type],
        "jobsByStatus": [{"status": status, "count": n} for status, n in by_status],
        "averageCompletionHours": round(float(average_hours), 2) if average_hours is not None else 0,
    }
