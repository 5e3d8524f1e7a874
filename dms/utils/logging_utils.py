"""
Centralized logging configuration for the DMS backend.

Provides:
- Structured logging with user context
- Request/response logging
- Audit lines for record changes
- Timing of service operations
"""

import asyncio
import logging
import time
from functools import wraps
from typing import Optional, Any, Dict
from quart import request
import sys

from dms.config import LOG_LEVEL, SLOW_QUERY_THRESHOLD_MS

# Configure root logger
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger('dms')

# Service operations run several queries, so allow a few slow-query budgets
SLOW_OPERATION_THRESHOLD_MS = SLOW_QUERY_THRESHOLD_MS * 5


def get_request_context() -> Dict[str, Any]:
    """Extract relevant context from the current request."""
    context = {}

    try:
        if request:
            context['method'] = request.method
            context['path'] = request.path
            context['remote_addr'] = request.remote_addr

            user = getattr(request, 'user', None)
            if user is not None:
                context['user_id'] = getattr(user, 'id', None)
                context['username'] = getattr(user, 'username', None)
                context['role'] = getattr(user, 'role', None)
    except RuntimeError:
        # Outside request context
        pass

    return context


def log_endpoint(endpoint_name: str, duration_ms: float, status_code: int = 200):
    """
    Log API endpoint performance.

    Args:
        endpoint_name: Name of the endpoint/route
        duration_ms: Total endpoint execution time
        status_code: HTTP response status code
    """
    context = get_request_context()
    log_data = {
        'endpoint': endpoint_name,
        'duration_ms': round(duration_ms, 2),
        'status_code': status_code,
        **context
    }

    level = logging.WARNING if status_code >= 400 else logging.INFO
    logger.log(level, f"Endpoint completed: {log_data}")


def log_error(error: Exception, context_message: str = ""):
    """
    Log errors with full context.

    Args:
        error: The exception that occurred
        context_message: Additional context about what was being attempted
    """
    context = get_request_context()
    log_data = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        'context': context_message,
        **context
    }

    logger.error(f"Error occurred: {log_data}", exc_info=True)


def log_user_action(action: str, entity_type: str, entity_id: Optional[int] = None,
                    user_id: Optional[int] = None, **extra):
    """
    Log important user actions for the audit trail.

    Args:
        action: Description of the action (e.g., "created", "deleted", "imported")
        entity_type: Type of entity (e.g., "vehicle", "lead", "job")
        entity_id: Optional ID of the entity
        user_id: Optional user ID, defaults to the authenticated user
    """
    context = get_request_context()

    log_data = {
        'action': action,
        'entity_type': entity_type,
        'entity_id': entity_id,
        'user_id': user_id or context.get('user_id'),
        **extra,
    }

    logger.info(f"User action: {log_data}")


def log_operation(operation_name: str, duration_ms: float, failed: bool = False):
    """Timing line for a service-level operation; slow ones log at WARNING."""
    log_data = {
        'operation': operation_name,
        'duration_ms': round(duration_ms, 2),
        'failed': failed,
        **get_request_context()
    }
    slow = duration_ms > SLOW_OPERATION_THRESHOLD_MS
    logger.log(logging.WARNING if failed or slow else logging.DEBUG, f"Operation timed: {log_data}")


def timing_logger(operation_name: str):
    """
    Decorator to log how long a sync or async operation takes.

    Usage:
        @timing_logger("dashboard_stats")
        def build_dashboard_stats(session):
            ...
    """
    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                failed = True
                try:
                    result = await func(*args, **kwargs)
                    failed = False
                    return result
                finally:
                    log_operation(operation_name, (time.perf_counter() - started) * 1000, failed)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            failed = True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                log_operation(operation_name, (time.perf_counter() - started) * 1000, failed)
        return sync_wrapper

    return decorator
