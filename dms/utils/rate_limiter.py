"""
In-memory sliding window rate limiter for authentication endpoints.

Attempts are tracked per (client IP, endpoint) so the login and password
reset limits do not eat into each other. Single-process only.
"""
import time
from collections import defaultdict, deque
from functools import wraps
from quart import request, jsonify

# {(ip, endpoint): deque([timestamp, ...])}
_attempts = defaultdict(deque)

_cleanup_counter = 0
_CLEANUP_EVERY = 100
_MAX_WINDOW_SECONDS = 3600


def _get_client_ip():
    """Client IP, honouring the usual proxy headers."""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    if request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    return request.remote_addr or 'unknown'


def _prune(bucket: deque, cutoff: float):
    while bucket and bucket[0] <= cutoff:
        bucket.popleft()


def _cleanup_old_entries(now: float):
    global _cleanup_counter
    _cleanup_counter += 1
    if _cleanup_counter < _CLEANUP_EVERY:
        return

    for key in list(_attempts.keys()):
        _prune(_attempts[key], now - _MAX_WINDOW_SECONDS)
        if not _attempts[key]:
            del _attempts[key]
    _cleanup_counter = 0


def rate_limit(max_attempts: int, window_seconds: int):
    """
    Limit a route to ``max_attempts`` calls per ``window_seconds`` per client IP.

    Example:
        @rate_limit(max_attempts=5, window_seconds=60)
        async def login():
            ...
    """
    def decorator(fn):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            if request.method == "OPTIONS":
                return await fn(*args, **kwargs)

            now = time.time()
            bucket = _attempts[(_get_client_ip(), fn.__name__)]
            _prune(bucket, now - window_seconds)

            if len(bucket) >= max_attempts:
                retry_after = int(window_seconds - (now - bucket[0])) + 1
                return jsonify({
                    "error": "Rate limit exceeded",
                    "message": f"Too many attempts. Please try again in {retry_after} seconds.",
                    "retry_after": retry_after
                }), 429

            bucket.append(now)
            _cleanup_old_entries(now)
            return await fn(*args, **kwargs)

        return wrapper
    return decorator


def reset_rate_limit(ip_address: str = None):
    """Forget recorded attempts for one IP, or for everyone."""
    if ip_address is None:
        _attempts.clear()
        return
    for key in [k for k in _attempts if k[0] == ip_address]:
        del _attempts[key]
