from datetime import datetime, timedelta
from functools import wraps
from typing import Optional

import bcrypt
import jwt
from quart import request, jsonify

from dms.config import SECRET_KEY, TOKEN_EXPIRY_HOURS, RESET_TOKEN_EXPIRY_MINUTES
from dms.database import SessionLocal
from dms.models import User

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_token(user: User) -> str:
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "exp": datetime.utcnow() + timedelta(hours=TOKEN_EXPIRY_HOURS),
        "iat": datetime.utcnow(),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Return the token payload, or None if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("purpose"):
        # Reset tokens are not session tokens
        return None
    return payload


def generate_reset_token(email: str) -> str:
    payload = {
        "sub": email,
        "purpose": "password_reset",
        "exp": datetime.utcnow() + timedelta(minutes=RESET_TOKEN_EXPIRY_MINUTES),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_reset_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("purpose") != "password_reset":
        return None
    return payload.get("sub")


def load_user_from_token(token: str) -> Optional[User]:
    """Resolve a bearer token to an active, detached User."""
    payload = decode_token(token)
    if not payload:
        return None

    session = SessionLocal()
    try:
        user = session.get(User, int(payload["sub"]))
        if not user or not user.is_active:
            return None
        session.expunge(user)
        return user
    finally:
        session.close()


def requires_auth(roles=None):
    """
    Require a valid bearer token; optionally restrict to the given roles.

    The authenticated user is exposed as ``request.user``.
    """
    def decorator(fn):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            if request.method == "OPTIONS":
                return await fn(*args, **kwargs)

            auth_header = request.headers.get("Authorization", "")
            if not auth_header.startswith("Bearer "):
                return jsonify({"error": "Missing or invalid token"}), 401

            user = load_user_from_token(auth_header.split(" ", 1)[1].strip())
            if not user:
                return jsonify({"error": "Invalid or expired token"}), 401

            if roles and user.role not in roles:
                return jsonify({"error": "Forbidden"}), 403

            request.user = user
            return await fn(*args, **kwargs)

        return wrapper
    return decorator
