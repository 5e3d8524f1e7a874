from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import User, NotificationPreference
from dms.routes.auth import serialize_user
from dms.schemas.users import UserCreateSchema, UserUpdateSchema, AdminPasswordResetSchema
from dms.services.notification_events import DEFAULT_NOTIFICATION_PREFERENCES
from dms.utils.auth_utils import requires_auth, hash_password
from dms.utils.logging_utils import log_error, log_user_action

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _username_or_email_taken(session, username=None, email=None, exclude_id=None):
    conditions = []
    if username:
        conditions.append(func.lower(User.username) == username.lower())
    if email:
        conditions.append(func.lower(User.email) == email.lower())
    if not conditions:
        return False
    query = session.query(User.id).filter(or_(*conditions))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


@users_bp.route("", methods=["GET"])
@users_bp.route("/", methods=["GET"])
@requires_auth(roles=["admin"])
async def list_users():
    session = SessionLocal()
    try:
        users = session.query(User).order_by(User.username).all()
        response = jsonify([serialize_user(u) for u in users])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@users_bp.route("/active", methods=["GET"])
@requires_auth()
async def list_active_users():
    """Lightweight list for assignment pickers; any signed-in user may call it."""
    session = SessionLocal()
    try:
        users = session.query(User).filter(User.is_active == True).order_by(User.first_name, User.username).all()  # noqa: E712
        response = jsonify([
            {"id": u.id, "username": u.username, "full_name": u.full_name, "role": u.role}
            for u in users
        ])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@users_bp.route("/<int:user_id>", methods=["GET"])
@requires_auth(roles=["admin"])
async def get_user(user_id):
    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        return jsonify(serialize_user(user))
    finally:
        session.close()


@users_bp.route("", methods=["POST"])
@users_bp.route("/", methods=["POST"])
@requires_auth(roles=["admin"])
async def create_user():
    try:
        data = UserCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    email = str(data.email).lower() if data.email else None
    session = SessionLocal()
    try:
        if _username_or_email_taken(session, data.username, email):
            return jsonify({"error": "Username or email already exists"}), 409

        user = User(
            username=data.username,
            email=email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role,
            is_active=data.is_active,
        )
        session.add(user)
        session.flush()

        session.add(NotificationPreference(
            user_id=user.id, **DEFAULT_NOTIFICATION_PREFERENCES.get(data.role, {})
        ))
        session.commit()
        session.refresh(user)

        log_user_action("created", "user", user.id, role=user.role)
        return jsonify(serialize_user(user)), 201
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create user")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@users_bp.route("/<int:user_id>", methods=["PUT"])
@requires_auth(roles=["admin"])
async def update_user(user_id):
    try:
        data = UserUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        changes = data.model_dump(exclude_unset=True)
        if changes.get("email"):
            changes["email"] = str(changes["email"]).lower()
        if _username_or_email_taken(session, changes.get("username"), changes.get("email"), exclude_id=user.id):
            return jsonify({"error": "Username or email already exists"}), 409
        if user.id == request.user.id and changes.get("is_active") is False:
            return jsonify({"error": "You cannot deactivate your own account"}), 400

        for field, value in changes.items():
            setattr(user, field, value)
        session.commit()
        session.refresh(user)

        log_user_action("edited", "user", user.id, fields=sorted(changes))
        return jsonify(serialize_user(user))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update user")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@users_bp.route("/<int:user_id>/toggle-active", methods=["PATCH", "POST"])
@requires_auth(roles=["admin"])
async def toggle_user_active(user_id):
    if user_id == request.user.id:
        return jsonify({"error": "You cannot deactivate your own account"}), 400

    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        user.is_active = not user.is_active
        session.commit()
        log_user_action("activated" if user.is_active else "deactivated", "user", user.id)
        return jsonify({"id": user.id, "is_active": user.is_active})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to toggle user")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@users_bp.route("/<int:user_id>/reset-password", methods=["POST"])
@requires_auth(roles=["admin"])
async def admin_reset_password(user_id):
    try:
        data = AdminPasswordResetSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        user.password_hash = hash_password(data.new_password)
        session.commit()
        log_user_action("password_reset", "user", user.id)
        return jsonify({"message": "Password reset"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to reset password")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@requires_auth(roles=["admin"])
async def delete_user(user_id):
    if user_id == request.user.id:
        return jsonify({"error": "You cannot delete your own account"}), 400

    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        session.delete(user)
        session.commit()
        log_user_action("deleted", "user", user_id)
        return jsonify({"message": "User deleted"})
    except SQLAlchemyError as e:
        # Users referenced by jobs, interactions etc. cannot be removed
        session.rollback()
        log_error(e, "Failed to delete user")
        return jsonify({"error": "User has linked records; deactivate instead"}), 409
    finally:
        session.close()
