from datetime import datetime

from quart import Blueprint, request, jsonify, current_app
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from dms.models import User
from dms.database import SessionLocal
from dms.schemas.users import (
    LoginSchema, ProfileUpdateSchema, ChangePasswordSchema, ForgotPasswordSchema, ResetPasswordSchema,
)
from dms.utils.auth_utils import (
    verify_password,
    create_token,
    hash_password,
    generate_reset_token,
    verify_reset_token,
    requires_auth,
)
from dms.utils.logging_utils import logger, log_error, log_user_action
from dms.utils.rate_limiter import rate_limit
from dms.utils.serializers import model_to_dict


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


def serialize_user(user: User) -> dict:
    return model_to_dict(user, exclude=("password_hash",), extra={"full_name": user.full_name})


@auth_bp.route("/login", methods=["POST"])
@rate_limit(max_attempts=5, window_seconds=60)  # 5 login attempts per minute per IP
async def login():
    try:
        data = LoginSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        identifier = data.identifier
        user = session.query(User).filter(
            or_(func.lower(User.username) == identifier, func.lower(User.email) == identifier)
        ).first()
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning(f"[Auth] Failed login for '{identifier}'")
            return jsonify({"error": "Invalid credentials"}), 401

        if not user.is_active:
            return jsonify({"error": "Account is disabled"}), 403

        user.last_login = datetime.utcnow()
        session.commit()

        token = create_token(user)
        log_user_action("login", "user", user.id, user_id=user.id)

        response = jsonify({"user": serialize_user(user), "token": token})
        response.headers["Cache-Control"] = "no-store"
        return response
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Login failed")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@auth_bp.route("/logout", methods=["POST"])
@requires_auth()
async def logout():
    # Tokens are stateless; the client discards its copy
    log_user_action("logout", "user", request.user.id)
    return jsonify({"message": "Logged out"})


@auth_bp.route("/forgot-password", methods=["POST"])
@rate_limit(max_attempts=3, window_seconds=300)  # 3 password reset attempts per 5 minutes per IP
async def forgot_password():
    try:
        data = ForgotPasswordSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    email = str(data.email).lower()
    session = SessionLocal()
    try:
        user = session.query(User).filter(func.lower(User.email) == email, User.is_active == True).first()  # noqa: E712
        if user:
            token = generate_reset_token(email)
            reset_link = f"{current_app.config['FRONTEND_URL']}/reset-password/{token}"
            logger.info(f"[Auth] Password reset requested for user {user.id}: {reset_link}")

        # Same answer either way so account existence is not revealed
        return jsonify({"message": "If that account exists, a reset link was issued."})
    finally:
        session.close()


@auth_bp.route("/reset-password", methods=["POST"])
async def reset_password():
    raw = await request.get_json() or {}
    # Older clients send "password"
    if isinstance(raw, dict) and "new_password" not in raw and "password" in raw:
        raw["new_password"] = raw["password"]
    try:
        data = ResetPasswordSchema.model_validate(raw)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    email = verify_reset_token(data.token)
    if not email:
        return jsonify({"error": "Invalid or expired token"}), 400

    session = SessionLocal()
    try:
        user = session.query(User).filter(func.lower(User.email) == email.lower()).first()
        if not user:
            return jsonify({"error": "User not found"}), 404

        user.password_hash = hash_password(data.new_password)
        session.commit()
        log_user_action("password_reset", "user", user.id, user_id=user.id)
        return jsonify({"message": "Password updated successfully"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Password reset failed")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@auth_bp.route("/change-password", methods=["POST"])
@requires_auth()
async def change_password():
    try:
        data = ChangePasswordSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    if not verify_password(data.current_password, request.user.password_hash):
        return jsonify({"error": "Incorrect current password"}), 403

    session = SessionLocal()
    try:
        user = session.get(User, request.user.id)
        user.password_hash = hash_password(data.new_password)
        session.commit()
        log_user_action("password_changed", "user", user.id)
        return jsonify({"message": "Password changed successfully"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Password change failed")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@auth_bp.route("/me", methods=["GET"])
@requires_auth()
async def get_me():
    response = jsonify(serialize_user(request.user))
    response.headers["Cache-Control"] = "no-store"
    return response


@auth_bp.route("/me", methods=["PUT"])
@requires_auth()
async def update_me():
    try:
        data = ProfileUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        user = session.get(User, request.user.id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("email"):
            changes["email"] = str(changes["email"]).lower()
            taken = session.query(User).filter(
                func.lower(User.email) == changes["email"], User.id != user.id
            ).first()
            if taken:
                return jsonify({"error": "Email already in use"}), 409

        for field, value in changes.items():
            setattr(user, field, value)
        session.commit()
        session.refresh(user)
        return jsonify(serialize_user(user))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Profile update failed")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
