from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import PageDefinition, User, UserPermission
from dms.schemas.permissions import UserPermissionsSchema
from dms.services.permissions import accessible_pages, seed_page_definitions
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict

permissions_bp = Blueprint("permissions", __name__, url_prefix="/api/permissions")


@permissions_bp.route("/me", methods=["GET"])
@requires_auth()
async def my_permissions():
    session = SessionLocal()
    try:
        response = jsonify({"pages": accessible_pages(session, request.user)})
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@permissions_bp.route("/pages", methods=["GET"])
@requires_auth(roles=["admin"])
async def list_pages():
    session = SessionLocal()
    try:
        pages = session.query(PageDefinition).order_by(PageDefinition.page_category, PageDefinition.page_name).all()
        return jsonify([model_to_dict(p) for p in pages])
    finally:
        session.close()


@permissions_bp.route("/pages/initialize", methods=["POST"])
@requires_auth(roles=["admin"])
async def initialize_pages():
    session = SessionLocal()
    try:
        created = seed_page_definitions(session)
        session.commit()
        return jsonify({"created": created})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to seed page definitions")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@permissions_bp.route("/users/<int:user_id>", methods=["GET"])
@requires_auth(roles=["admin"])
async def get_user_permissions(user_id):
    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        recorded = session.query(UserPermission).filter(UserPermission.user_id == user_id).all()
        return jsonify({
            "user_id": user_id,
            "permissions": [model_to_dict(p) for p in recorded],
            "effective": accessible_pages(session, user),
        })
    finally:
        session.close()


@permissions_bp.route("/users/<int:user_id>", methods=["PUT"])
@requires_auth(roles=["admin"])
async def replace_user_permissions(user_id):
    try:
        data = UserPermissionsSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    session = SessionLocal()
    try:
        if not session.get(User, user_id):
            return jsonify({"error": "User not found"}), 404

        known = {key for (key,) in session.query(PageDefinition.page_key)}
        unknown = sorted({p.page_key for p in data.permissions} - known)
        if unknown:
            return jsonify({"error": f"Unknown page(s): {', '.join(unknown)}"}), 400

        session.query(UserPermission).filter(UserPermission.user_id == user_id).delete()
        for entry in data.permissions:
            session.add(UserPermission(user_id=user_id, **entry.model_dump()))
        session.commit()

        log_user_action("edited", "user_permissions", user_id, pages=len(data.permissions))
        return jsonify({"user_id": user_id, "count": len(data.permissions)})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to replace user permissions")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@permissions_bp.route("/users/<int:user_id>", methods=["DELETE"])
@requires_auth(roles=["admin"])
async def clear_user_permissions(user_id):
    session = SessionLocal()
    try:
        deleted = session.query(UserPermission).filter(UserPermission.user_id == user_id).delete()
        session.commit()
        return jsonify({"deleted": deleted})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to clear user permissions")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
