from quart import Blueprint, request, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.services.realtime import hub
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import logger, log_error as log_error_util

utils_bp = Blueprint("utils", __name__, url_prefix="/api")
health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
async def liveness():
    """Process is up; does not touch the database."""
    return jsonify({"status": "ok"})


@utils_bp.route("/health", methods=["GET"])
async def readiness():
    session = SessionLocal()
    try:
        session.execute(text("SELECT 1"))
        return jsonify({"status": "ok", "database": "ok"})
    except SQLAlchemyError as e:
        log_error_util(e, "Health check database ping failed")
        return jsonify({"status": "degraded", "database": "unavailable"}), 503
    finally:
        session.close()


@utils_bp.route("/log-error", methods=["POST"])
@requires_auth()
async def log_error():
    """Frontend error reports; Sentry covers server-side errors."""
    user = request.user
    data = await request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object"}), 400
    message = data.get("message", "No message provided")
    context = data.get("context") or {}
    if not isinstance(context, dict):
        context = {"detail": context}

    context["user_id"] = user.id
    context["username"] = user.username

    logger.error(f"[Frontend Error] {message} | Context: {context}")
    return {"status": "logged"}


@utils_bp.route("/realtime/status", methods=["GET"])
@requires_auth()
async def realtime_status():
    status = hub.status()
    status["user_online"] = hub.is_online(request.user.id)
    return jsonify(status)
