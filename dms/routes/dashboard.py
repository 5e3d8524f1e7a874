from quart import Blueprint, jsonify

from dms.database import SessionLocal
from dms.services.analytics import build_dashboard_stats, build_stock_age_analytics
from dms.utils.auth_utils import requires_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")
stock_age_bp = Blueprint("stock_age", __name__, url_prefix="/api/stock-age")


@dashboard_bp.route("/stats", methods=["GET"])
@requires_auth()
async def dashboard_stats():
    session = SessionLocal()
    try:
        response = jsonify(build_dashboard_stats(session))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@stock_age_bp.route("/analytics", methods=["GET"])
@requires_auth(roles=["admin", "manager", "office_staff"])
async def stock_age_analytics():
    session = SessionLocal()
    try:
        response = jsonify(build_stock_age_analytics(session))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()
