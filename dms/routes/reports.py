from datetime import datetime

from quart import Blueprint, jsonify, request

from dms.database import SessionLocal
from dms.services import reports
from dms.utils.auth_utils import requires_auth

reports_bp = Blueprint("reports", __name__, url_prefix="/api/business-intelligence")

REPORT_ROLES = ["admin", "manager"]


def _year_arg():
    try:
        return int(request.args.get("year", datetime.utcnow().year))
    except ValueError:
        return None


def _report(build, *args):
    session = SessionLocal()
    try:
        response = jsonify(build(session, *args))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@reports_bp.route("/overview", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def overview():
    return _report(reports.build_overview)


@reports_bp.route("/financial-performance", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def financial_performance():
    year = _year_arg()
    if year is None:
        return jsonify({"error": "year must be a number"}), 400
    return _report(reports.build_financial_performance, year)


@reports_bp.route("/quarterly-overview", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def quarterly_overview():
    year = _year_arg()
    if year is None:
        return jsonify({"error": "year must be a number"}), 400
    return _report(reports.build_quarterly_overview, year)


@reports_bp.route("/inventory-analytics", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def inventory_analytics():
    return _report(reports.build_inventory_analytics)


@reports_bp.route("/sales-trends", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def sales_trends():
    year = _year_arg()
    if year is None:
        return jsonify({"error": "year must be a number"}), 400
    return _report(reports.build_sales_trends, year)


@reports_bp.route("/operational-metrics", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def operational_metrics():
    return _report(reports.build_operational_metrics)


@reports_bp.route("/performance-indicators", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def performance_indicators():
    return _report(reports.build_performance_indicators)


@reports_bp.route("/financial-audit", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def financial_audit():
    return _report(reports.build_financial_audit)


@reports_bp.route("/vehicle-performance", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def vehicle_performance():
    return _report(reports.build_vehicle_performance)


@reports_bp.route("/sales-management", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def sales_management():
    return _report(reports.build_sales_management)


@reports_bp.route("/executive-dashboard", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def executive_dashboard():
    return _report(reports.build_executive_dashboard)


@reports_bp.route("/monthly-data/<year_month>", methods=["GET"])
@requires_auth(roles=REPORT_ROLES)
async def monthly_data(year_month):
    try:
        year, month = reports.parse_year_month(year_month)
    except ValueError:
        return jsonify({"error": "Month must look like YYYY-MM"}), 400
    return _report(reports.build_monthly_data, year, month)
