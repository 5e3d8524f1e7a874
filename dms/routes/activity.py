from quart import Blueprint, jsonify, request
from sqlalchemy import func, desc
from dms.database import SessionLocal
from dms.models import ActivityLog, Customer, Job, Lead, Vehicle
from dms.utils.auth_utils import requires_auth
from dms.utils.serializers import iso, user_summary


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


def _vehicle_name(v):
    label = " ".join(part for part in (v.make, v.model) if part)
    return f"{v.registration or v.stock_number or v.id} {label}".strip()


# entity_type -> (model, display name, frontend link)
ENTITY_LOADERS = {
    "vehicle": (Vehicle, _vehicle_name, lambda v: "/vehicle-master"),
    "lead": (Lead, lambda l: f"{l.first_name} {l.last_name}", lambda l: "/leads"),
    "customer": (Customer, lambda c: f"{c.first_name} {c.last_name}", lambda c: "/customers"),
    "job": (Job, lambda j: f"{j.job_number} ({j.job_type})", lambda j: "/calendar"),
}


@activity_bp.route("/recent", methods=["GET"])
@requires_auth()
async def recent_activity():
    user = request.user
    session = SessionLocal()
    try:
        try:
            limit = min(int(request.args.get("limit", 10)), 50)
        except ValueError:
            limit = 10

        # Most recent log per entity_type + entity_id for this user
        subquery = (
            session.query(
                ActivityLog.entity_type,
                ActivityLog.entity_id,
                func.max(ActivityLog.timestamp).label("last_touched")
            )
            .filter(ActivityLog.user_id == user.id)
            .group_by(ActivityLog.entity_type, ActivityLog.entity_id)
            .subquery()
        )

        results = session.query(
            subquery.c.entity_type,
            subquery.c.entity_id,
            subquery.c.last_touched
        ).order_by(desc(subquery.c.last_touched)).limit(limit).all()

        # Bulk load entities per type (prevents N+1)
        ids_by_type = {}
        for row in results:
            ids_by_type.setdefault(row.entity_type, []).append(row.entity_id)

        loaded = {}
        for entity_type, ids in ids_by_type.items():
            if entity_type not in ENTITY_LOADERS:
                continue
            model = ENTITY_LOADERS[entity_type][0]
            loaded[entity_type] = {e.id: e for e in session.query(model).filter(model.id.in_(ids))}

        output = []
        for row in results:
            entity = loaded.get(row.entity_type, {}).get(row.entity_id)
            if entity is None:
                continue
            _, name, link = ENTITY_LOADERS[row.entity_type]
            output.append({
                "entity_type": row.entity_type,
                "entity_id": row.entity_id,
                "name": name(entity),
                "last_touched": iso(row.last_touched),
                "profile_link": link(entity),
            })

        response = jsonify(output)
        response.headers["Cache-Control"] = "no-store"
        return response

    finally:
        session.close()


@activity_bp.route("/entity/<entity_type>/<int:entity_id>", methods=["GET"])
@requires_auth()
async def entity_history(entity_type, entity_id):
    session = SessionLocal()
    try:
        logs = (
            session.query(ActivityLog)
            .filter(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
            .order_by(ActivityLog.timestamp.desc())
            .limit(100)
            .all()
        )
        response = jsonify([
            {
                "id": log.id,
                "action": log.action.value,
                "description": log.description,
                "timestamp": iso(log.timestamp),
                "user": user_summary(log.user),
            }
            for log in logs
        ])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()
