"""
Uploaded purchase and sales invoice documents.

Both blueprints share the helpers below; the file goes to the configured
storage backend and the row keeps its key plus searchable metadata.
"""
from botocore.exceptions import BotoCoreError, ClientError
from quart import Blueprint, Response, request, jsonify
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from dms.database import SessionLocal
from dms.models import PurchaseInvoice, SalesInvoice
from dms.schemas.invoices import PurchaseInvoiceMetaSchema, SalesInvoiceMetaSchema
from dms.services.invoices import content_type_for, document_type
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict
from dms.utils.storage import build_object_key, get_storage

purchase_invoices_bp = Blueprint("purchase_invoices", __name__, url_prefix="/api/purchase-invoices")
sales_invoices_bp = Blueprint("sales_invoices", __name__, url_prefix="/api/sales-invoices")

EDIT_ROLES = ["admin", "manager", "office_staff"]

PURCHASE = {
    "model": PurchaseInvoice,
    "schema": PurchaseInvoiceMetaSchema,
    "label": "Purchase invoice",
    "entity": "purchase_invoice",
    "prefix": "purchase-invoices",
    "required": ("buyer_name",),
    "search": ("buyer_name", "registration", "make", "model", "description"),
    "group_by": ("seller_type", "totalBySellerType"),
}

SALES = {
    "model": SalesInvoice,
    "schema": SalesInvoiceMetaSchema,
    "label": "Sales invoice",
    "entity": "sales_invoice",
    "prefix": "sales-invoices",
    "required": ("seller_name", "customer_name"),
    "search": ("seller_name", "customer_name", "registration", "make", "model", "notes"),
    "group_by": ("delivery_collection", "totalByDeliveryType"),
}


def _serialize(document):
    return model_to_dict(document, exclude=("document_path",))


def _list(kind):
    model = kind["model"]
    session = SessionLocal()
    try:
        query = session.query(model)
        status = request.args.get("status")
        if status:
            query = query.filter(model.status == status)
        else:
            query = query.filter(model.status != "deleted")

        q = (request.args.get("q") or request.args.get("search") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(*[getattr(model, field).ilike(pattern) for field in kind["search"]]))

        documents = query.order_by(model.upload_date.desc(), model.id.desc()).all()
        response = jsonify([_serialize(d) for d in documents])
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


def _stats(kind):
    model = kind["model"]
    column, key = kind["group_by"]
    session = SessionLocal()
    try:
        live = model.status != "deleted"
        total = session.query(func.count(model.id)).filter(live).scalar()
        grouped = session.query(getattr(model, column), func.count(model.id)).filter(live).group_by(
            getattr(model, column)).all()
        recent = session.query(model).filter(live).order_by(model.upload_date.desc()).limit(5).all()

        response = jsonify({
            "totalInvoices": total,
            key: {(value or "unknown"): count for value, count in grouped},
            "recentUploads": [_serialize(d) for d in recent],
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


def _get(kind, document_id):
    session = SessionLocal()
    try:
        document = session.get(kind["model"], document_id)
        if not document or document.status == "deleted":
            return jsonify({"error": f"{kind['label']} not found"}), 404
        response = jsonify(_serialize(document))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


async def _upload(kind):
    files = await request.files
    upload = files.get("file") or files.get("document")
    if upload is None or not upload.filename:
        return jsonify({"error": "A document file is required"}), 400

    doc_type = document_type(upload.filename)
    if doc_type is None:
        return jsonify({"error": "Unsupported document type"}), 400

    form = await request.form
    try:
        data = kind["schema"](**{key: value for key, value in form.items()})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    missing = [field for field in kind["required"] if not getattr(data, field)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    content = upload.read()
    if not content:
        return jsonify({"error": "Uploaded file is empty"}), 400

    storage = get_storage()
    object_key = build_object_key(kind["prefix"], upload.filename)
    try:
        storage.save(object_key, content, content_type_for(doc_type))
    except (OSError, ValueError, BotoCoreError, ClientError) as e:
        log_error(e, f"Failed to store {kind['entity']} document")
        return jsonify({"error": "Could not store document"}), 502

    values = data.model_dump(exclude_none=True)
    values.setdefault("status", "active")

    session = SessionLocal()
    try:
        document = kind["model"](
            document_filename=upload.filename,
            document_path=object_key,
            document_size=len(content),
            document_type=doc_type,
            **values,
        )
        session.add(document)
        session.commit()

        log_user_action("uploaded", kind["entity"], document.id, filename=upload.filename)
        return jsonify(_serialize(document)), 201
    except SQLAlchemyError as e:
        session.rollback()
        storage.delete(object_key)
        log_error(e, f"Failed to save {kind['entity']}")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


async def _update(kind, document_id):
    try:
        data = kind["schema"](**(await request.get_json() or {}))
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True)
    for field in kind["required"] + ("status",):
        if field in changes and changes[field] is None:
            changes.pop(field)

    session = SessionLocal()
    try:
        document = session.get(kind["model"], document_id)
        if not document or document.status == "deleted":
            return jsonify({"error": f"{kind['label']} not found"}), 404
        for field, value in changes.items():
            setattr(document, field, value)
        session.commit()
        return jsonify(_serialize(document))
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, f"Failed to update {kind['entity']}")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


def _download(kind, document_id):
    session = SessionLocal()
    try:
        document = session.get(kind["model"], document_id)
        if not document or document.status == "deleted":
            return jsonify({"error": f"{kind['label']} not found"}), 404
        filename, object_key, doc_type = document.document_filename, document.document_path, document.document_type
    finally:
        session.close()

    try:
        content = get_storage().read(object_key)
    except FileNotFoundError:
        return jsonify({"error": "Document file is missing"}), 404
    except (OSError, ValueError, BotoCoreError, ClientError) as e:
        log_error(e, f"Failed to read {kind['entity']} document")
        return jsonify({"error": "Could not read document"}), 502

    safe_name = filename.replace('"', "")
    return Response(
        content,
        mimetype=content_type_for(doc_type),
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )


def _soft_delete(kind, document_id):
    session = SessionLocal()
    try:
        document = session.get(kind["model"], document_id)
        if not document or document.status == "deleted":
            return jsonify({"error": f"{kind['label']} not found"}), 404
        document.status = "deleted"
        session.commit()
        log_user_action("deleted", kind["entity"], document_id)
        return jsonify({"message": f"{kind['label']} deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, f"Failed to delete {kind['entity']}")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


# Purchase invoices

@purchase_invoices_bp.route("", methods=["GET"])
@purchase_invoices_bp.route("/", methods=["GET"])
@requires_auth()
async def list_purchase_invoices():
    return _list(PURCHASE)


@purchase_invoices_bp.route("/stats", methods=["GET"])
@requires_auth()
async def purchase_invoice_stats():
    return _stats(PURCHASE)


@purchase_invoices_bp.route("/<int:document_id>", methods=["GET"])
@requires_auth()
async def get_purchase_invoice(document_id):
    return _get(PURCHASE, document_id)


@purchase_invoices_bp.route("", methods=["POST"])
@purchase_invoices_bp.route("/", methods=["POST"])
@purchase_invoices_bp.route("/upload", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def upload_purchase_invoice():
    return await _upload(PURCHASE)


@purchase_invoices_bp.route("/<int:document_id>", methods=["PUT"])
@requires_auth(roles=EDIT_ROLES)
async def update_purchase_invoice(document_id):
    return await _update(PURCHASE, document_id)


@purchase_invoices_bp.route("/<int:document_id>/download", methods=["GET"])
@requires_auth()
async def download_purchase_invoice(document_id):
    return _download(PURCHASE, document_id)


@purchase_invoices_bp.route("/<int:document_id>", methods=["DELETE"])
@requires_auth(roles=EDIT_ROLES)
async def delete_purchase_invoice(document_id):
    return _soft_delete(PURCHASE, document_id)


# Sales invoices

@sales_invoices_bp.route("", methods=["GET"])
@sales_invoices_bp.route("/", methods=["GET"])
@requires_auth()
async def list_sales_invoices():
    return _list(SALES)


@sales_invoices_bp.route("/stats", methods=["GET"])
@requires_auth()
async def sales_invoice_stats():
    return _stats(SALES)


@sales_invoices_bp.route("/<int:document_id>", methods=["GET"])
@requires_auth()
async def get_sales_invoice(document_id):
    return _get(SALES, document_id)


@sales_invoices_bp.route("", methods=["POST"])
@sales_invoices_bp.route("/", methods=["POST"])
@sales_invoices_bp.route("/upload", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def upload_sales_invoice():
    return await _upload(SALES)


@sales_invoices_bp.route("/<int:document_id>", methods=["PUT"])
@requires_auth(roles=EDIT_ROLES)
async def update_sales_invoice(document_id):
    return await _update(SALES, document_id)


@sales_invoices_bp.route("/<int:document_id>/download", methods=["GET"])
@requires_auth()
async def download_sales_invoice(document_id):
    return _download(SALES, document_id)


@sales_invoices_bp.route("/<int:document_id>", methods=["DELETE"])
@requires_auth(roles=EDIT_ROLES)
async def delete_sales_invoice(document_id):
    return _soft_delete(SALES, document_id)
