from quart import Blueprint, request, jsonify
from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dms.database import SessionLocal
from dms.models import Invoice, InvoiceItem, VehicleCondition
from dms.schemas.invoices import InvoiceCreateSchema, InvoiceUpdateSchema
from dms.services.invoices import compute_invoice_totals
from dms.utils.auth_utils import requires_auth
from dms.utils.logging_utils import log_error, log_user_action
from dms.utils.serializers import model_to_dict, page_args

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

EDIT_ROLES = ["admin", "manager", "office_staff"]
TOTAL_FIELDS = ("sub_total", "vat_at_20", "total", "balance_due")


def serialize_invoice(invoice, include_children=True):
    extra = {}
    if include_children:
        extra["items"] = [model_to_dict(item, exclude=("invoice_id",)) for item in invoice.items]
        extra["condition"] = model_to_dict(invoice.condition, exclude=("invoice_id",)) if invoice.condition else None
    return model_to_dict(invoice, extra=extra)


def _invoice_query(session):
    return session.query(Invoice).options(selectinload(Invoice.items), selectinload(Invoice.condition))


def _set_items(invoice, items):
    invoice.items = [InvoiceItem(**item) for item in items]


def _set_condition(invoice, condition):
    if invoice.condition is None:
        invoice.condition = VehicleCondition(**condition)
    else:
        for field, value in condition.items():
            setattr(invoice.condition, field, value)


@invoices_bp.route("", methods=["GET"])
@invoices_bp.route("/", methods=["GET"])
@requires_auth()
async def list_invoices():
    session = SessionLocal()
    try:
        page, per_page = page_args(request.args)
        query = session.query(Invoice)
        q = (request.args.get("q") or "").strip()
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                Invoice.invoice_no.ilike(pattern),
                Invoice.registration.ilike(pattern),
                Invoice.make.ilike(pattern),
                Invoice.model.ilike(pattern),
                Invoice.purchased_by.ilike(pattern),
            ))

        total = query.count()
        invoices = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(
            (page - 1) * per_page).limit(per_page).all()

        response = jsonify({
            "invoices": [serialize_invoice(i, include_children=False) for i in invoices],
            "total": total,
            "page": page,
            "per_page": per_page,
        })
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@requires_auth()
async def get_invoice(invoice_id):
    session = SessionLocal()
    try:
        invoice = _invoice_query(session).filter(Invoice.id == invoice_id).first()
        if not invoice:
            return jsonify({"error": "Invoice not found"}), 404
        response = jsonify(serialize_invoice(invoice))
        response.headers["Cache-Control"] = "no-store"
        return response
    finally:
        session.close()


@invoices_bp.route("", methods=["POST"])
@invoices_bp.route("/", methods=["POST"])
@requires_auth(roles=EDIT_ROLES)
async def create_invoice():
    try:
        data = InvoiceCreateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    values = data.model_dump(exclude={"items", "condition"})
    items = [item.model_dump() for item in data.items]
    values.update(compute_invoice_totals(items, values))

    session = SessionLocal()
    try:
        if session.query(Invoice.id).filter(Invoice.invoice_no == data.invoice_no).first():
            return jsonify({"error": "Invoice number already exists"}), 409

        invoice = Invoice(**values)
        _set_items(invoice, items)
        if data.condition is not None:
            _set_condition(invoice, data.condition.model_dump())
        session.add(invoice)
        session.commit()

        invoice = _invoice_query(session).filter(Invoice.id == invoice.id).one()
        log_user_action("created", "invoice", invoice.id, invoice_no=invoice.invoice_no)
        return jsonify(serialize_invoice(invoice)), 201
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "Invoice number already exists"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to create invoice")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@invoices_bp.route("/<int:invoice_id>", methods=["PUT"])
@requires_auth(roles=EDIT_ROLES)
async def update_invoice(invoice_id):
    try:
        data = InvoiceUpdateSchema.model_validate(await request.get_json() or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.errors(include_context=False)}), 400

    changes = data.model_dump(exclude_unset=True, exclude={"items", "condition"})
    if changes.get("invoice_no") is None:
        changes.pop("invoice_no", None)

    session = SessionLocal()
    try:
        invoice = _invoice_query(session).filter(Invoice.id == invoice_id).first()
        if not invoice:
            return jsonify({"error": "Invoice not found"}), 404
        if changes.get("invoice_no") and changes["invoice_no"] != invoice.invoice_no:
            taken = session.query(Invoice.id).filter(Invoice.invoice_no == changes["invoice_no"]).first()
            if taken:
                return jsonify({"error": "Invoice number already exists"}), 409

        for field, value in changes.items():
            setattr(invoice, field, value)

        if data.items is not None:
            items = [item.model_dump() for item in data.items]
            _set_items(invoice, items)
            # New lines re-derive any totals the caller did not send
            supplied = {field: changes.get(field) for field in TOTAL_FIELDS}
            supplied["deposit_paid"] = invoice.deposit_paid
            for field, amount in compute_invoice_totals(items, supplied).items():
                setattr(invoice, field, amount)
        elif "deposit_paid" in changes and "balance_due" not in changes:
            supplied = {field: getattr(invoice, field) for field in ("sub_total", "vat_at_20", "total")}
            supplied["deposit_paid"] = invoice.deposit_paid
            invoice.balance_due = compute_invoice_totals([], supplied)["balance_due"]

        if data.condition is not None:
            _set_condition(invoice, data.condition.model_dump(exclude_unset=True))

        session.commit()

        invoice = _invoice_query(session).filter(Invoice.id == invoice_id).one()
        return jsonify(serialize_invoice(invoice))
    except IntegrityError:
        session.rollback()
        return jsonify({"error": "Invoice number already exists"}), 409
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to update invoice")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@requires_auth(roles=["admin", "manager"])
async def delete_invoice(invoice_id):
    session = SessionLocal()
    try:
        invoice = session.get(Invoice, invoice_id)
        if not invoice:
            return jsonify({"error": "Invoice not found"}), 404
        session.delete(invoice)
        session.commit()
        log_user_action("deleted", "invoice", invoice_id)
        return jsonify({"message": "Invoice deleted"})
    except SQLAlchemyError as e:
        session.rollback()
        log_error(e, "Failed to delete invoice")
        return jsonify({"error": "Server error"}), 500
    finally:
        session.close()
