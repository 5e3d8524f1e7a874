"""
Invoice arithmetic and document file checks.
"""
import os
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from dms.constants import ALLOWED_DOCUMENT_TYPES
from dms.services.financials import ZERO, parse_money, round_money

VAT_RATE = Decimal("0.20")

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


def item_amount(item: Dict[str, Any]) -> Decimal:
    """Line value: the explicit actual price, else qty x unit price."""
    if item.get("actual_price") is not None:
        return parse_money(item["actual_price"])
    qty = item.get("qty") or 0
    return parse_money(item.get("unit_price")) * qty


def compute_invoice_totals(items: Iterable[Dict[str, Any]], values: Dict[str, Any]) -> Dict[str, Decimal]:
    """
    Fill sub_total, vat_at_20, total and balance_due from the items wherever
    ``values`` leaves them unset. Supplied figures win and feed the later sums.
    """
    totals = {}

    sub_total = values.get("sub_total")
    if sub_total is None:
        sub_total = sum((item_amount(item) for item in items), ZERO)
    totals["sub_total"] = round_money(parse_money(sub_total))

    vat = values.get("vat_at_20")
    if vat is None:
        vat = totals["sub_total"] * VAT_RATE
    totals["vat_at_20"] = round_money(parse_money(vat))

    total = values.get("total")
    if total is None:
        total = totals["sub_total"] + totals["vat_at_20"]
    totals["total"] = round_money(parse_money(total))

    balance = values.get("balance_due")
    if balance is None:
        balance = totals["total"] - parse_money(values.get("deposit_paid"))
    totals["balance_due"] = round_money(parse_money(balance))
    return totals


def document_type(filename: Optional[str]) -> Optional[str]:
    """Lower-case extension when it is an accepted document type, else None."""
    if not filename:
        return None
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    return ext if ext in ALLOWED_DOCUMENT_TYPES else None


def content_type_for(doc_type: str) -> str:
    return CONTENT_TYPES.get(doc_type, "application/octet-stream")
