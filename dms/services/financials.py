"""
Derived money fields on a vehicle record.

    purchase_price_total = purchase_px_value + purchase_cash + purchase_fees
                           + purchase_finance_settlement + purchase_bank_transfer + vat
    total_sale_price     = bank_payment + finance_payment + finance_settlement
                           + px_value + vat_payment + cash_payment
    total_gp             = total_sale_price - purchase_price_total   (only when sold)
    adj_gp               = total_gp - parts_cost - paint_labour_costs - warranty_costs

Inputs may be numbers or stock-book strings such as "£12,345.00"; anything
blank or unparseable counts as zero.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

PURCHASE_COMPONENTS = [
    "purchase_px_value",
    "purchase_cash",
    "purchase_fees",
    "purchase_finance_settlement",
    "purchase_bank_transfer",
    "vat",
]

SALE_COMPONENTS = [
    "bank_payment",
    "finance_payment",
    "finance_settlement",
    "px_value",
    "vat_payment",
    "cash_payment",
]

COST_COMPONENTS = ["parts_cost", "paint_labour_costs", "warranty_costs"]

DERIVED_FIELDS = ["purchase_price_total", "total_sale_price", "total_gp", "adj_gp"]

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")

_MONEY_NOISE = re.compile(r"[£,\s]")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_money_or_none(value: Any) -> Optional[Decimal]:
    """Parse a money value, returning None for blank or invalid input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)

    text = _MONEY_NOISE.sub("", str(value))
    if not text or text.lower() in ("null", "undefined", "nan"):
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_money(value: Any) -> Decimal:
    amount = parse_money_or_none(value)
    return amount if amount is not None else ZERO


def is_sold(sales_status: Optional[str]) -> bool:
    return bool(sales_status) and str(sales_status).strip().upper() == "SOLD"


def _sum(values: Dict[str, Any], fields) -> Decimal:
    return sum((parse_money(values.get(field)) for field in fields), ZERO)


def calculate_financials(values: Dict[str, Any]) -> Dict[str, Decimal]:
    """Compute the four derived totals from a mapping of vehicle fields."""
    purchase_price_total = _sum(values, PURCHASE_COMPONENTS)
    total_sale_price = _sum(values, SALE_COMPONENTS)

    total_gp = total_sale_price - purchase_price_total if is_sold(values.get("sales_status")) else ZERO
    adj_gp = total_gp - _sum(values, COST_COMPONENTS)

    return {
        "purchase_price_total": round_money(purchase_price_total),
        "total_sale_price": round_money(total_sale_price),
        "total_gp": round_money(total_gp),
        "adj_gp": round_money(adj_gp),
    }


def apply_financials(vehicle) -> Dict[str, Decimal]:
    """Recompute and store the derived totals on a Vehicle instance."""
    values = {
        field: getattr(vehicle, field)
        for field in PURCHASE_COMPONENTS + SALE_COMPONENTS + COST_COMPONENTS + ["sales_status"]
    }
    totals = calculate_financials(values)
    for field, amount in totals.items():
        setattr(vehicle, field, amount)
    return totals
