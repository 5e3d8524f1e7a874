from decimal import Decimal

import pytest

from dms.models import Vehicle
from dms.services.financials import (
    apply_financials, calculate_financials, is_sold, parse_money, parse_money_or_none,
)


@pytest.mark.parametrize("raw, expected", [
    ("£12,345.50", Decimal("12345.50")),
    (" 1 000 ", Decimal("1000")),
    (250, Decimal("250")),
    (Decimal("9.99"), Decimal("9.99")),
    ("-400", Decimal("-400")),
])
def test_parse_money_strips_stock_book_noise(raw, expected):
    assert parse_money(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "null", "undefined", "NaN", "abc", True])
def test_parse_money_or_none_rejects_blank_and_garbage(raw):
    assert parse_money_or_none(raw) is None
    assert parse_money(raw) == Decimal("0")


def test_is_sold_ignores_case_and_whitespace():
    assert is_sold(" sold ")
    assert is_sold("SOLD")
    assert not is_sold("Stock")
    assert not is_sold(None)


def test_gross_profit_only_counts_for_sold_vehicles():
    values = {
        "purchase_cash": "£10,000",
        "purchase_fees": "250.00",
        "vat": 50,
        "bank_payment": "12,000",
        "cash_payment": "500",
        "parts_cost": "100",
        "paint_labour_costs": "£75.50",
        "warranty_costs": None,
    }

    in_stock = calculate_financials({**values, "sales_status": "Stock"})
    assert in_stock["purchase_price_total"] == Decimal("10300.00")
    assert in_stock["total_sale_price"] == Decimal("12500.00")
    assert in_stock["total_gp"] == Decimal("0.00")
    assert in_stock["adj_gp"] == Decimal("-175.50")

    sold = calculate_financials({**values, "sales_status": "Sold"})
    assert sold["total_gp"] == Decimal("2200.00")
    assert sold["adj_gp"] == Decimal("2024.50")


def test_apply_financials_overwrites_supplied_totals():
    vehicle = Vehicle(
        sales_status="Sold",
        purchase_px_value=Decimal("1000"),
        purchase_bank_transfer=Decimal("4000"),
        finance_payment=Decimal("6000"),
        purchase_price_total=Decimal("1"),
        total_gp=Decimal("999999"),
    )

    totals = apply_financials(vehicle)

    assert vehicle.purchase_price_total == Decimal("5000.00")
    assert vehicle.total_sale_price == Decimal("6000.00")
    assert vehicle.total_gp == Decimal("1000.00")
    assert totals["adj_gp"] == Decimal("1000.00")
