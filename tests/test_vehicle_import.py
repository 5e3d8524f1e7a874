from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import DataError

from dms.models import Vehicle
from dms.services.vehicle_import import (
    CsvFormatError,
    export_vehicles_csv,
    header_to_field,
    import_vehicles,
    normalise_statuses,
    parse_csv_text,
    parse_vehicle_date,
    parse_whole_number,
)

STOCK_BOOK = (
    "\ufeffStock No.,Sales Status,Registration,Make,Model,Mileage,Purchase Invoice Date,"
    "Purchase Cash,VAT,Total GP (£'s),Paint Insrance,Payment Notes\n"
    'AL-001,stock,AB12 CDE,BMW,320d,"45,000",03-Mar-24,"£12,000.00",0,999,150,"Paid, in full"\n'
    "\n"
    "SN-002,SOLD,XY65 ZZZ,Audi,A3,12000,2023-11-01,9000,,,,\n"
)


def test_header_to_field_maps_known_and_unknown_headers():
    assert header_to_field("Stock No.") == "stock_number"
    assert header_to_field(' "D.O.R" ') == "date_of_registration"
    assert header_to_field("Paint &  Labour Costs") == "paint_labour_costs"
    assert header_to_field("Some New Column") == "some_new_column"


def test_parse_csv_text_handles_quotes_bom_and_blank_lines():
    rows = parse_csv_text(STOCK_BOOK)

    assert len(rows) == 2
    assert rows[0]["stock_number"] == "AL-001"
    assert rows[0]["mileage"] == "45,000"
    assert rows[0]["payment_notes"] == "Paid, in full"
    assert rows[0]["paint_insurance"] == "150"
    assert rows[1]["vat"] is None


def test_parse_csv_text_rejects_empty_input():
    with pytest.raises(CsvFormatError):
        parse_csv_text("\n\n")


@pytest.mark.parametrize("raw, expected", [
    ("03-Mar-24", datetime(2024, 3, 3)),
    ("15-jan-99", datetime(1999, 1, 15)),
    ("2023-11-01", datetime(2023, 11, 1)),
    ("2024-05-06T10:30:00Z", datetime(2024, 5, 6, 10, 30)),
    ("06/05/2024", datetime(2024, 5, 6)),
])
def test_parse_vehicle_date_formats(raw, expected):
    assert parse_vehicle_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "null", "not a date", "01-Jan-1850"])
def test_parse_vehicle_date_missing_or_out_of_range(raw):
    assert parse_vehicle_date(raw) is None


def test_parse_whole_number():
    assert parse_whole_number("45,000 miles") == 45000
    assert parse_whole_number("n/a") is None
    assert parse_whole_number(7) == 7


def test_normalise_statuses_flags_autolab_rows():
    data = normalise_statuses({
        "sales_status": "stock",
        "stock_number": "AL-77",
        "collection_status": "awaiting delivery",
        "department": "msr",
    })

    assert data["sales_status"] == "Autolab"
    assert data["collection_status"] == "AWD"
    assert data["department"] == "MSR"


def test_import_vehicles_upserts_on_stock_number_and_recomputes_totals(db_session):
    db_session.add(Vehicle(stock_number="SN-002", make="Audi", model="A1"))
    db_session.commit()

    result = import_vehicles(db_session, parse_csv_text(STOCK_BOOK) + ["not a row", {"unknown": "x"}])
    db_session.commit()

    assert result["imported"] == 1
    assert result["updated"] == 1
    assert result["failed"] == 2

    first = db_session.query(Vehicle).filter_by(stock_number="AL-001").one()
    assert first.sales_status == "Autolab"
    assert first.mileage == 45000
    assert first.purchase_invoice_date == datetime(2024, 3, 3)
    assert first.purchase_price_total == Decimal("12000.00")
    # Supplied GP is ignored in favour of the computed figure
    assert first.total_gp == Decimal("0.00")

    second = db_session.query(Vehicle).filter_by(stock_number="SN-002").one()
    assert second.model == "A3"
    assert second.sales_status == "Sold"


def test_import_vehicles_keeps_good_rows_when_one_is_refused(db_session):
    def refuse_long_registration(mapper, connection, target):
        if target.registration and len(target.registration) > 20:
            raise DataError("INSERT INTO vehicles", {}, ValueError("value too long for type character varying(20)"))

    event.listen(Vehicle, "before_insert", refuse_long_registration)
    try:
        result = import_vehicles(db_session, [
            {"stock_number": "OK-1", "registration": "AB12 CDE"},
            {"stock_number": "BAD-1", "registration": "X" * 40},
            {"stock_number": "OK-2", "registration": "CD34 EFG", "sales_status": "sold"},
        ])
        db_session.commit()
    finally:
        event.remove(Vehicle, "before_insert", refuse_long_registration)

    assert result["imported"] == 2
    assert result["failed"] == 1
    assert result["errors"][0]["row"] == 2
    assert "too long" in result["errors"][0]["error"]
    assert [v.stock_number for v in result["sold"]] == ["OK-2"]
    assert sorted(n for (n,) in db_session.query(Vehicle.stock_number)) == ["OK-1", "OK-2"]


def test_export_uses_canonical_headers():
    vehicle = Vehicle(stock_number="SN-9", make="Ford", purchase_invoice_date=datetime(2024, 1, 2, 15, 0))

    text = export_vehicles_csv([vehicle])
    header, row = text.strip().split("\n")

    assert header.startswith("Stock No.,Dept.,Buyer,Sales Status")
    assert "Paint Insurance" in header
    assert "Paint Insrance" not in header
    assert "2024-01-02" in row
    assert row.startswith("SN-9,")
