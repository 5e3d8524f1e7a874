"""
Stock book CSV import and export.

The stock book is maintained in a spreadsheet; its column headers are mapped
onto vehicle columns by ``CSV_HEADER_MAP``. Imports upsert on stock number and
recompute the derived money fields for every row.
"""
import csv
import io
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser
from sqlalchemy.exc import SQLAlchemyError

from dms.models import Vehicle, VEHICLE_DATE_FIELDS, VEHICLE_MONEY_FIELDS
from dms.services.financials import apply_financials, is_sold, parse_money_or_none, DERIVED_FIELDS
from dms.utils.logging_utils import logger

CSV_HEADER_MAP = {
    "Stock No.": "stock_number",
    "Dept.": "department",
    "Buyer": "buyer",
    "Sales Status": "sales_status",
    "Collection Status": "collection_status",
    "Registration": "registration",
    "Make": "make",
    "Model": "model",
    "Derivative": "derivative",
    "Colour": "colour",
    "Mileage": "mileage",
    "Year": "year",
    "D.O.R": "date_of_registration",
    "Chassis Number": "chassis_number",
    "Purchase Invoice Date": "purchase_invoice_date",
    "Purchase PX Value": "purchase_px_value",
    "Purchase Cash": "purchase_cash",
    "Purchase Fees": "purchase_fees",
    "Purchase Finance Settlement": "purchase_finance_settlement",
    "Purchase Bank Transfer": "purchase_bank_transfer",
    "VAT": "vat",
    "Purchase Price Total": "purchase_price_total",
    "Sale Date": "sale_date",
    "Bank Payment": "bank_payment",
    "Finance Payment": "finance_payment",
    "Finance Settlement": "finance_settlement",
    "PX Value": "px_value",
    "Vat Payment": "vat_payment",
    "Cash Payment": "cash_payment",
    "Total Sale Price": "total_sale_price",
    "Cash O/B": "cash_o_b",
    "PX O/R Value": "px_o_r_value",
    "Road Tax": "road_tax",
    "DVLA": "dvla",
    "Alloy Insurance": "alloy_insurance",
    "Paint Insurance": "paint_insurance",
    "Paint Insrance": "paint_insurance",  # misspelt in older stock books
    "Gap Insurance": "gap_insurance",
    "Parts Cost": "parts_cost",
    "Paint & Labour Costs": "paint_labour_costs",
    "Paint &  Labour Costs": "paint_labour_costs",
    "Warranty Costs": "warranty_costs",
    "Total GP (£'s)": "total_gp",
    "ADJ GP (£'s)": "adj_gp",
    "DFC Outstanding Amount": "dfc_outstanding_amount",
    "Payment Notes": "payment_notes",
    "Customer First Name": "customer_first_name",
    "Customer  First Name": "customer_first_name",
    "Customer Surname": "customer_surname",
    "Customer  Surname": "customer_surname",
}

# First label wins, so exports use the canonical spelling
EXPORT_COLUMNS = []
_exported = set()
for _label, _field in CSV_HEADER_MAP.items():
    if _field not in _exported:
        EXPORT_COLUMNS.append((_field, _label))
        _exported.add(_field)

VEHICLE_COLUMNS = {column.name for column in Vehicle.__table__.columns} - {"id", "created_at", "updated_at"}
INTEGER_FIELDS = {"mileage", "year"}

AUTOLAB_INDICATORS = ("autolab", "auto lab", "auto-lab", "al-")

_DD_MMM_YY = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{2}|\d{4})$")
_YYYY_MM_DD = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_BLANKS = ("", "null", "undefined", "none", "nan")


class CsvFormatError(ValueError):
    """Raised when CSV text has no header row."""


def header_to_field(header: str) -> str:
    """Map a stock book header to a vehicle column name."""
    clean = header.replace("\ufeff", "").strip().strip('"').strip()
    if clean in CSV_HEADER_MAP:
        return CSV_HEADER_MAP[clean]
    return _NON_ALNUM.sub("_", clean.lower())


def parse_csv_text(text: str) -> List[Dict[str, Optional[str]]]:
    """
    Split stock book CSV text into row dicts keyed by vehicle column name.

    Blank lines are skipped; quoted fields may contain commas and ``""``
    escapes. Values are stripped and empty values become None.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        raise CsvFormatError("Empty CSV file")

    fields = [header_to_field(header) for header in rows[0]]
    parsed = []
    for values in rows[1:]:
        record = {}
        for index, field in enumerate(fields):
            value = values[index].strip() if index < len(values) else ""
            record[field] = value or None
        parsed.append(record)
    return parsed


def parse_vehicle_date(value: Any) -> Optional[datetime]:
    """
    Parse stock book dates.

    Accepts DD-MMM-YY (two digit years below 50 are 20xx, otherwise 19xx),
    YYYY-MM-DD, ISO timestamps, and other day-first formats. Years outside
    1900-2100 are treated as missing.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.lower() in _BLANKS:
            return None
        try:
            match = _DD_MMM_YY.match(text)
            if match:
                day, month, year = match.groups()
                if len(year) == 2:
                    year = f"20{year}" if int(year) < 50 else f"19{year}"
                parsed = datetime.strptime(f"{day}-{month.title()}-{year}", "%d-%b-%Y")
            elif _YYYY_MM_DD.match(text):
                parsed = datetime.strptime(text, "%Y-%m-%d")
            elif "T" in text:
                parsed = date_parser.isoparse(text)
            else:
                parsed = date_parser.parse(text, dayfirst=True)
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if not 1900 < parsed.year < 2100:
        return None
    return parsed


def parse_whole_number(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).replace(",", "").strip()
    match = re.match(r"^-?\d+", text)
    return int(match.group(0)) if match else None


def coerce_vehicle_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Convert raw row values into column-typed values. Unknown keys are dropped."""
    data = {}
    for field, value in row.items():
        if field not in VEHICLE_COLUMNS:
            continue
        if field in INTEGER_FIELDS:
            data[field] = parse_whole_number(value)
        elif field in VEHICLE_DATE_FIELDS:
            data[field] = parse_vehicle_date(value)
        elif field in VEHICLE_MONEY_FIELDS:
            data[field] = parse_money_or_none(value)
        elif value is None:
            data[field] = None
        else:
            text = str(value).strip()
            data[field] = text if text.lower() not in _BLANKS else None
    return data


def normalise_statuses(data: Dict[str, Any]) -> Dict[str, Any]:
    """Bring free-typed status and department values onto their canonical spelling."""
    sales_status = data.get("sales_status")
    if sales_status:
        status = sales_status.lower().strip()
        if status == "sold":
            data["sales_status"] = "Sold"
        elif status == "stock":
            data["sales_status"] = "Stock"
        elif "autolab" in status or status in ("auto lab", "auto-lab"):
            data["sales_status"] = "Autolab"

    for field in ("department", "buyer", "payment_notes", "stock_number"):
        value = data.get(field)
        if value and any(indicator in value.lower() for indicator in AUTOLAB_INDICATORS):
            data["sales_status"] = "Autolab"
            break

    collection_status = data.get("collection_status")
    if collection_status:
        status = collection_status.lower().strip()
        if status in ("on site", "onsite", "on-site"):
            data["collection_status"] = "On Site"
        elif status in ("awd", "awaiting delivery"):
            data["collection_status"] = "AWD"

    department = data.get("department")
    if department and department.upper().strip() in ("AL", "ALS", "MSR"):
        data["department"] = department.upper().strip()

    return data


def import_vehicles(session, rows: Iterable[Any]) -> Dict[str, Any]:
    """
    Upsert vehicles by stock number. The caller commits.

    Each row is written inside its own savepoint, so a row the database
    refuses is reported in ``errors`` without undoing the rows around it.
    Derived money columns in the input are ignored and recomputed.
    ``sold`` lists the vehicles this import moved into Sold.
    """
    imported, updated = [], []
    errors = []
    seen = {}
    was_sold = {}

    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            errors.append({"row": index, "error": "Row must be an object"})
            continue

        data = normalise_statuses(coerce_vehicle_row(row))
        if not any(value is not None for value in data.values()):
            errors.append({"row": index, "error": "Row has no vehicle fields"})
            continue
        for field in DERIVED_FIELDS:
            data.pop(field, None)

        stock_number = data.get("stock_number")
        vehicle = seen.get(stock_number) if stock_number else None
        if vehicle is None and stock_number:
            vehicle = session.query(Vehicle).filter(Vehicle.stock_number == stock_number).first()
        if vehicle is not None and vehicle not in was_sold:
            was_sold[vehicle] = is_sold(vehicle.sales_status)

        try:
            with session.begin_nested():
                if vehicle is None:
                    vehicle = Vehicle(**data)
                    session.add(vehicle)
                else:
                    for field, value in data.items():
                        setattr(vehicle, field, value)
                apply_financials(vehicle)
                session.flush()
        except SQLAlchemyError as e:
            logger.warning(f"[Import] Row {index} rejected: {e.__class__.__name__}")
            errors.append({"row": index, "error": f"Could not save row: {getattr(e, 'orig', None) or e}"})
            continue

        if vehicle not in was_sold:
            was_sold[vehicle] = False
            imported.append(vehicle)
        elif vehicle not in updated and vehicle not in imported:
            updated.append(vehicle)
        if stock_number:
            seen[stock_number] = vehicle

    vehicles = imported + updated
    logger.info(f"[Import] {len(imported)} new, {len(updated)} updated, {len(errors)} failed")
    return {
        "imported": len(imported),
        "updated": len(updated),
        "failed": len(errors),
        "errors": errors,
        "vehicles": vehicles,
        "sold": [v for v in vehicles if is_sold(v.sales_status) and not was_sold[v]],
    }


def _export_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value)


def export_vehicles_csv(vehicles: Iterable[Vehicle]) -> str:
    """Render vehicles as stock book CSV with the canonical header labels."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for vehicle in vehicles:
        writer.writerow([_export_value(getattr(vehicle, field)) for field, _ in EXPORT_COLUMNS])
    return output.getvalue()
