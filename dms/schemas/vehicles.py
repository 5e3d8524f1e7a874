"""
Pydantic validation schemas for the vehicle master.

Money fields accept numbers or stock book strings such as "£12,500.00".
Derived totals (purchase_price_total, total_sale_price, total_gp, adj_gp)
are accepted for compatibility but always recomputed on save.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.schemas.common import Money, Timestamp, OptionalText
from dms.services.vehicle_import import parse_vehicle_date, parse_whole_number


class VehicleUpdateSchema(BaseModel):
    """Schema for updating a vehicle via PUT /api/vehicles/{id}; every field optional."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    stock_number: OptionalText = Field(None, max_length=50, description="Stock book number")
    department: OptionalText = Field(None, max_length=50)
    buyer: OptionalText = Field(None, max_length=100)
    sales_status: OptionalText = Field(None, max_length=30, description="Stock, Sold or Autolab")
    collection_status: OptionalText = Field(None, max_length=30, description="On Site or AWD")
    registration: OptionalText = Field(None, max_length=20)
    make: OptionalText = Field(None, max_length=100)
    model: OptionalText = Field(None, max_length=100)
    derivative: OptionalText = Field(None, max_length=255)
    colour: OptionalText = Field(None, max_length=50)
    mileage: Optional[int] = Field(None, ge=0)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    date_of_registration: Timestamp = None
    chassis_number: OptionalText = Field(None, max_length=50)

    purchase_invoice_date: Timestamp = None
    purchase_px_value: Money = None
    purchase_cash: Money = None
    purchase_fees: Money = None
    purchase_finance_settlement: Money = None
    purchase_bank_transfer: Money = None
    vat: Money = None
    purchase_price_total: Money = None

    sale_date: Timestamp = None
    bank_payment: Money = None
    finance_payment: Money = None
    finance_settlement: Money = None
    px_value: Money = None
    vat_payment: Money = None
    cash_payment: Money = None
    total_sale_price: Money = None
    cash_o_b: Money = None
    px_o_r_value: Money = None
    road_tax: Money = None
    dvla: Money = None
    alloy_insurance: Money = None
    paint_insurance: Money = None
    gap_insurance: Money = None

    parts_cost: Money = None
    paint_labour_costs: Money = None
    warranty_costs: Money = None
    total_gp: Money = None
    adj_gp: Money = None
    dfc_outstanding_amount: Money = None

    payment_notes: OptionalText = None
    customer_first_name: OptionalText = Field(None, max_length=100)
    customer_surname: OptionalText = Field(None, max_length=100)

    @field_validator("mileage", "year", mode="before")
    @classmethod
    def parse_whole_numbers(cls, value):
        if value is None or isinstance(value, int):
            return value
        if isinstance(value, str) and not value.strip():
            return None
        parsed = parse_whole_number(value)
        if parsed is None:
            raise ValueError("must be a whole number")
        return parsed

    @field_validator("date_of_registration", "purchase_invoice_date", "sale_date", mode="before")
    @classmethod
    def parse_stock_book_dates(cls, value):
        # Stock book dates are day-first (e.g. 05-Mar-24)
        if value is None or not isinstance(value, str) or not value.strip():
            return value
        parsed = parse_vehicle_date(value)
        if parsed is None:
            raise ValueError("must be a valid date")
        return parsed


class VehicleCreateSchema(VehicleUpdateSchema):
    """Schema for creating a vehicle via POST /api/vehicles"""

    sales_status: OptionalText = Field("Stock", max_length=30)


class VehicleStatusSchema(BaseModel):
    """PATCH /api/vehicles/{id}/status"""

    model_config = ConfigDict(str_strip_whitespace=True)

    sales_status: OptionalText = Field(None, max_length=30)
    collection_status: OptionalText = Field(None, max_length=30)
    sale_date: Timestamp = None


class VehicleMakeSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class VehicleModelSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
