"""
Pydantic validation schemas for generated invoices and uploaded
purchase/sales invoice documents.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.constants import DOCUMENT_STATUS_OPTIONS, SELLER_TYPES
from dms.schemas.common import Money, Timestamp, OptionalText, StrList, check_option


class InvoiceItemSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1)
    qty: Optional[int] = Field(None, ge=0)
    unit_price: Money = None
    actual_price: Money = None


class VehicleConditionSchema(BaseModel):
    """Inspection sheet: panel ratings 0-5 plus free text."""

    model_config = ConfigDict(str_strip_whitespace=True)

    front_paint: int = Field(0, ge=0, le=5)
    front_rust_dust: int = Field(0, ge=0, le=5)
    front_dent: int = Field(0, ge=0, le=5)
    rear_paint: int = Field(0, ge=0, le=5)
    rear_rust_dust: int = Field(0, ge=0, le=5)
    rear_dent: int = Field(0, ge=0, le=5)
    left_paint: int = Field(0, ge=0, le=5)
    left_rust_dust: int = Field(0, ge=0, le=5)
    left_dent: int = Field(0, ge=0, le=5)
    right_paint: int = Field(0, ge=0, le=5)
    right_rust_dust: int = Field(0, ge=0, le=5)
    right_dent: int = Field(0, ge=0, le=5)
    top_paint: int = Field(0, ge=0, le=5)
    top_rust_dust: int = Field(0, ge=0, le=5)
    top_dent: int = Field(0, ge=0, le=5)
    wheels_front_left: int = Field(0, ge=0, le=5)
    wheels_front_right: int = Field(0, ge=0, le=5)
    wheels_rear_left: int = Field(0, ge=0, le=5)
    wheels_rear_right: int = Field(0, ge=0, le=5)
    windscreen_chipped: bool = False
    additional_comments: OptionalText = None
    inspection_snapshot: Optional[Dict[str, Any]] = None


class InvoiceUpdateSchema(BaseModel):
    """Schema for PUT /api/invoices/{id}. Supplying ``items`` replaces all items."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    invoice_no: Optional[str] = Field(None, min_length=1, max_length=50)
    tax_point: OptionalText = Field(None, max_length=50)
    check_no: OptionalText = Field(None, max_length=50)
    invoice_name_address: OptionalText = None
    collection_address: OptionalText = None
    issued_by: OptionalText = Field(None, max_length=200)
    invoiced_by: OptionalText = Field(None, max_length=200)
    inspection_image_url: OptionalText = Field(None, max_length=1024)

    make: OptionalText = Field(None, max_length=100)
    model: OptionalText = Field(None, max_length=100)
    chassis_no: OptionalText = Field(None, max_length=50)
    registration: OptionalText = Field(None, max_length=20)
    purchased_by: OptionalText = Field(None, max_length=200)
    mot_end: Timestamp = None
    mileage: Optional[int] = Field(None, ge=0)
    dor: OptionalText = Field(None, max_length=20)
    colour: OptionalText = Field(None, max_length=50)
    interior_colour: OptionalText = Field(None, max_length=50)
    purchase_date: Timestamp = None
    collection_date: Timestamp = None

    bank_name: OptionalText = Field(None, max_length=100)
    account_number: OptionalText = Field(None, max_length=20)
    sort_code: OptionalText = Field(None, max_length=10)
    ref: OptionalText = Field(None, max_length=100)
    acc_name: OptionalText = Field(None, max_length=200)

    sub_total: Money = None
    vat_at_20: Money = None
    total: Money = None
    deposit_paid: Money = None
    balance_due: Money = None

    description_of_goods: OptionalText = None
    notes: OptionalText = None

    items: Optional[List[InvoiceItemSchema]] = None
    condition: Optional[VehicleConditionSchema] = None


class InvoiceCreateSchema(InvoiceUpdateSchema):
    """Schema for POST /api/invoices"""

    invoice_no: str = Field(..., min_length=1, max_length=50)
    items: List[InvoiceItemSchema] = Field(default_factory=list)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _form_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return value


class PurchaseInvoiceMetaSchema(BaseModel):
    """Form fields sent with a purchase invoice upload, or JSON for updates."""

    model_config = ConfigDict(str_strip_whitespace=True)

    buyer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: OptionalText = None
    registration: OptionalText = Field(None, max_length=20)
    purchase_date: Timestamp = None
    make: OptionalText = Field(None, max_length=100)
    model: OptionalText = Field(None, max_length=100)
    seller_type: OptionalText = None
    estimated_collection_date: Timestamp = None
    outstanding_finance: Optional[bool] = None
    part_exchange: Optional[bool] = None
    tags: StrList = None
    status: Optional[str] = None

    @field_validator("outstanding_finance", "part_exchange", mode="before")
    @classmethod
    def parse_form_bool(cls, value):
        return _form_bool(_blank_to_none(value))

    @field_validator("seller_type")
    @classmethod
    def validate_seller_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, SELLER_TYPES, "seller_type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, DOCUMENT_STATUS_OPTIONS, "status")

    @field_validator("registration")
    @classmethod
    def uppercase_registration(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class SalesInvoiceMetaSchema(BaseModel):
    """Form fields sent with a sales invoice upload, or JSON for updates."""

    model_config = ConfigDict(str_strip_whitespace=True)

    seller_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    registration: OptionalText = Field(None, max_length=20)
    date_of_sale: Timestamp = None
    delivery_collection: OptionalText = Field(None, max_length=20)
    make: OptionalText = Field(None, max_length=100)
    model: OptionalText = Field(None, max_length=100)
    notes: OptionalText = None
    paid_in_full: Optional[bool] = None
    finance: Optional[bool] = None
    part_exchange: Optional[bool] = None
    documents_to_sign: Optional[bool] = None
    tags: StrList = None
    status: Optional[str] = None

    @field_validator("paid_in_full", "finance", "part_exchange", "documents_to_sign", mode="before")
    @classmethod
    def parse_form_bool(cls, value):
        return _form_bool(_blank_to_none(value))

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, DOCUMENT_STATUS_OPTIONS, "status")

    @field_validator("registration")
    @classmethod
    def uppercase_registration(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value
