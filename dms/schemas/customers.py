"""
Pydantic validation schemas for customers and their vehicle purchases.
"""

from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator

from dms.schemas.common import Money, Timestamp, OptionalText


def _normalize_blank(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CustomerCreateSchema(BaseModel):
    """Schema for creating a customer via POST /api/customers"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: OptionalText = Field(None, max_length=30)
    mobile: OptionalText = Field(None, max_length=30)
    address: OptionalText = Field(None, max_length=255)
    city: OptionalText = Field(None, max_length=100)
    county: OptionalText = Field(None, max_length=100)
    postcode: OptionalText = Field(None, max_length=20)
    notes: OptionalText = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value):
        return _normalize_blank(value)

    @field_validator("postcode")
    @classmethod
    def uppercase_postcode(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class CustomerUpdateSchema(CustomerCreateSchema):
    """Schema for updating a customer via PUT /api/customers/{id}"""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)


class CustomerPurchaseCreateSchema(BaseModel):
    """POST /api/customers/{id}/purchases"""

    model_config = ConfigDict(str_strip_whitespace=True)

    vehicle_id: int = Field(..., gt=0)
    salesperson_id: Optional[int] = Field(None, gt=0)
    purchase_date: Timestamp = Field(..., description="Date the customer bought the vehicle")
    purchase_price: Money = Field(..., description="Agreed sale price")
    finance_amount: Money = None
    deposit_amount: Money = None
    trade_in_value: Money = None
    finance_provider: OptionalText = Field(None, max_length=100)
    finance_type: OptionalText = Field(None, max_length=50)
    payment_method: OptionalText = Field(None, max_length=50)
    warranty_included: bool = False
    notes: OptionalText = None

    @field_validator("purchase_date", "purchase_price")
    @classmethod
    def required_value(cls, value):
        if value is None:
            raise ValueError("is required")
        return value


class CustomerPurchaseUpdateSchema(BaseModel):
    """PUT /api/customer-purchases/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True)

    vehicle_id: Optional[int] = Field(None, gt=0)
    salesperson_id: Optional[int] = Field(None, gt=0)
    purchase_date: Timestamp = None
    purchase_price: Money = None
    finance_amount: Money = None
    deposit_amount: Money = None
    trade_in_value: Money = None
    finance_provider: OptionalText = Field(None, max_length=100)
    finance_type: OptionalText = Field(None, max_length=50)
    payment_method: OptionalText = Field(None, max_length=50)
    warranty_included: Optional[bool] = None
    notes: OptionalText = None
