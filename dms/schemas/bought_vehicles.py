from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.constants import BOUGHT_VEHICLE_STATUS_OPTIONS
from dms.schemas.common import Money, Timestamp, OptionalText, StrList, check_option


class BoughtVehicleUpdateSchema(BaseModel):
    """Schema for PUT /api/bought-vehicles/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    stock_number: Optional[str] = Field(None, min_length=1, max_length=50)
    make: Optional[str] = Field(None, min_length=1, max_length=100)
    model: Optional[str] = Field(None, min_length=1, max_length=100)
    derivative: OptionalText = Field(None, max_length=255)
    colour: OptionalText = Field(None, max_length=50)
    mileage: Optional[int] = Field(None, ge=0)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    registration: OptionalText = Field(None, max_length=20)
    location: OptionalText = Field(None, max_length=255)
    due_in: Timestamp = None
    retail_price_1: Money = None
    retail_price_2: Money = None
    things_to_do: OptionalText = None
    vehicle_images: StrList = None
    status: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def uppercase_status(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, BOUGHT_VEHICLE_STATUS_OPTIONS, "status")

    @field_validator("registration")
    @classmethod
    def uppercase_registration(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class BoughtVehicleCreateSchema(BoughtVehicleUpdateSchema):
    """Schema for POST /api/bought-vehicles"""

    stock_number: str = Field(..., min_length=1, max_length=50)
    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    status: Optional[str] = "AWAITING"
