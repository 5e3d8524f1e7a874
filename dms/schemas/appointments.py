"""
Pydantic validation schemas for showroom appointments.
"""

import re
from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator
from dms.constants import APPOINTMENT_TYPES, APPOINTMENT_STATUS_OPTIONS
from dms.schemas.common import Timestamp, OptionalText, check_option

_HH_MM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_clock_time(value: Optional[str], field_name: str = "time") -> Optional[str]:
    if value is None:
        return value
    if not _HH_MM.match(value):
        raise ValueError(f"{field_name} must be HH:MM (24 hour)")
    return value


class AppointmentCreateSchema(BaseModel):
    """Schema for booking an appointment via POST /api/appointments"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    appointment_date: Timestamp = Field(..., description="Day of the appointment")
    appointment_time: str = Field(..., description="Start time, HH:MM")
    appointment_type: str = Field(..., description="viewing, test_drive, collection, drop_off or other")
    assigned_to_id: Optional[int] = Field(None, gt=0, description="Staff member; defaults to the caller")

    customer_id: Optional[int] = Field(None, gt=0)
    lead_id: Optional[int] = Field(None, gt=0)
    vehicle_id: Optional[int] = Field(None, gt=0)
    status: str = Field("scheduled")
    customer_name: OptionalText = Field(None, max_length=200)
    customer_phone: OptionalText = Field(None, max_length=30)
    customer_email: Optional[EmailStr] = None
    notes: OptionalText = None
    duration_minutes: int = Field(60, gt=0, le=24 * 60)

    @field_validator("appointment_date")
    @classmethod
    def required_date(cls, value):
        if value is None:
            raise ValueError("appointment_date is required")
        return value

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_clock_time(value, "appointment_time")

    @field_validator("appointment_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, APPOINTMENT_TYPES, "appointment_type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, APPOINTMENT_STATUS_OPTIONS, "status")

    @field_validator("customer_email", mode="before")
    @classmethod
    def blank_email(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AppointmentUpdateSchema(AppointmentCreateSchema):
    """Schema for updating an appointment via PUT /api/appointments/{id}"""

    appointment_date: Timestamp = None
    appointment_time: Optional[str] = None
    appointment_type: Optional[str] = None
    status: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)

    @field_validator("appointment_date")
    @classmethod
    def required_date(cls, value):
        return value

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        return validate_clock_time(value, "appointment_time")


class AppointmentStatusSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        return check_option(value, APPOINTMENT_STATUS_OPTIONS, "status")
