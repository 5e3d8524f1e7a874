"""
Pydantic validation schemas for Lead entity.
"""

from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator
from dms.constants import (
    PIPELINE_STAGES, LEAD_QUALITY_OPTIONS, PRIORITY_OPTIONS, LOST_REASON_OPTIONS,
    FINANCE_PREFERENCE_OPTIONS,
)
from dms.schemas.common import Money, Timestamp, OptionalText, check_option


class LeadCreateSchema(BaseModel):
    """Schema for creating a new lead via POST /api/leads"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    # Required fields
    first_name: str = Field(..., min_length=1, max_length=100, description="Lead first name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Lead surname")
    lead_source: str = Field(..., min_length=1, max_length=50,
                             description="Where the lead came from, e.g. AutoTrader or Walk-in")

    # Contact
    email: Optional[EmailStr] = Field(None, description="Contact email address")
    primary_phone: OptionalText = Field(None, max_length=30, description="Primary phone number")
    secondary_phone: OptionalText = Field(None, max_length=30, description="Secondary phone number")

    # Vehicle interest
    assigned_vehicle_id: Optional[int] = Field(None, gt=0, description="Vehicle the lead is interested in")
    vehicle_interests: OptionalText = Field(None, description="Free text description of wanted vehicles")
    budget_min: Money = None
    budget_max: Money = None
    finance_required: bool = False
    trade_in_vehicle: OptionalText = Field(None, max_length=255)
    trade_in_value: Money = None
    part_exchange_registration: OptionalText = Field(None, max_length=20)
    part_exchange_mileage: OptionalText = Field(None, max_length=20)
    part_exchange_damage: OptionalText = None
    part_exchange_colour: OptionalText = Field(None, max_length=50)
    finance_preference_type: OptionalText = None

    # Pipeline
    pipeline_stage: str = Field("new", description="Pipeline stage")
    lead_quality: str = Field("unqualified", description="Lead temperature")
    priority: str = Field("medium")
    assigned_salesperson_id: Optional[int] = Field(None, gt=0)
    lost_reason: OptionalText = None

    next_follow_up_date: Timestamp = None
    notes: OptionalText = None
    internal_notes: OptionalText = None
    marketing_consent: bool = False

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("pipeline_stage")
    @classmethod
    def validate_stage(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PIPELINE_STAGES, "pipeline_stage")

    @field_validator("lead_quality")
    @classmethod
    def validate_quality(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, LEAD_QUALITY_OPTIONS, "lead_quality")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PRIORITY_OPTIONS, "priority")

    @field_validator("lost_reason")
    @classmethod
    def validate_lost_reason(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, LOST_REASON_OPTIONS, "lost_reason")

    @field_validator("finance_preference_type")
    @classmethod
    def validate_finance_preference(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, FINANCE_PREFERENCE_OPTIONS, "finance_preference_type")


class LeadUpdateSchema(LeadCreateSchema):
    """Schema for updating an existing lead via PUT /api/leads/{id}"""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    lead_source: Optional[str] = Field(None, min_length=1, max_length=50)
    finance_required: Optional[bool] = None
    marketing_consent: Optional[bool] = None
    pipeline_stage: Optional[str] = None
    lead_quality: Optional[str] = None
    priority: Optional[str] = None


class LeadStageSchema(BaseModel):
    """Schema for moving a lead along the pipeline"""

    model_config = ConfigDict(str_strip_whitespace=True)

    pipeline_stage: str = Field(..., description="Target pipeline stage")
    lost_reason: OptionalText = None

    @field_validator("pipeline_stage")
    @classmethod
    def validate_stage(cls, value: str) -> str:
        return check_option(value, PIPELINE_STAGES, "pipeline_stage")

    @field_validator("lost_reason")
    @classmethod
    def validate_lost_reason(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, LOST_REASON_OPTIONS, "lost_reason")


class LeadAssignVehicleSchema(BaseModel):
    """Schema for linking a lead to a vehicle; null clears the link"""

    assigned_vehicle_id: Optional[int] = Field(None, gt=0, description="Vehicle ID to assign")

    model_config = ConfigDict(validate_assignment=True)
