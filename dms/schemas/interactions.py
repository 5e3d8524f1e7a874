"""
Pydantic validation schemas for Interaction entity.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from dms.constants import INTERACTION_TYPES, INTERACTION_DIRECTIONS, INTERACTION_OUTCOMES, PRIORITY_OPTIONS
from dms.schemas.common import Timestamp, OptionalText, check_option


class InteractionCreateSchema(BaseModel):
    """Schema for creating a new interaction via POST /api/interactions"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    # Required fields
    interaction_type: str = Field(..., description="Channel of the interaction, e.g. phone_call")
    interaction_direction: str = Field(..., description="inbound or outbound")
    interaction_notes: str = Field(..., min_length=1, description="What was discussed")

    # Entity relationships (at least one of lead/customer must be provided)
    lead_id: Optional[int] = Field(None, gt=0, description="Associated lead ID")
    customer_id: Optional[int] = Field(None, gt=0, description="Associated customer ID")
    vehicle_id: Optional[int] = Field(None, gt=0, description="Vehicle discussed")
    user_id: Optional[int] = Field(None, gt=0, description="Staff member; defaults to the caller")

    # Optional fields
    interaction_outcome: OptionalText = Field(None, description="Outcome of the interaction")
    interaction_subject: OptionalText = Field(None, max_length=255, description="Brief subject line")
    follow_up_required: bool = False
    follow_up_date: Timestamp = Field(None, description="Follow-up date and time")
    follow_up_priority: str = Field("medium")
    follow_up_notes: OptionalText = None
    duration_minutes: Optional[int] = Field(None, ge=0)

    @field_validator("interaction_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_TYPES, "interaction_type")

    @field_validator("interaction_direction")
    @classmethod
    def validate_direction(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_DIRECTIONS, "interaction_direction")

    @field_validator("interaction_outcome")
    @classmethod
    def validate_outcome(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_OUTCOMES, "interaction_outcome")

    @field_validator("follow_up_priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PRIORITY_OPTIONS, "follow_up_priority")

    @model_validator(mode="after")
    def require_subject_entity(self):
        if self.lead_id is None and self.customer_id is None:
            raise ValueError("lead_id or customer_id is required")
        return self


class InteractionUpdateSchema(BaseModel):
    """Schema for updating an existing interaction via PUT /api/interactions/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    # All fields optional for updates
    interaction_type: Optional[str] = None
    interaction_direction: Optional[str] = None
    interaction_notes: Optional[str] = Field(None, min_length=1)
    vehicle_id: Optional[int] = Field(None, gt=0)
    interaction_outcome: OptionalText = None
    interaction_subject: OptionalText = Field(None, max_length=255)
    follow_up_required: Optional[bool] = None
    follow_up_date: Timestamp = None
    follow_up_priority: Optional[str] = None
    follow_up_notes: OptionalText = None
    duration_minutes: Optional[int] = Field(None, ge=0)

    @field_validator("interaction_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_TYPES, "interaction_type")

    @field_validator("interaction_direction")
    @classmethod
    def validate_direction(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_DIRECTIONS, "interaction_direction")

    @field_validator("interaction_outcome")
    @classmethod
    def validate_outcome(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, INTERACTION_OUTCOMES, "interaction_outcome")

    @field_validator("follow_up_priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PRIORITY_OPTIONS, "follow_up_priority")
