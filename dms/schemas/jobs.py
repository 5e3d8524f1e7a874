"""
Pydantic validation schemas for logistics jobs, staff schedules, job
progress, vehicle logistics and job templates.
"""

from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.constants import (
    JOB_TYPES, JOB_CATEGORIES, JOB_PRIORITY_OPTIONS, JOB_STATUS_OPTIONS,
    SCHEDULE_TYPES, AVAILABILITY_STATUS_OPTIONS, PROGRESS_STAGES, STAGE_STATUS_OPTIONS,
    LOGISTICS_STATUS_OPTIONS,
)
from dms.schemas.appointments import validate_clock_time
from dms.schemas.common import Money, Timestamp, OptionalText, StrList, check_option


class JobUpdateSchema(BaseModel):
    """Schema for updating a job via PUT /api/jobs/{id}; every field optional."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    job_type: Optional[str] = None
    job_category: Optional[str] = None
    job_priority: Optional[str] = None
    job_status: Optional[str] = None

    vehicle_id: Optional[int] = Field(None, gt=0)
    customer_id: Optional[int] = Field(None, gt=0)
    lead_id: Optional[int] = Field(None, gt=0)
    assigned_to_id: Optional[int] = Field(None, gt=0)
    supervisor_id: Optional[int] = Field(None, gt=0)

    scheduled_date: Timestamp = None
    estimated_duration_hours: Optional[Decimal] = Field(None, ge=0, le=999)

    address_line_1: OptionalText = Field(None, max_length=255)
    address_line_2: OptionalText = Field(None, max_length=255)
    city: OptionalText = Field(None, max_length=100)
    county: OptionalText = Field(None, max_length=100)
    postcode: OptionalText = Field(None, max_length=20)
    contact_name: OptionalText = Field(None, max_length=200)
    contact_phone: OptionalText = Field(None, max_length=30)

    notes: OptionalText = None
    equipment_required: StrList = None
    skills_required: StrList = None

    estimated_cost: Money = None
    actual_cost: Money = None
    hourly_rate: Money = None
    material_costs: Money = None
    external_costs: Money = None
    total_cost: Money = None

    quality_check_required: Optional[bool] = None
    quality_check_completed: Optional[bool] = None
    quality_rating: Optional[int] = Field(None, ge=1, le=5)
    customer_satisfaction_rating: Optional[int] = Field(None, ge=1, le=5)
    completion_notes: OptionalText = None
    issues_encountered: OptionalText = None
    photos_taken: StrList = None
    documents_generated: StrList = None
    parent_job_id: Optional[int] = Field(None, gt=0)
    external_reference: OptionalText = Field(None, max_length=100)

    @field_validator("job_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_TYPES, "job_type")

    @field_validator("job_category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_CATEGORIES, "job_category")

    @field_validator("job_priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_PRIORITY_OPTIONS, "job_priority")

    @field_validator("job_status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_STATUS_OPTIONS, "job_status")


class JobCreateSchema(JobUpdateSchema):
    """Schema for booking a job via POST /api/jobs"""

    job_type: str = Field(..., description="delivery, collection, valuation, ...")
    job_category: str = Field("logistics")
    job_priority: str = Field("medium")
    job_status: str = Field("pending")


class JobStatusSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    job_status: str
    completion_notes: OptionalText = None

    @field_validator("job_status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        return check_option(value, JOB_STATUS_OPTIONS, "job_status")


class JobAssignSchema(BaseModel):
    assigned_to_id: int = Field(..., gt=0, description="User ID to assign the job to")


class StaffScheduleCreateSchema(BaseModel):
    """Schema for POST /api/staff-schedules"""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: int = Field(..., gt=0)
    schedule_date: Timestamp = Field(...)
    schedule_type: str = Field("regular_shift")
    shift_start_time: OptionalText = None
    shift_end_time: OptionalText = None
    break_duration_minutes: int = Field(60, ge=0)
    location: OptionalText = Field(None, max_length=50)
    availability_status: str = Field("available")
    notes: OptionalText = None
    is_recurring: bool = False
    recurring_pattern: OptionalText = Field(None, max_length=20)
    recurring_end_date: Timestamp = None

    @field_validator("schedule_date")
    @classmethod
    def required_date(cls, value):
        if value is None:
            raise ValueError("schedule_date is required")
        return value

    @field_validator("shift_start_time", "shift_end_time")
    @classmethod
    def validate_times(cls, value: Optional[str]) -> Optional[str]:
        return validate_clock_time(value)

    @field_validator("schedule_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, SCHEDULE_TYPES, "schedule_type")

    @field_validator("availability_status")
    @classmethod
    def validate_availability(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, AVAILABILITY_STATUS_OPTIONS, "availability_status")


class StaffScheduleUpdateSchema(StaffScheduleCreateSchema):
    user_id: Optional[int] = Field(None, gt=0)
    schedule_date: Timestamp = None
    schedule_type: Optional[str] = None
    break_duration_minutes: Optional[int] = Field(None, ge=0)
    availability_status: Optional[str] = None
    is_recurring: Optional[bool] = None

    @field_validator("schedule_date")
    @classmethod
    def required_date(cls, value):
        return value


class JobProgressCreateSchema(BaseModel):
    """Schema for POST /api/jobs/{id}/progress"""

    model_config = ConfigDict(str_strip_whitespace=True)

    progress_stage: str
    stage_status: str = Field("in_progress")
    stage_start_time: Timestamp = None
    stage_end_time: Timestamp = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    location_latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    location_longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    progress_notes: OptionalText = None
    issues_encountered: OptionalText = None
    photos_uploaded: StrList = None
    signature_required: bool = False
    signature_captured: bool = False
    signature_name: OptionalText = Field(None, max_length=200)
    signature_data: OptionalText = None
    next_stage: OptionalText = None

    @field_validator("progress_stage", "next_stage")
    @classmethod
    def validate_stage(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PROGRESS_STAGES, "progress_stage")

    @field_validator("stage_status")
    @classmethod
    def validate_stage_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, STAGE_STATUS_OPTIONS, "stage_status")


class VehicleLogisticsUpdateSchema(BaseModel):
    """Schema for PUT /api/vehicle-logistics/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True)

    vehicle_id: Optional[int] = Field(None, gt=0)
    logistics_status: Optional[str] = None
    current_location: OptionalText = Field(None, max_length=255)
    current_location_address: OptionalText = None
    destination_location: OptionalText = Field(None, max_length=255)
    destination_address: OptionalText = None
    transport_method: OptionalText = Field(None, max_length=30)
    transport_company: OptionalText = Field(None, max_length=100)
    transport_reference: OptionalText = Field(None, max_length=100)
    driver_name: OptionalText = Field(None, max_length=200)
    driver_phone: OptionalText = Field(None, max_length=30)
    keys_location: OptionalText = Field(None, max_length=100)
    fuel_level: OptionalText = Field(None, max_length=20)
    condition_on_arrival: OptionalText = None
    condition_on_departure: OptionalText = None
    mileage_on_arrival: Optional[int] = Field(None, ge=0)
    mileage_on_departure: Optional[int] = Field(None, ge=0)
    service_book_present: Optional[bool] = None
    spare_keys_count: Optional[int] = Field(None, ge=0)
    v5_document_present: Optional[bool] = None
    mot_certificate_present: Optional[bool] = None
    insurance_documents_present: Optional[bool] = None
    logistics_notes: OptionalText = None
    photos_on_arrival: StrList = None
    photos_on_departure: StrList = None
    assigned_to_id: Optional[int] = Field(None, gt=0)

    @field_validator("logistics_status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, LOGISTICS_STATUS_OPTIONS, "logistics_status")


class VehicleLogisticsCreateSchema(VehicleLogisticsUpdateSchema):
    """Schema for POST /api/vehicle-logistics"""

    vehicle_id: int = Field(..., gt=0)
    logistics_status: str = Field("pending")


class JobTemplateUpdateSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    template_name: Optional[str] = Field(None, min_length=1, max_length=200)
    template_category: Optional[str] = None
    job_type: Optional[str] = None
    estimated_duration_hours: Optional[Decimal] = Field(None, ge=0, le=999)
    default_priority: Optional[str] = None
    required_skills: StrList = None
    required_equipment: StrList = None
    checklist_items: Optional[List[Any]] = None
    instructions: OptionalText = None
    quality_checks: Optional[List[Any]] = None
    is_active: Optional[bool] = None

    @field_validator("template_category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_CATEGORIES, "template_category")

    @field_validator("job_type")
    @classmethod
    def validate_type(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_TYPES, "job_type")

    @field_validator("default_priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, JOB_PRIORITY_OPTIONS, "default_priority")


class JobTemplateCreateSchema(JobTemplateUpdateSchema):
    """Schema for POST /api/job-templates"""

    template_name: str = Field(..., min_length=1, max_length=200)
    template_category: str = Field("logistics")
    job_type: str
    default_priority: str = Field("medium")


class JobFromTemplateSchema(BaseModel):
    """Overrides applied when creating a job from a template"""

    model_config = ConfigDict(str_strip_whitespace=True)

    scheduled_date: Timestamp = None
    assigned_to_id: Optional[int] = Field(None, gt=0)
    vehicle_id: Optional[int] = Field(None, gt=0)
    customer_id: Optional[int] = Field(None, gt=0)
    notes: OptionalText = None
