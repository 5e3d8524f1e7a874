from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.schemas.appointments import validate_clock_time


class NotificationPreferencesSchema(BaseModel):
    """PUT /api/notifications/preferences. Only supplied flags are changed."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    notifications_enabled: Optional[bool] = None
    push_notifications_enabled: Optional[bool] = None
    email_notifications_enabled: Optional[bool] = None
    sms_notifications_enabled: Optional[bool] = None
    in_app_notifications_enabled: Optional[bool] = None

    sales_notifications: Optional[bool] = None
    inventory_notifications: Optional[bool] = None
    customer_notifications: Optional[bool] = None
    financial_notifications: Optional[bool] = None
    system_notifications: Optional[bool] = None
    staff_notifications: Optional[bool] = None

    urgent_notifications: Optional[bool] = None
    high_notifications: Optional[bool] = None
    medium_notifications: Optional[bool] = None
    low_notifications: Optional[bool] = None

    sound_enabled: Optional[bool] = None
    vibration_enabled: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    vehicle_updated_enabled: Optional[bool] = None
    vehicle_added_enabled: Optional[bool] = None
    vehicle_sold_enabled: Optional[bool] = None
    vehicle_bought_enabled: Optional[bool] = None
    lead_created_enabled: Optional[bool] = None
    appointment_booked_enabled: Optional[bool] = None
    job_booked_enabled: Optional[bool] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def validate_quiet_hours(cls, value: Optional[str]) -> Optional[str]:
        return validate_clock_time(value, "quiet hours")


class NotificationTestSchema(BaseModel):
    """POST /api/notifications/test (admin)"""

    model_config = ConfigDict(str_strip_whitespace=True)

    event_type: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    entity_id: Optional[int] = None


class DeliveredSchema(BaseModel):
    notification_ids: List[int] = Field(default_factory=list)
