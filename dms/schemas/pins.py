from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.constants import PIN_PRIORITY_OPTIONS, PIN_COLOR_OPTIONS
from dms.schemas.common import Timestamp, check_option


class PinnedMessageUpdateSchema(BaseModel):
    """Schema for PUT /api/pinned-messages/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    is_public: Optional[bool] = None
    target_user_ids: Optional[List[int]] = Field(None, description="Users who can see a private message")
    priority: Optional[str] = None
    color_theme: Optional[str] = None
    is_pinned: Optional[bool] = None
    expires_at: Timestamp = None

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PIN_PRIORITY_OPTIONS, "priority")

    @field_validator("color_theme")
    @classmethod
    def validate_colour(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, PIN_COLOR_OPTIONS, "color_theme")


class PinnedMessageCreateSchema(PinnedMessageUpdateSchema):
    """Schema for POST /api/pinned-messages"""

    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    is_public: bool = True
    priority: str = "normal"
    color_theme: str = "yellow"
    is_pinned: bool = True
