from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from dms.constants import PERMISSION_LEVELS
from dms.schemas.common import check_option


class PagePermissionSchema(BaseModel):
    """One page entry of PUT /api/permissions/users/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True)

    page_key: str = Field(..., min_length=1, max_length=100)
    permission_level: str = Field("view_only")
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_export: bool = False
    custom_restrictions: Optional[Dict[str, Any]] = None

    @field_validator("permission_level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        return check_option(value, PERMISSION_LEVELS, "permission_level")


class UserPermissionsSchema(BaseModel):
    permissions: List[PagePermissionSchema] = Field(default_factory=list)
