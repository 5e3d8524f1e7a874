"""
Pydantic validation schemas for authentication and user management.
"""

from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator, model_validator

from dms.constants import ROLE_OPTIONS
from dms.schemas.common import check_option


class LoginSchema(BaseModel):
    """POST /api/login. ``username`` may also be an email address."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(None, max_length=120)
    email: Optional[str] = Field(None, max_length=120)
    password: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def require_identifier(self):
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self

    @property
    def identifier(self) -> str:
        return (self.username or self.email).lower()


class UserCreateSchema(BaseModel):
    """Schema for creating a user via POST /api/users"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    username: str = Field(..., min_length=3, max_length=80, description="Unique login name")
    password: str = Field(..., min_length=8, max_length=128)
    email: Optional[EmailStr] = Field(None, description="Unique email address")
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role: str = Field("salesperson", description="One of the staff roles")
    is_active: bool = True

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, value: str) -> str:
        return value.lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        return check_option(value, ROLE_OPTIONS, "role")

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UserUpdateSchema(BaseModel):
    """Schema for updating a user via PUT /api/users/{id}"""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    username: Optional[str] = Field(None, min_length=3, max_length=80)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    profile_image_url: Optional[str] = Field(None, max_length=1024)
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return check_option(value, ROLE_OPTIONS, "role")


class ProfileUpdateSchema(BaseModel):
    """PUT /api/me. Users cannot change their own role or active flag."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    profile_image_url: Optional[str] = Field(None, max_length=1024)


class ChangePasswordSchema(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class ForgotPasswordSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr


class ResetPasswordSchema(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class AdminPasswordResetSchema(BaseModel):
    new_password: str = Field(..., min_length=8, max_length=128)
