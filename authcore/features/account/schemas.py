"""Account schemas (DTOs)."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from authcore.shared.validators.password import validate_password_strength, validate_passwords_match

from .models import AuthProvider


# Request schemas
class AccountRegisterRequest(BaseModel):
    """Account registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")
    confirm_password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    phone: str | None = Field(None, max_length=20)
    recaptcha_token: str | None = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value):
        """Validate password strength using shared validator."""
        return validate_password_strength(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value, info):
        if "password" in info.data:
            return validate_passwords_match(info.data["password"], value)
        return value


# Response schemas
class AccountResponse(BaseModel):
    """Public view of an account."""

    id: int
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    avatar_url: str | None = None
    email_verified: bool
    totp_enabled: bool
    provider: AuthProvider
    roles: list[str]
    created_at: datetime

    model_config = {"from_attributes": True}
