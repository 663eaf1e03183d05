"""Authentication schemas (DTOs)."""

from pydantic import BaseModel, EmailStr, Field, field_validator

from authcore.features.account.schemas import AccountResponse
from authcore.shared.validators.password import validate_password_strength, validate_passwords_match


# Request schemas
class LoginRequest(BaseModel):
    """Password login, optionally completing the two-factor step in the same request."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    totp_code: str | None = Field(None, description="Six-digit code from the authenticator app")


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""

    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value):
        return validate_password_strength(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value, info):
        if "new_password" in info.data:
            return validate_passwords_match(info.data["new_password"], value)
        return value


class VerifyEmailRequest(BaseModel):
    token: str


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


# Response schemas
class AuthResponse(BaseModel):
    """Login/refresh result.

    When ``requires_two_factor`` is true no tokens are issued and the client must
    resubmit the login with ``totp_code``.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # milliseconds
    user: AccountResponse | None = None
    requires_two_factor: bool = False


class TwoFactorSetupResponse(BaseModel):
    secret: str
    provisioning_uri: str


class MessageResponse(BaseModel):
    message: str
