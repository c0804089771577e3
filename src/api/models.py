"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON field names are camelCase; Python attributes stay snake_case.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from src.domain.models import Account


class ApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupRequest(ApiModel):
    """Request model for signup."""

    email: EmailStr
    password: str = Field(..., min_length=6, description="User password (min 6 characters)")
    display_name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=50)


class SignupResponse(ApiModel):
    """Response model for accepted signup. Never carries the token."""

    message: str
    requires_verification: bool
    email: str


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailRequest(ApiModel):
    """Request model carrying only an email (resend, forgot password)."""

    email: EmailStr


class ExternalSignInRequest(ApiModel):
    external_token: str = Field(..., min_length=1, description="Identity provider ID token")


class UpdateProfileRequest(ApiModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=200)
    avatar_url: str | None = None
    phone: str | None = Field(default=None, max_length=50)


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class ResetPasswordRequest(ApiModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UserResponse(ApiModel):
    """Public view of an account. Never includes credential material."""

    id: str
    email: str
    display_name: str
    role: str
    auth_provider: str
    is_email_verified: bool
    avatar_url: str | None = None
    phone: str | None = None

    @classmethod
    def from_account(cls, account: Account) -> "UserResponse":
        return cls(
            id=str(account.id),
            email=account.email,
            display_name=account.display_name,
            role=account.role.value,
            auth_provider=account.auth_provider.value,
            is_email_verified=account.is_email_verified,
            avatar_url=account.avatar_url,
            phone=account.phone,
        )


class AuthResponse(ApiModel):
    """Response model for any operation that issues a session."""

    message: str
    user: UserResponse
    token: str


class ProfileResponse(ApiModel):
    user: UserResponse


class VerificationStatusResponse(ApiModel):
    """Poll answer; token and user are present only once verified."""

    verified: bool
    token: str | None = None
    user: UserResponse | None = None


class MessageResponse(ApiModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str


class EmailNotVerifiedResponse(ErrorResponse):
    email: str
