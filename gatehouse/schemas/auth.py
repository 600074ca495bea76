"""
Authentication schemas.
"""

import re
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_serializer, model_validator

from gatehouse.core.config import settings
from gatehouse.utils.timezone import to_iso8601

from .user import UserResponse


def check_password_strength(password: str) -> str:
    """Minimum length, mixed case, a digit and a symbol."""
    policy = settings.auth
    if len(password) < policy.password_min_length:
        raise ValueError(
            f"Password must be at least {policy.password_min_length} characters"
        )
    if not re.search(r"[a-z]", password) or not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain upper and lower case letters")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain a number")
    if not any(c in policy.password_special_chars for c in password):
        raise ValueError("Password must contain a symbol")
    return password


StrongPassword = Annotated[
    str,
    Field(max_length=255),
    AfterValidator(check_password_strength),
]


class LoginRequest(BaseModel):
    """Email and password login."""
    email: EmailStr
    password: str = Field(min_length=1, max_length=255)


class RegisterRequest(BaseModel):
    """User registration request."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: StrongPassword
    password_confirmation: str

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.password_confirmation:
            raise ValueError("Password confirmation does not match")
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=255)
    password: StrongPassword
    password_confirmation: str

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.password != self.password_confirmation:
            raise ValueError("Password confirmation does not match")
        return self


class TokenData(BaseModel):
    """Freshly issued bearer token."""
    token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Validity window in minutes")
    expires_at: datetime

    @field_serializer("expires_at")
    def serialize_expires_at(self, value: datetime) -> str:
        return to_iso8601(value)


class LoginData(BaseModel):
    user: UserResponse
    token: TokenData


class RegisterData(BaseModel):
    user: UserResponse
    message: str
