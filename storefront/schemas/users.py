from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from .base import CamelModel


class RegisterUserRequest(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    phone: Optional[str] = Field(None, max_length=20)


class LoginRequest(CamelModel):
    email: str
    password: str
    remember_me: bool = False


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: str
    confirm_password: Optional[str] = None


class VerifyEmailRequest(CamelModel):
    otp: str = Field(..., min_length=1, max_length=10)


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    password: Optional[str] = None
    current_password: Optional[str] = None


class AdminUpdateUserRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    role: Optional[str] = Field(None, pattern=r"^(customer|admin)$")
    is_active: Optional[bool] = None
    is_email_verified: Optional[bool] = None


class UserResponse(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    role: str
    is_active: bool
    is_email_verified: bool
    profile_picture: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class VerificationStatusResponse(CamelModel):
    is_email_verified: bool
    email: str
    attempts_remaining: int
