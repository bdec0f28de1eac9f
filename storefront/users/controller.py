# storefront/users/controller.py
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from .service import UserService
from ..auth import service as auth_service
from ..auth.service import AdminUser, CurrentUser
from ..core.exceptions import StorefrontError
from ..core.rate_limiter import limiter, AUTH_LIMIT, PASSWORD_RESET_LIMIT
from ..database.core import DbSession
from ..logging import logger
from ..schemas.users import (
    AdminUpdateUserRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterUserRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    UserResponse,
    VerificationStatusResponse,
    VerifyEmailRequest,
)

router = APIRouter(prefix="/api/users", tags=["users"])

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(AUTH_LIMIT)
async def register_user(request: Request, response: Response, data: RegisterUserRequest, db: DbSession):
    """Register a new customer account and sign it in."""
    user = await UserService.register(db, data)
    auth_service.issue_login(response, user)
    return user


@router.post("/auth", response_model=UserResponse)
@limiter.limit(AUTH_LIMIT)
async def login(request: Request, response: Response, credentials: LoginRequest, db: DbSession):
    """Authenticate with email and password; the token is set as an httpOnly cookie."""
    user = UserService.authenticate(db, credentials.email, credentials.password)
    auth_service.issue_login(response, user, remember_me=credentials.remember_me)
    logger.info(f"User {user.id} logged in (remember_me={credentials.remember_me})")
    return user


@router.post("/logout")
async def logout(request: Request, response: Response):
    auth_service.revoke_token(auth_service.extract_token(request))
    auth_service.clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.post("/forgot-password")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def forgot_password(request: Request, data: ForgotPasswordRequest, db: DbSession):
    await UserService.request_password_reset(db, data.email)
    return {"message": RESET_REQUESTED_MESSAGE}


@router.get("/reset-password/{token}")
async def validate_reset_token(token: str, db: DbSession):
    user = UserService.get_user_by_reset_token(db, token)
    return {"valid": True, "email": user.email}


@router.post("/reset-password/{token}")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def reset_password(request: Request, token: str, data: ResetPasswordRequest, db: DbSession):
    await UserService.reset_password(db, token, data.password, data.confirm_password)
    return {"message": "Password reset successful. You can now log in with your new password."}


@router.post("/verify-email", response_model=UserResponse)
async def verify_email(data: VerifyEmailRequest, current_user: CurrentUser, db: DbSession):
    return await UserService.verify_email(db, current_user, data.otp)


@router.post("/resend-otp")
async def resend_otp(current_user: CurrentUser, db: DbSession):
    await UserService.resend_otp(db, current_user)
    return {"message": "A new verification code has been sent to your email."}


@router.get("/verification-status", response_model=VerificationStatusResponse)
async def verification_status(current_user: CurrentUser):
    return UserService.verification_status(current_user)


@router.get("/profile", response_model=UserResponse)
async def get_profile(current_user: CurrentUser):
    return current_user


@router.put("/profile", response_model=UserResponse)
async def update_profile(data: UpdateProfileRequest, current_user: CurrentUser, db: DbSession):
    try:
        return UserService.update_profile(db, current_user, data)
    except (HTTPException, StorefrontError):
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Profile update failed for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )


# --- Admin ---

@router.get("", response_model=List[UserResponse])
async def list_users(
    admin: AdminUser,
    db: DbSession,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    role: Optional[str] = Query(None, pattern=r"^(customer|admin)$"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = None,
):
    return UserService.list_users(db, limit=limit, offset=offset, role=role, is_active=is_active, search=search)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, admin: AdminUser, db: DbSession):
    return UserService.require_user(db, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, data: AdminUpdateUserRequest, admin: AdminUser, db: DbSession):
    return UserService.admin_update_user(db, user_id, data)


@router.delete("/{user_id}")
async def delete_user(user_id: int, admin: AdminUser, db: DbSession, permanent: bool = False):
    UserService.delete_user(db, user_id, permanent=permanent)
    return {"message": "User deleted permanently" if permanent else "User deactivated successfully"}
