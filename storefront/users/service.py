from datetime import timedelta
from typing import Optional, Dict, Any, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .models import User, UserRole, utcnow
from ..core.config import settings
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DuplicateResourceError,
    ErrorCode,
    ResourceNotFoundError,
    StorefrontError,
    ValidationFailedError,
)
from ..logging import logger
from ..schemas.users import (
    RegisterUserRequest,
    UpdateProfileRequest,
    AdminUpdateUserRequest,
)
from ..services import email_service
from ..utils.password_utils import (
    MIN_PASSWORD_LENGTH,
    generate_otp,
    generate_reset_token,
    get_password_hash,
    hash_token,
    is_password_valid,
    verify_password,
)

PASSWORD_TOO_SHORT = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
RESET_TOKEN_INVALID = "Invalid or expired reset token"


class UserService:

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def require_user(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundError("User")
        return user

    # --- Registration & login ---

    @staticmethod
    async def register(db: Session, data: RegisterUserRequest) -> User:
        """Create a customer account and email it a verification code."""
        if not is_password_valid(data.password):
            raise ValidationFailedError([PASSWORD_TOO_SHORT], prefix=None)

        email = data.email.strip().lower()
        if UserService.get_user_by_email(db, email):
            raise DuplicateResourceError("User already exists")

        otp = generate_otp()
        user = User(
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            email=email,
            phone=data.phone,
            password=get_password_hash(data.password),
            role=UserRole.CUSTOMER.value,
            is_active=True,
            is_email_verified=False,
            email_verification_token=otp,
            email_verification_expires=utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
            verification_attempts=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Successfully registered user: {email}. Sending verification code.")

        try:
            await email_service.send_otp_email(user.email, otp, user.first_name)
        except Exception as e:
            # The account exists either way; the user can ask for a new code
            logger.error(f"Verification email failed for {email}: {e}")
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> User:
        user = UserService.get_user_by_email(db, email or "")
        if not user or not verify_password(password or "", user.password):
            logger.warning(f"Failed login attempt for {email}")
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthorizationError("Account is deactivated", code=ErrorCode.ACCOUNT_DEACTIVATED)

        user.last_login = utcnow()
        db.commit()
        db.refresh(user)
        return user

    # --- Email verification ---

    @staticmethod
    async def verify_email(db: Session, user: User, otp: str) -> User:
        if user.is_email_verified:
            raise ValidationFailedError(["Email is already verified"], prefix=None)
        if (user.verification_attempts or 0) >= settings.MAX_OTP_ATTEMPTS:
            raise StorefrontError(
                code=ErrorCode.RATE_LIMIT_EXCEEDED,
                user_message="Too many verification attempts. Please request a new code.",
            )

        expired = not user.email_verification_expires or user.email_verification_expires < utcnow()
        if expired or not user.email_verification_token or otp.strip() != user.email_verification_token:
            user.verification_attempts = (user.verification_attempts or 0) + 1
            user.last_verification_attempt = utcnow()
            db.commit()
            message = "Verification code has expired" if expired else "Invalid verification code"
            raise ValidationFailedError([message], prefix=None)

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        user.verification_attempts = 0
        db.commit()
        db.refresh(user)
        logger.info(f"Email verified for user: {user.email}")
        try:
            await email_service.send_welcome_email(user.email, user.first_name)
        except Exception as e:
            logger.error(f"Welcome email failed for {user.email}: {e}")
        return user

    @staticmethod
    async def resend_otp(db: Session, user: User) -> None:
        if user.is_email_verified:
            raise ValidationFailedError(["Email is already verified"], prefix=None)
        if (user.verification_attempts or 0) >= settings.MAX_OTP_ATTEMPTS:
            last = user.last_verification_attempt
            # Attempts unlock again once the code lifetime has passed since the last try
            if last and last > utcnow() - timedelta(minutes=settings.OTP_EXPIRE_MINUTES):
                raise StorefrontError(
                    code=ErrorCode.RATE_LIMIT_EXCEEDED,
                    user_message="Too many verification attempts. Please try again later.",
                )

        otp = generate_otp()
        user.email_verification_token = otp
        user.email_verification_expires = utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        user.verification_attempts = 0
        db.commit()
        await email_service.send_otp_email(user.email, otp, user.first_name)

    @staticmethod
    def verification_status(user: User) -> Dict[str, Any]:
        return {
            "isEmailVerified": bool(user.is_email_verified),
            "email": user.email,
            "attemptsRemaining": max(settings.MAX_OTP_ATTEMPTS - (user.verification_attempts or 0), 0),
        }

    # --- Password reset ---

    @staticmethod
    async def request_password_reset(db: Session, email: str) -> None:
        user = UserService.get_user_by_email(db, email)
        if not user:
            # Don't reveal if user exists or not
            logger.info(f"Password reset requested for non-existent email: {email}")
            return
        if not user.is_active:
            raise AuthorizationError("Account is deactivated", code=ErrorCode.ACCOUNT_DEACTIVATED)

        token = generate_reset_token()
        user.reset_password_token = hash_token(token)
        user.reset_password_expire = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        db.commit()

        reset_link = f"{settings.frontend_base_url}/reset-password/{token}"
        try:
            await email_service.send_password_reset_email(user.email, reset_link, user.first_name)
        except Exception as e:
            user.reset_password_token = None
            user.reset_password_expire = None
            db.commit()
            logger.error(f"Password reset email failed for {email}: {e}")
            raise StorefrontError(
                code=ErrorCode.SERVICE_UNAVAILABLE,
                user_message="Email could not be sent. Please try again later.",
            )
        logger.info(f"Password reset email sent to: {email}")

    @staticmethod
    def get_user_by_reset_token(db: Session, token: str) -> User:
        user = db.query(User).filter(
            User.reset_password_token == hash_token(token),
            User.reset_password_expire > utcnow(),
        ).first()
        if not user:
            raise ValidationFailedError([RESET_TOKEN_INVALID], prefix=None)
        return user

    @staticmethod
    async def reset_password(db: Session, token: str, password: str, confirm_password: Optional[str]) -> User:
        if confirm_password is not None and password != confirm_password:
            raise ValidationFailedError(["Passwords do not match"], prefix=None)
        if not is_password_valid(password):
            raise ValidationFailedError([PASSWORD_TOO_SHORT], prefix=None)

        user = UserService.get_user_by_reset_token(db, token)
        user.password = get_password_hash(password)
        user.reset_password_token = None
        user.reset_password_expire = None
        db.commit()
        db.refresh(user)
        logger.info(f"Password reset successful for user: {user.email}")
        try:
            await email_service.send_password_reset_confirmation(user.email, user.first_name)
        except Exception as e:
            logger.error(f"Password reset confirmation failed for {user.email}: {e}")
        return user

    # --- Profile ---

    @staticmethod
    def update_profile(db: Session, user: User, data: UpdateProfileRequest) -> User:
        changes = data.model_dump(exclude_unset=True, exclude={"password", "current_password"})

        if "email" in changes and changes["email"]:
            email = changes["email"].strip().lower()
            if email != user.email and UserService.get_user_by_email(db, email):
                raise DuplicateResourceError("Email is already in use")
            changes["email"] = email

        for field, value in changes.items():
            if value is not None:
                setattr(user, field, value)

        if data.password:
            if not is_password_valid(data.password):
                raise ValidationFailedError([PASSWORD_TOO_SHORT], prefix=None)
            if user.has_password and not verify_password(data.current_password or "", user.password):
                raise ValidationFailedError(["Current password is incorrect"], prefix=None)
            user.password = get_password_hash(data.password)

        db.commit()
        db.refresh(user)
        return user

    # --- Admin ---

    @staticmethod
    def list_users(
        db: Session,
        limit: int = 100,
        offset: int = 0,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> List[User]:
        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                User.first_name.ilike(term),
                User.last_name.ilike(term),
                User.email.ilike(term),
            ))
        limit = max(1, min(limit, 1000))
        return query.order_by(User.created_at.desc(), User.id.desc()).offset(max(offset, 0)).limit(limit).all()

    @staticmethod
    def admin_update_user(db: Session, user_id: int, data: AdminUpdateUserRequest) -> User:
        user = UserService.require_user(db, user_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("email"):
            email = changes["email"].strip().lower()
            if email != user.email and UserService.get_user_by_email(db, email):
                raise DuplicateResourceError("Email is already in use")
            changes["email"] = email
        for field, value in changes.items():
            if value is not None:
                setattr(user, field, value)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int, permanent: bool = False) -> None:
        user = UserService.require_user(db, user_id)
        if user.is_admin:
            raise ValidationFailedError(["Cannot delete admin user"], prefix=None)
        if permanent:
            db.delete(user)
            logger.info(f"User {user_id} permanently deleted")
        else:
            user.is_active = False
            logger.info(f"User {user_id} deactivated")
        db.commit()

    @staticmethod
    def ensure_admin(db: Session, email: str, password: str, first_name: str = "Admin", last_name: str = "User") -> User:
        """Create the first admin account, or promote an existing user with that email."""
        email = (email or "").strip().lower()
        if not email:
            raise ValidationFailedError(["Admin email is required"], prefix=None)

        user = UserService.get_user_by_email(db, email)
        if user is None:
            if not is_password_valid(password or ""):
                raise ValidationFailedError([PASSWORD_TOO_SHORT], prefix=None)
            user = User(
                first_name=first_name,
                last_name=last_name,
                email=email,
                password=get_password_hash(password),
                is_active=True,
                is_email_verified=True,
                verification_attempts=0,
            )
            db.add(user)
            logger.info(f"Creating admin account {email}")
        else:
            logger.info(f"Promoting existing user {email} to admin")

        user.role = UserRole.ADMIN.value
        user.is_active = True
        user.is_email_verified = True
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def cleanup_unverified_users(db: Session, max_age_days: int) -> int:
        """Delete accounts that never verified their email within ``max_age_days``."""
        cutoff = utcnow() - timedelta(days=max_age_days)
        stale = db.query(User).filter(
            User.is_email_verified.is_(False),
            User.role != UserRole.ADMIN.value,
            User.created_at < cutoff,
        ).all()
        for user in stale:
            db.delete(user)
        db.commit()
        return len(stale)
