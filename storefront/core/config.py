# storefront/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # --- API Info ---
    API_TITLE: str = "Storefront API"
    API_DESCRIPTION: str = "Product catalog, orders, accounts, payments and admin settings for the storefront."
    API_VERSION: str = "1.0.0"

    # --- Server Configuration ---
    PORT: int = int(os.getenv("PORT", "5000"))
    HOST: str = os.getenv("HOST", "0.0.0.0")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    IS_PRODUCTION: bool = ENVIRONMENT == "production"

    # --- Database ---
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_DIALECT: str = os.getenv("DB_DIALECT", "postgresql")
    DB_HOST: str = os.getenv("DB_HOST", "")
    DB_PORT: str = os.getenv("DB_PORT", "")
    DB_USER: str = os.getenv("DB_USER", "")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
    DB_NAME: str = os.getenv("DB_NAME", "storefront")

    # --- Auth ---
    JWT_SECRET: str = os.getenv("JWT_SECRET") or "dev-secret-change-me"
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_COOKIE_NAME: str = "jwt"
    JWT_COOKIE_SAMESITE: str = os.getenv("JWT_COOKIE_SAMESITE", "strict")
    COOKIE_SECURE: bool = _as_bool(os.getenv("COOKIE_SECURE", "1" if IS_PRODUCTION else "0"))
    TOKEN_EXPIRE_DAYS: int = int(os.getenv("TOKEN_EXPIRE_DAYS", "7"))
    REMEMBER_ME_EXPIRE_DAYS: int = int(os.getenv("REMEMBER_ME_EXPIRE_DAYS", "30"))
    OTP_EXPIRE_MINUTES: int = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))
    MAX_OTP_ATTEMPTS: int = int(os.getenv("MAX_OTP_ATTEMPTS", "5"))
    PASSWORD_RESET_EXPIRE_MINUTES: int = int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60"))
    SESSION_SECRET_KEY: str = os.getenv("SESSION_SECRET_KEY", "fallback-secret-key")

    # --- OAuth ---
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    FACEBOOK_APP_ID: str = os.getenv("FACEBOOK_APP_ID", "")
    FACEBOOK_APP_SECRET: str = os.getenv("FACEBOOK_APP_SECRET", "")
    BACKEND_URL: str = os.getenv("BACKEND_URL", "http://localhost:5000")

    # Comma separated; the first entry is used for redirects
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # --- Payments ---
    PAYSTACK_SECRET_KEY: str = os.getenv("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL: str = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT: int = int(os.getenv("PAYSTACK_TIMEOUT", "15"))
    PAYSTACK_CURRENCY: str = os.getenv("PAYSTACK_CURRENCY", "GHS")

    # --- Email ---
    EMAIL_ENABLED: bool = _as_bool(os.getenv("EMAIL_ENABLED", "0"))
    MAIL_USERNAME: str = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD: str = os.getenv("MAIL_PASSWORD", "")
    MAIL_FROM: str = os.getenv("MAIL_FROM", "noreply@example.com")
    MAIL_FROM_NAME: str = os.getenv("MAIL_FROM_NAME", "Storefront")
    MAIL_SERVER: str = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT: int = int(os.getenv("MAIL_PORT", "587"))

    # --- Redis / rate limiting ---
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    RATE_LIMIT_ENABLED: bool = _as_bool(os.getenv("RATE_LIMIT_ENABLED", "1"))
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")

    # --- Jobs / orders ---
    CLEANUP_ENABLED: bool = _as_bool(os.getenv("CLEANUP_ENABLED", "1"))
    CLEANUP_INTERVAL_SECONDS: int = int(os.getenv("CLEANUP_INTERVAL_SECONDS", str(24 * 60 * 60)))
    UNVERIFIED_USER_MAX_AGE_DAYS: int = int(os.getenv("UNVERIFIED_USER_MAX_AGE_DAYS", "7"))
    ORDER_TOTAL_VERIFICATION: bool = _as_bool(os.getenv("ORDER_TOTAL_VERIFICATION", "1"))

    # --- Uploads ---
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(5 * 1024 * 1024)))

    @property
    def frontend_origins(self) -> list:
        return [origin.strip().rstrip("/") for origin in self.FRONTEND_URL.split(",") if origin.strip()]

    @property
    def frontend_base_url(self) -> str:
        origins = self.frontend_origins
        return origins[0] if origins else "http://localhost:3000"


settings = Settings()
