# storefront/utils/password_utils.py

import hashlib
import secrets
from passlib.context import CryptContext
import logging

from ..users.models import OAUTH_NO_PASSWORD

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# Create the context once and reuse it
bcrypt_context = CryptContext(schemes=['bcrypt'], deprecated='auto')


def is_password_valid(password: str) -> bool:
    """
    Checks if a password meets the length requirement.
    """
    return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain-text password against a hashed password.
    OAuth-only accounts carry a sentinel instead of a hash and never match.
    """
    if not hashed_password or hashed_password == OAUTH_NO_PASSWORD:
        return False
    try:
        return bcrypt_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash could not be identified.")
        return False


def get_password_hash(password: str) -> str:
    """
    Hashes a plain-text password.
    """
    try:
        return bcrypt_context.hash(password)
    except Exception:
        logger.exception("Error occurred while hashing password.")
        raise


def generate_otp() -> str:
    """Six random digits."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
