import logging
import os
import time
import uuid
from typing import Dict, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ResourceNotFoundError, ValidationFailedError, raise_file_error
from ..users.models import User

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
CHUNK_SIZE = 64 * 1024

PRODUCTS_DIR = "products"
PROFILES_DIR = "profiles"
PUBLIC_PREFIX = "/uploads"


def upload_path(*parts: str) -> str:
    return os.path.join(settings.UPLOAD_DIR, *parts)


def public_url(folder: str, filename: str) -> str:
    return f"{PUBLIC_PREFIX}/{folder}/{filename}"


def _extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_image(file: Optional[UploadFile]) -> str:
    """Check extension and MIME type; returns the normalised extension."""
    if file is None or not file.filename:
        raise ValidationFailedError(["No file uploaded. Please select an image file."], prefix=None)
    ext = _extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS or (file.content_type or "").lower() not in ALLOWED_MIME_TYPES:
        raise_file_error("invalid_type", filename=file.filename, details=f"{ext} / {file.content_type}")
    return ext


def save_image(file: UploadFile, folder: str, filename: str) -> Dict[str, object]:
    """Stream ``file`` to ``<UPLOAD_DIR>/<folder>/<filename>``, enforcing the size limit."""
    directory = upload_path(folder)
    os.makedirs(directory, exist_ok=True)
    destination = os.path.join(directory, filename)

    size = 0
    with open(destination, "wb") as buffer:
        while True:
            chunk = file.file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.MAX_UPLOAD_SIZE:
                break
            buffer.write(chunk)

    if size > settings.MAX_UPLOAD_SIZE:
        os.remove(destination)
        limit_mb = settings.MAX_UPLOAD_SIZE // (1024 * 1024)
        raise_file_error("too_large", filename=file.filename, details=f"Maximum size is {limit_mb}MB")

    logger.info(f"Stored upload {destination} ({size / 1024:.2f} KB, {file.content_type})")
    return {
        "filename": filename,
        "size": size,
        "mimetype": file.content_type,
        "url": public_url(folder, filename),
    }


def _remove_public_file(url: Optional[str], folder: str) -> bool:
    """Delete the file behind a ``/uploads/<folder>/...`` URL if it exists."""
    prefix = f"{PUBLIC_PREFIX}/{folder}/"
    if not url or not url.startswith(prefix):
        return False
    path = upload_path(folder, os.path.basename(url))
    if os.path.isfile(path):
        os.remove(path)
        logger.info(f"Deleted file {path}")
        return True
    return False


class UploadService:

    @staticmethod
    def store_product_image(file: UploadFile) -> Dict[str, object]:
        ext = validate_image(file)
        filename = f"image-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
        return save_image(file, PRODUCTS_DIR, filename)

    @staticmethod
    def delete_product_image(filename: str) -> str:
        safe_name = os.path.basename(filename)
        path = upload_path(PRODUCTS_DIR, safe_name)
        if not safe_name or not os.path.isfile(path):
            raise ResourceNotFoundError("Image")
        os.remove(path)
        logger.info(f"Image deleted: {safe_name}")
        return safe_name

    @staticmethod
    def store_profile_picture(db: Session, user: User, file: UploadFile) -> Dict[str, object]:
        """Save a new profile picture, removing the user's previous one."""
        ext = validate_image(file)
        filename = f"profile_{user.id}_{int(time.time() * 1000)}{ext}"
        stored = save_image(file, PROFILES_DIR, filename)

        previous = user.profile_picture
        user.profile_picture = stored["url"]
        db.commit()
        db.refresh(user)
        _remove_public_file(previous, PROFILES_DIR)
        logger.info(f"Profile picture uploaded for user {user.id}: {stored['url']}")
        return stored

    @staticmethod
    def delete_profile_picture(db: Session, user: User) -> None:
        if not user.profile_picture:
            raise ValidationFailedError(["No profile picture to delete"], prefix=None)
        _remove_public_file(user.profile_picture, PROFILES_DIR)
        user.profile_picture = None
        db.commit()
        logger.info(f"Profile picture removed for user {user.id}")
