from fastapi import APIRouter, File, Request, UploadFile

from .service import UploadService
from ..auth.service import AdminUser, CurrentUser
from ..core.rate_limiter import limiter, UPLOAD_LIMIT
from ..database.core import DbSession

router = APIRouter(prefix="/api/upload", tags=["uploads"])
profile_router = APIRouter(prefix="/api/profile", tags=["uploads"])


@router.post("")
@limiter.limit(UPLOAD_LIMIT)
def upload_product_image(request: Request, admin: AdminUser, image: UploadFile = File(None)):
    stored = UploadService.store_product_image(image)
    return {
        "message": "Image uploaded successfully",
        "image": stored["url"],
        "filename": stored["filename"],
        "size": stored["size"],
        "mimetype": stored["mimetype"],
    }


@router.delete("/{filename}")
def delete_product_image(filename: str, admin: AdminUser):
    removed = UploadService.delete_product_image(filename)
    return {"message": "Image deleted successfully", "filename": removed}


@profile_router.post("/upload")
@limiter.limit(UPLOAD_LIMIT)
def upload_profile_picture(
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
    profile_picture: UploadFile = File(None, alias="profilePicture"),
):
    stored = UploadService.store_profile_picture(db, current_user, profile_picture)
    return {
        "message": "Profile picture uploaded successfully",
        "profilePicture": stored["url"],
        "filename": stored["filename"],
        "size": stored["size"],
    }


@profile_router.delete("/picture")
def delete_profile_picture(current_user: CurrentUser, db: DbSession):
    UploadService.delete_profile_picture(db, current_user)
    return {"message": "Profile picture deleted successfully"}
