import os

from storefront.core.config import settings
from storefront.uploads.service import PROFILES_DIR, PRODUCTS_DIR, upload_path

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def image(name="logo.png", content=PNG_BYTES, mimetype="image/png"):
    return (name, content, mimetype)


def test_admin_uploads_product_image(client, admin_headers):
    response = client.post("/api/upload", files={"image": image()}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Image uploaded successfully"
    assert body["image"] == f"/uploads/{PRODUCTS_DIR}/{body['filename']}"
    assert body["filename"].startswith("image-") and body["filename"].endswith(".png")
    assert body["size"] == len(PNG_BYTES)
    assert body["mimetype"] == "image/png"
    assert os.path.isfile(upload_path(PRODUCTS_DIR, body["filename"]))

    served = client.get(body["image"])
    assert served.status_code == 200
    assert served.content == PNG_BYTES


def test_product_upload_is_admin_only(client, auth_headers):
    response = client.post("/api/upload", files={"image": image()}, headers=auth_headers)

    assert response.status_code == 403


def test_upload_rejects_missing_and_wrong_files(client, admin_headers):
    missing = client.post("/api/upload", headers=admin_headers)
    assert missing.status_code == 400
    assert missing.json()["error"]["message"] == "No file uploaded. Please select an image file."

    text = client.post(
        "/api/upload", files={"image": image("notes.txt", b"hello", "text/plain")}, headers=admin_headers
    )
    assert text.status_code == 400
    assert text.json()["error"]["code"] == "INVALID_FILE_TYPE"

    disguised = client.post(
        "/api/upload", files={"image": image("photo.png", b"MZ", "application/x-msdownload")}, headers=admin_headers
    )
    assert disguised.status_code == 400


def test_upload_too_large_is_removed(client, admin_headers, mocker):
    mocker.patch.object(settings, "MAX_UPLOAD_SIZE", 16)
    before = set(os.listdir(upload_path(PRODUCTS_DIR))) if os.path.isdir(upload_path(PRODUCTS_DIR)) else set()

    response = client.post("/api/upload", files={"image": image()}, headers=admin_headers)

    assert response.status_code == 413
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"
    assert set(os.listdir(upload_path(PRODUCTS_DIR))) == before


def test_delete_product_image(client, admin_headers):
    filename = client.post("/api/upload", files={"image": image()}, headers=admin_headers).json()["filename"]

    deleted = client.delete(f"/api/upload/{filename}", headers=admin_headers)
    assert deleted.json() == {"message": "Image deleted successfully", "filename": filename}
    assert not os.path.exists(upload_path(PRODUCTS_DIR, filename))

    again = client.delete(f"/api/upload/{filename}", headers=admin_headers)
    assert again.status_code == 404
    assert again.json()["error"]["message"] == "Image not found"


def test_profile_picture_replaces_previous(client, db_session, test_user, auth_headers):
    first = client.post(
        "/api/profile/upload", files={"profilePicture": image("me.jpg", b"jpeg-one", "image/jpeg")}, headers=auth_headers
    ).json()
    assert first["profilePicture"] == f"/uploads/{PROFILES_DIR}/{first['filename']}"
    assert first["filename"].startswith(f"profile_{test_user.id}_")

    second = client.post(
        "/api/profile/upload", files={"profilePicture": image("me2.webp", b"webp-two", "image/webp")}, headers=auth_headers
    ).json()

    db_session.refresh(test_user)
    assert test_user.profile_picture == second["profilePicture"]
    assert not os.path.exists(upload_path(PROFILES_DIR, first["filename"]))
    assert os.path.isfile(upload_path(PROFILES_DIR, second["filename"]))


def test_delete_profile_picture(client, db_session, test_user, auth_headers):
    nothing = client.delete("/api/profile/picture", headers=auth_headers)
    assert nothing.status_code == 400
    assert nothing.json()["error"]["message"] == "No profile picture to delete"

    stored = client.post(
        "/api/profile/upload", files={"profilePicture": image()}, headers=auth_headers
    ).json()

    response = client.delete("/api/profile/picture", headers=auth_headers)

    assert response.json() == {"message": "Profile picture deleted successfully"}
    db_session.refresh(test_user)
    assert test_user.profile_picture is None
    assert not os.path.exists(upload_path(PROFILES_DIR, stored["filename"]))
