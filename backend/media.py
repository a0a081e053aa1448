"""
backend/media.py

Image upload and removal on Cloudinary.

Images are stored under IMAGE_FOLDER; documents keep only the secure URL.
The Cloudinary public id is recovered from that URL as "<folder>/<name>".
"""

from __future__ import annotations

from typing import Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi import HTTPException, UploadFile

from backend import config
from backend.config import ALLOWED_IMAGE_FORMATS, IS_DEV


def configure_cloudinary() -> bool:
    """
    Configure the Cloudinary SDK from the environment.

    Returns:
        True when credentials are present. Missing credentials are logged and
        the app keeps running; image endpoints then fail at upload time.
    """
    if not (config.CLOUD_NAME and config.API_KEY and config.API_SECRET):
        print("[MEDIA] Cloudinary config is missing (CLOUD_NAME, API_KEY, API_SECRET)")
        return False

    cloudinary.config(
        cloud_name=config.CLOUD_NAME,
        api_key=config.API_KEY,
        api_secret=config.API_SECRET,
        secure=True,
    )
    print("[MEDIA] Cloudinary configured")
    return True


def image_extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def public_id_from_url(url: str) -> str:
    """
    Derive the Cloudinary public id from a delivery URL.

    Example:
        https://res.cloudinary.com/demo/image/upload/v1234/Lokalqy/house.jpg
        -> "Lokalqy/house"
    """
    parts = url.rstrip("/").split("/")
    name = parts[-1].split(".")[0]
    return f"{parts[-2]}/{name}"


def upload_image(upload: UploadFile) -> str:
    """
    Upload an image file to Cloudinary and return its secure URL.

    Raises:
        HTTPException(400): File has no allowed image extension
        HTTPException(502): Cloudinary rejected the upload
    """
    ext = image_extension(upload.filename)
    if ext not in ALLOWED_IMAGE_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid image format, allowed: {', '.join(ALLOWED_IMAGE_FORMATS)}",
        )

    try:
        result = cloudinary.uploader.upload(
            upload.file,
            folder=config.IMAGE_FOLDER,
            allowed_formats=list(ALLOWED_IMAGE_FORMATS),
        )
    except (CloudinaryError, ValueError) as e:
        # ValueError: SDK not configured (missing api_key and friends)
        print(f"[MEDIA] Upload failed: {e}")
        raise HTTPException(status_code=502, detail="Image upload failed")

    url = result.get("secure_url") or result.get("url")
    if not url:
        print(f"[MEDIA] Upload returned no URL: public_id={result.get('public_id')}")
        raise HTTPException(status_code=502, detail="Image upload failed")

    if IS_DEV:
        print(f"[MEDIA] Uploaded image: public_id={result.get('public_id')}")
    return url


def delete_image(url: Optional[str]) -> bool:
    """
    Remove a previously uploaded image.

    Returns:
        True if Cloudinary accepted the deletion. Failures are logged and
        reported as False so the caller's database change still stands.
    """
    if not url:
        return False

    public_id = public_id_from_url(url)
    try:
        result = cloudinary.uploader.destroy(public_id)
    except (CloudinaryError, ValueError) as e:
        print(f"[MEDIA] Delete failed: public_id={public_id}, error={e}")
        return False

    if IS_DEV:
        print(f"[MEDIA] Deleted image: public_id={public_id}, result={result.get('result')}")
    return result.get("result") == "ok"


def replace_stored_image(previous: Optional[str], current: Optional[str]) -> None:
    """Delete the previous image once a document points at a different one."""
    if previous and current and previous != current:
        delete_image(previous)
