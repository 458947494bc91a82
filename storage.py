"""
Image and file storage on Cloudinary.

Uploads are staged to a local file first; ``staged_upload`` guarantees the
staging file is removed whatever happens to the request.
"""
import logging
import os
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

import config
from errors import UpstreamError, ValidationFailed

logger = logging.getLogger(__name__)

AVATAR_FOLDER = "blog/user/avatar"
POST_IMAGE_FOLDER = "blog/posts/postImage"
BACKGROUND_FOLDER = "blog/user/background"
AVATAR_TRANSFORM = {"width": 350, "height": 350, "gravity": "faces", "crop": "fill"}

cloudinary.config(
    cloud_name=config.CLOUDINARY_CLOUD_NAME,
    api_key=config.CLOUDINARY_API_KEY,
    api_secret=config.CLOUDINARY_API_SECRET,
    secure=True,
)


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def ensure_image(upload: UploadFile) -> None:
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationFailed("Only image files are allowed")


@contextmanager
def staged_upload(upload: UploadFile) -> Iterator[str]:
    """Write the multipart file to ``UPLOAD_DIR`` and yield its path."""
    Path(config.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix
    path = os.path.join(config.UPLOAD_DIR, f"{uuid.uuid4().hex}{suffix}")
    try:
        with open(path, "wb") as fh:
            shutil.copyfileobj(upload.file, fh)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


def upload_file(path: str, folder: str, resource_type: str = "auto", **options) -> Dict[str, str]:
    try:
        result = cloudinary.uploader.upload(
            path,
            folder=folder,
            resource_type=resource_type,
            timeout=config.STORAGE_TIMEOUT,
            **options,
        )
    except Exception as exc:
        logger.warning("Upload to %s failed: %s", folder, exc)
        raise UpstreamError("File not uploaded, please try again")
    return {"resource_id": result["public_id"], "resource_url": result["secure_url"]}


def upload_image(path: str, folder: str, **transform) -> Dict[str, str]:
    return upload_file(path, folder, resource_type="image", **transform)


def store_upload(upload: UploadFile, folder: str, resource_type: str = "image", **options) -> Dict[str, str]:
    with staged_upload(upload) as path:
        return upload_file(path, folder, resource_type=resource_type, **options)


def destroy(resource_id: Optional[str]) -> None:
    """Delete an asset. Missing assets count as already deleted."""
    if not resource_id:
        return
    try:
        result = cloudinary.uploader.destroy(resource_id, timeout=config.STORAGE_TIMEOUT)
    except Exception as exc:
        logger.warning("Could not delete asset %s: %s", resource_id, exc)
        raise UpstreamError("Could not delete the stored file, please try again")
    if result.get("result") not in ("ok", "not found"):
        logger.warning("Unexpected delete result for %s: %s", resource_id, result)
        raise UpstreamError("Could not delete the stored file, please try again")
