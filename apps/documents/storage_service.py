"""
File storage helpers shared by project documents and ticket attachments.
Goes through Django's default storage: S3 when USE_S3_STORAGE is set,
the local filesystem otherwise (see config/storage.py).
"""
import logging
import uuid
from typing import Optional, Tuple

from django.core.files.storage import default_storage
from django.core.files.uploadedfile import UploadedFile

from config.storage import is_s3_enabled

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    'application/pdf': 'pdf',
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
    'text/plain': 'txt',
}

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB


def validate_upload_file(file: UploadedFile) -> Tuple[bool, Optional[str]]:
    """
    Validate an uploaded file against the size and type limits.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not file.size:
        return False, "File is empty"

    if file.size > MAX_FILE_SIZE:
        return False, f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)} MB"

    if file.content_type not in ALLOWED_MIME_TYPES:
        return False, f"Invalid file type: {file.content_type}. Allowed: PDF, JPEG, PNG, WEBP, TXT"

    return True, None


def build_storage_path(prefix: str, file: UploadedFile) -> str:
    """Unique object key: <prefix>/<uuid>.<ext>."""
    extension = ALLOWED_MIME_TYPES.get(file.content_type)
    if not extension and '.' in (file.name or ''):
        extension = file.name.rsplit('.', 1)[-1].lower()
    return f"{prefix}/{uuid.uuid4().hex}.{extension or 'bin'}"


def save_file(file: UploadedFile, prefix: str) -> str:
    """
    Validate and store the file. Returns the storage path actually used.

    Raises:
        ValueError: If validation or the upload fails
    """
    is_valid, error = validate_upload_file(file)
    if not is_valid:
        raise ValueError(error)

    path = build_storage_path(prefix, file)
    try:
        saved_path = default_storage.save(path, file)
    except Exception as e:
        logger.error(f"Upload of {path} failed: {e}")
        raise ValueError("Failed to store the file")

    if not is_s3_enabled():
        logger.debug(f"Stored {saved_path} on local storage")
    return saved_path


def delete_file(path: str) -> None:
    """Remove a stored object. Missing objects are ignored."""
    try:
        default_storage.delete(path)
    except Exception as e:
        logger.warning(f"Could not delete stored file {path}: {e}")


def get_download_url(path: str) -> str:
    """Signed URL on S3, media URL locally."""
    return default_storage.url(path)
