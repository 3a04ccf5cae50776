"""Player photos kept in the hosted storage bucket."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import psycopg

from clubhouse import db
from clubhouse.settings import (
    ALLOWED_IMAGE_TYPES,
    MAX_PHOTO_SIZE_BYTES,
    MAX_PHOTO_SIZE_MB,
    SIGNED_URL_EXPIRY_SECONDS,
)
from clubhouse.storage_api import StorageApiError, StorageClient
from clubhouse.validation import format_error

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    success: bool
    path: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def validate_image_file(size: int, content_type: str | None) -> ValidationResult:
    if size > MAX_PHOTO_SIZE_BYTES:
        return ValidationResult(False, f"File size must be less than {MAX_PHOTO_SIZE_MB}MB")
    if (content_type or "").lower() not in ALLOWED_IMAGE_TYPES:
        return ValidationResult(False, "File must be JPEG, PNG, or WebP format")
    return ValidationResult(True)


def generate_player_photo_path(
    player_id: str, filename: str, now_ms: int | None = None
) -> str:
    ext = ""
    if "." in (filename or ""):
        ext = filename.rsplit(".", 1)[1].lower()
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{player_id}/profile_{timestamp}.{ext or 'jpg'}"


def get_player_photo_signed_url(
    client: StorageClient, bucket: str, storage_path: str | None
) -> Optional[str]:
    if not storage_path:
        return None
    try:
        return client.create_signed_url(bucket, storage_path, SIGNED_URL_EXPIRY_SECONDS)
    except StorageApiError as exc:
        logger.warning("Signed URL error for %s: %s", storage_path, exc)
        return None


def upload_player_photo(
    client: StorageClient,
    bucket: str,
    player_id: str,
    filename: str,
    content: bytes,
    content_type: str,
) -> UploadResult:
    validation = validate_image_file(len(content), content_type)
    if not validation.valid:
        return UploadResult(False, error=validation.error)
    storage_path = generate_player_photo_path(player_id, filename)
    try:
        stored_path = client.upload(bucket, storage_path, content, content_type)
    except (StorageApiError, OSError) as exc:
        logger.warning("Upload error for player %s: %s", player_id, exc)
        return UploadResult(False, error=format_error(exc) or "Failed to upload photo")
    return UploadResult(
        True,
        path=stored_path,
        url=get_player_photo_signed_url(client, bucket, stored_path),
    )


def delete_player_photo(client: StorageClient, bucket: str, storage_path: str) -> bool:
    try:
        client.remove(bucket, [storage_path])
    except (StorageApiError, OSError) as exc:
        logger.warning("Delete error for %s: %s", storage_path, exc)
        return False
    return True


def update_player_photo_in_db(
    database_url: str,
    player_id: str,
    storage_path: str | None,
    photo_url: str | None = None,
) -> bool:
    try:
        return db.update_player_photo(database_url, player_id, storage_path, photo_url)
    except psycopg.Error:
        logger.exception("Database update error for player %s photo", player_id)
        return False


def upload_and_save_player_photo(
    client: StorageClient,
    bucket: str,
    database_url: str,
    player_id: str,
    filename: str,
    content: bytes,
    content_type: str,
    old_storage_path: str | None = None,
) -> UploadResult:
    result = upload_player_photo(client, bucket, player_id, filename, content, content_type)
    if not result.success:
        return result

    if not update_player_photo_in_db(database_url, player_id, result.path, result.url):
        if result.path:
            delete_player_photo(client, bucket, result.path)
        return UploadResult(False, error="Failed to update database")

    if old_storage_path:
        delete_player_photo(client, bucket, old_storage_path)
    return result


def remove_player_photo(
    client: StorageClient, bucket: str, database_url: str, player_id: str, storage_path: str | None
) -> bool:
    if not update_player_photo_in_db(database_url, player_id, None, None):
        return False
    if storage_path:
        delete_player_photo(client, bucket, storage_path)
    return True
