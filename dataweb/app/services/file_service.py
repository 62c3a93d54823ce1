import json
import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Any, BinaryIO

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from dataweb.app.config import settings
from dataweb.app.errors import (
    InternalError,
    NotFoundError,
    PayloadTooLargeError,
    SecurityError,
    ValidationError,
)
from dataweb.app.models.dataset import Dataset

logger = logging.getLogger("dataweb.upload")

ALLOWED_EXTENSION = ".csv"
FIELD_DELIMITER = ","
CHUNK_SIZE = 64 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def validate_extension(filename: str) -> None:
    if not filename.lower().endswith(ALLOWED_EXTENSION):
        raise ValidationError("Only CSV files are allowed")


def too_large_error() -> PayloadTooLargeError:
    return PayloadTooLargeError(f"File too large — {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB max")


def user_upload_dir(user_id: int) -> Path:
    """Return the user's sandbox root, creating it if needed."""
    user_dir = Path(settings.UPLOAD_DIR) / f"user_{user_id}"
    user_dir.mkdir(parents=True, exist_ok=True)
    return user_dir.resolve()


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def generate_stored_name(filename: str) -> str:
    """Prefix the sanitized name with the upload time so earlier uploads are never overwritten."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{sanitize_filename(filename)}"


def is_within(path: Path, root: Path) -> bool:
    return path != root and root in path.parents


def remove_file(path: str | Path) -> None:
    """Best-effort delete; failures are logged, never raised."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove orphaned upload %s: %s", path, e)


def save_upload(user_id: int, filename: str, stream: BinaryIO) -> Path:
    """Copy ``stream`` into the user's sandbox and return the canonical path on disk.

    The write is capped at MAX_UPLOAD_SIZE; a partial file is removed when the
    cap is exceeded.
    """
    user_dir = user_upload_dir(user_id)
    destination = user_dir / generate_stored_name(filename)

    written = 0
    try:
        # "x" mode: exclusive create, never clobber another upload
        with open(destination, "xb") as f:
            while chunk := stream.read(CHUNK_SIZE):
                written += len(chunk)
                if written > settings.MAX_UPLOAD_SIZE:
                    raise too_large_error()
                f.write(chunk)
    except PayloadTooLargeError:
        remove_file(destination)
        raise
    except OSError as e:
        remove_file(destination)
        logger.error("Failed to write upload for user=%s: %s", user_id, e)
        raise InternalError("Failed to process upload")

    resolved = destination.resolve()
    if not is_within(resolved, user_dir):
        remove_file(resolved)
        logger.warning(
            "Upload escaped sandbox: user=%s original=%r resolved=%s", user_id, filename, resolved
        )
        raise SecurityError("Invalid file path detected")

    return resolved


def extract_schema(file_path: str | Path) -> dict[str, list[str]]:
    """Read the header row only and return ``{"columns": [...]}``.

    Raises ValidationError when the header is empty or cannot be decoded.
    """
    with open(file_path, "rb") as f:
        raw_header = f.readline()
    try:
        first_line = raw_header.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV header is not valid UTF-8")

    first_line = first_line.rstrip("\r\n")
    columns = [col.strip().strip("\"'") for col in first_line.split(FIELD_DELIMITER)]

    if not columns or columns[0] == "":
        raise ValidationError("CSV has no valid column headers")

    return {"columns": columns}


def decode_schema(schema_json: str | None) -> dict[str, Any] | None:
    """Parse a stored schema document; None when it is missing or unusable."""
    if not schema_json:
        return None
    try:
        schema = json.loads(schema_json)
    except (TypeError, ValueError):
        return None
    if not isinstance(schema, dict) or not isinstance(schema.get("columns"), list):
        return None
    return schema


def create_dataset(
    db: DBSession,
    user_id: int,
    filename: str,
    stream: BinaryIO,
    declared_size: int | None = None,
) -> Dataset:
    """Store an uploaded CSV and record it; the file is removed if any later step fails.

    The extension and the declared size are checked before anything is written.
    """
    validate_extension(filename)
    if declared_size is not None and declared_size > settings.MAX_UPLOAD_SIZE:
        raise too_large_error()

    file_path = save_upload(user_id, filename, stream)

    try:
        schema = extract_schema(file_path)
    except ValidationError:
        remove_file(file_path)
        raise

    dataset = Dataset(
        user_id=user_id,
        file_path=str(file_path),
        original_name=filename,
        schema_json=json.dumps(schema),
    )
    db.add(dataset)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        remove_file(file_path)
        logger.error("Failed to record dataset for user=%s: %s", user_id, e)
        raise InternalError("Failed to process upload")
    db.refresh(dataset)

    logger.info("Stored dataset id=%s user=%s columns=%d", dataset.id, user_id, len(schema["columns"]))
    return dataset


def get_owned_dataset(db: DBSession, dataset_id: int, user_id: int) -> Dataset:
    """Get a dataset owned by the user, or raise NotFoundError.

    Datasets belonging to other users are reported exactly like missing ones.
    """
    dataset = db.query(Dataset).filter(
        Dataset.id == dataset_id,
        Dataset.user_id == user_id,
    ).first()
    if not dataset:
        raise NotFoundError("Dataset not found")
    return dataset


def list_datasets(db: DBSession, user_id: int) -> list[Dataset]:
    return (
        db.query(Dataset)
        .filter(Dataset.user_id == user_id)
        .order_by(Dataset.uploaded_at.desc(), Dataset.id.desc())
        .all()
    )
