"""Audio upload handling for response submissions."""

import re
import time
from pathlib import Path

import structlog
from fastapi import UploadFile

from language_test_api.errors import ValidationError

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


def upload_filename(original_name: str | None, now: float | None = None) -> str:
    """``<epoch millis>-<original name>`` with whitespace runs replaced by ``_``."""
    timestamp = int((now if now is not None else time.time()) * 1000)
    name = Path(original_name or "audio").name
    safe_name = re.sub(r"\s+", "_", name)
    return f"{timestamp}-{safe_name}"


async def save_audio_upload(upload: UploadFile, uploads_dir: Path, max_bytes: int) -> Path:
    """Store an uploaded audio file, enforcing MIME type and size limit.

    Raises:
        ValidationError: Not an ``audio/*`` upload, or larger than ``max_bytes``.
    """
    content_type = upload.content_type or ""
    if not content_type.startswith("audio/"):
        raise ValidationError("Only audio files are allowed")

    path = uploads_dir / upload_filename(upload.filename)
    written = 0
    with open(path, "wb") as out:
        while chunk := await upload.read(CHUNK_SIZE):
            written += len(chunk)
            if written > max_bytes:
                break
            out.write(chunk)

    if written > max_bytes:
        path.unlink(missing_ok=True)
        raise ValidationError(f"Audio file exceeds {max_bytes} bytes")

    logger.info("audio_uploaded", path=str(path), size=written)
    return path
