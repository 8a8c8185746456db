"""Upload ingestion helpers (Stage 01 of the response pipeline)."""

from __future__ import annotations

import mimetypes
import time
from typing import Final
from uuid import UUID

from fastapi import UploadFile

from oralassess.services.errors import InvalidResponseUpload

# Browser MediaRecorder output plus the common uploaded formats.
_EXTENSIONS: Final[dict[str, str]] = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/m4a": "m4a",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}


def normalize_mime_type(content_type: str | None, filename: str | None = None) -> str:
    """Drop codec parameters (``audio/webm;codecs=opus``) and validate the type."""

    mime_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not mime_type and filename:
        guessed_type, _ = mimetypes.guess_type(filename)
        mime_type = guessed_type or ""
    mime_type = mime_type or "audio/webm"

    if mime_type not in _EXTENSIONS:
        raise InvalidResponseUpload(f"Unsupported audio format: {mime_type}")
    return mime_type


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "webm")


def storage_path_for(submission_id: UUID, question_id: UUID, mime_type: str) -> str:
    """Object key ``<submission>/<question>/<epoch-millis>.<ext>``."""

    timestamp = int(time.time() * 1000)
    return f"{submission_id}/{question_id}/{timestamp}.{extension_for(mime_type)}"


async def read_audio_bytes(audio_file: UploadFile) -> bytes:
    """Load the upload fully into memory, rejecting empty payloads."""

    audio_bytes = await audio_file.read()
    await audio_file.close()

    if not audio_bytes:
        raise InvalidResponseUpload("The recording is empty.")
    return audio_bytes


__all__ = ["extension_for", "normalize_mime_type", "read_audio_bytes", "storage_path_for"]
