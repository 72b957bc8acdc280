from __future__ import annotations

import os
import time

from django.conf import settings
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import UploadedFile

UPLOAD_MAX_BYTES = getattr(settings, "LUCKYDRAW_UPLOAD_MAX_BYTES", 10 * 1024 * 1024)
AUDIO_CONTENT_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/ogg",
    "audio/aac",
    "audio/webm",
}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".ogg", ".aac", ".webm", ".m4a"}


class UploadRejected(Exception):
    """Raised when an uploaded media file has the wrong type or size."""


def _extension(upload: UploadedFile, default: str) -> str:
    ext = os.path.splitext(upload.name or "")[1].lower()
    return ext if ext else default


def _check_size(upload: UploadedFile) -> None:
    if upload.size > UPLOAD_MAX_BYTES:
        raise UploadRejected(
            f"File size must be less than {UPLOAD_MAX_BYTES // (1024 * 1024)}MB"
        )


def _store(upload: UploadedFile, folder: str, prefix: str, ext: str) -> str:
    name = f"{folder}/{prefix}-{int(time.time() * 1000)}{ext}"
    saved = default_storage.save(name, upload)
    return default_storage.url(saved)


def save_image(upload: UploadedFile, *, folder: str, prefix: str) -> str:
    """Store an image upload under ``folder`` and return its public URL."""
    content_type = (upload.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise UploadRejected("File must be an image")
    _check_size(upload)
    return _store(upload, folder, prefix, _extension(upload, ".jpg"))


def save_audio(upload: UploadedFile) -> str:
    content_type = (upload.content_type or "").lower()
    ext = _extension(upload, ".mp3")
    if content_type not in AUDIO_CONTENT_TYPES and ext not in AUDIO_EXTENSIONS:
        raise UploadRejected(
            "File must be an audio file (MP3, WAV, OGG, AAC, WebM, or M4A)"
        )
    _check_size(upload)
    return _store(upload, "audio", "winner-audio", ext)
