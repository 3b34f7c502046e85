"""Media encoding helpers: bytes, base64, data URLs, and object URLs."""

from __future__ import annotations

import base64
import binascii
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

from .errors import ValidationError

# Bitmap types accepted by the image provider
SUPPORTED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/gif",
    "image/heic",
    "image/heif",
}

_SUFFIX_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".mp4": "video/mp4",
}

_TYPE_SUFFIXES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
    "video/mp4": "mp4",
}


def encode_base64(data: bytes) -> str:
    """Encode raw bytes to base64 text."""
    return base64.b64encode(data).decode("utf-8")


def decode_base64(payload: str) -> bytes:
    """
    Decode base64 text, accepting both bare payloads and data URLs.

    Raises:
        ValidationError: If the payload is empty or not valid base64
    """
    if payload.startswith("data:"):
        _, payload = split_data_url(payload)
    payload = payload.strip()
    if not payload:
        raise ValidationError("Empty image payload", fields=["imageData"])
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 image payload: {e}", fields=["imageData"]) from e


def to_data_url(data: bytes, mime_type: str) -> str:
    """Build a data URL from bytes."""
    return f"data:{mime_type};base64,{encode_base64(data)}"


def split_data_url(data_url: str) -> tuple[str, str]:
    """Split a data URL into (mime_type, base64_payload)."""
    header, _, payload = data_url.partition(",")
    mime_type = header.removeprefix("data:").split(";")[0] or "application/octet-stream"
    return mime_type, payload


def get_media_type(path: Path) -> str:
    """Get MIME type for a media file."""
    return _SUFFIX_TYPES.get(path.suffix.lower(), "image/jpeg")


def extension_for(mime_type: str) -> str:
    """File extension (without dot) for a MIME type."""
    return _TYPE_SUFFIXES.get(mime_type.lower(), "png")


def sniff_image_type(data: bytes) -> str | None:
    """Detect image MIME type from magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1"):
        return "image/heic"
    return None


def ensure_supported_image(data: bytes, mime_type: str | None) -> str:
    """
    Validate image bytes and return the effective MIME type.

    The declared type wins when it is supported; otherwise the bytes are sniffed.
    """
    if not data:
        raise ValidationError("Please upload an image first", fields=["image"])
    declared = (mime_type or "").lower()
    if declared in SUPPORTED_IMAGE_TYPES:
        return declared
    sniffed = sniff_image_type(data)
    if sniffed:
        return sniffed
    raise ValidationError(
        f"Unsupported image type: {mime_type or 'unknown'}", fields=["image"]
    )


@dataclass
class MediaObject:
    """In-memory blob addressed by an object URL."""

    data: bytes
    mime_type: str


class ObjectUrlRegistry:
    """
    Session-scoped mapping of ``blob:`` handles to in-memory media.

    Handles stay valid until revoked or until the registry is cleared.
    """

    def __init__(self) -> None:
        self._objects: dict[str, MediaObject] = {}
        self._lock = threading.Lock()

    def create(self, data: bytes, mime_type: str) -> str:
        url = f"blob:climatevision/{uuid.uuid4()}"
        with self._lock:
            self._objects[url] = MediaObject(data=data, mime_type=mime_type)
        return url

    def get(self, url: str) -> MediaObject | None:
        with self._lock:
            return self._objects.get(url)

    def revoke(self, url: str) -> None:
        with self._lock:
            self._objects.pop(url, None)

    def clear(self) -> None:
        with self._lock:
            self._objects.clear()

    def __len__(self) -> int:
        return len(self._objects)
