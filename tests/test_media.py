"""Tests for media encoding helpers."""

import base64

import pytest

from climatevision.errors import ValidationError
from climatevision.media import (
    ObjectUrlRegistry,
    decode_base64,
    ensure_supported_image,
    extension_for,
    sniff_image_type,
    split_data_url,
    to_data_url,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 24


class TestBase64:
    """Tests for base64 and data URL handling."""

    def test_decode_accepts_data_url(self) -> None:
        data_url = to_data_url(PNG_BYTES, "image/png")

        assert data_url.startswith("data:image/png;base64,")
        assert decode_base64(data_url) == PNG_BYTES

    def test_decode_accepts_bare_payload(self) -> None:
        assert decode_base64(base64.b64encode(JPEG_BYTES).decode()) == JPEG_BYTES

    def test_decode_rejects_garbage(self) -> None:
        with pytest.raises(ValidationError):
            decode_base64("not base64 !!!")

    def test_decode_rejects_empty(self) -> None:
        with pytest.raises(ValidationError):
            decode_base64("data:image/png;base64,")

    def test_split_data_url(self) -> None:
        mime_type, payload = split_data_url("data:image/webp;base64,AAAA")

        assert mime_type == "image/webp"
        assert payload == "AAAA"


class TestImageTypes:
    """Tests for type detection and validation."""

    def test_sniff_png_and_jpeg(self) -> None:
        assert sniff_image_type(PNG_BYTES) == "image/png"
        assert sniff_image_type(JPEG_BYTES) == "image/jpeg"
        assert sniff_image_type(b"plain text") is None

    def test_declared_supported_type_wins(self) -> None:
        assert ensure_supported_image(PNG_BYTES, "image/webp") == "image/webp"

    def test_unknown_declared_type_is_sniffed(self) -> None:
        assert ensure_supported_image(JPEG_BYTES, "application/octet-stream") == "image/jpeg"

    def test_unsupported_bytes_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            ensure_supported_image(b"%PDF-1.7", "application/pdf")
        assert exc_info.value.fields == ["image"]

    def test_empty_image_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ensure_supported_image(b"", "image/png")

    def test_extension_for(self) -> None:
        assert extension_for("image/jpeg") == "jpg"
        assert extension_for("image/unknown") == "png"


class TestObjectUrlRegistry:
    """Tests for session object URLs."""

    def test_create_get_revoke(self) -> None:
        registry = ObjectUrlRegistry()

        url = registry.create(PNG_BYTES, "image/png")

        assert url.startswith("blob:")
        assert registry.get(url).data == PNG_BYTES
        registry.revoke(url)
        assert registry.get(url) is None

    def test_urls_are_unique(self) -> None:
        registry = ObjectUrlRegistry()

        first = registry.create(PNG_BYTES, "image/png")
        second = registry.create(PNG_BYTES, "image/png")

        assert first != second
        assert len(registry) == 2
        registry.clear()
        assert len(registry) == 0
