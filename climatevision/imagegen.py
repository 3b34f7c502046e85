"""Climate effect image generation using Gemini image models."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any

import httpx
from rich.console import Console

from .api_utils import make_api_request, response_json
from .config import ClimateVisionConfig
from .errors import ConfigurationError, NoImageDataError, NoResultError, ProviderError, ValidationError
from .media import encode_base64, ensure_supported_image
from .prompts import get_transform_prompt

console = Console()

ERROR_PREFIX = "Failed to generate climate effect"


@dataclass
class GeneratedImage:
    """Transformed image returned by the provider."""

    data: bytes
    mime_type: str
    description: str


def build_payload(image: bytes, mime_type: str, description: str) -> dict[str, Any]:
    """Build a generateContent request body."""
    return {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {"text": get_transform_prompt(description)},
                    {"inline_data": {"mime_type": mime_type, "data": encode_base64(image)}},
                ],
            }
        ],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }


def extract_image(result: dict[str, Any]) -> tuple[bytes, str]:
    """
    Pull the first inline image out of a generateContent response.

    Raises:
        NoResultError: If there are no candidates
        NoImageDataError: If no candidate part carries image bytes
    """
    candidates = result.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise NoResultError(f"{ERROR_PREFIX}: No candidates returned from Gemini API")

    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    for part in parts if isinstance(parts, list) else []:
        if not isinstance(part, dict):
            continue
        # REST responses use camelCase, some proxies keep snake_case
        inline = part.get("inlineData") or part.get("inline_data")
        if not isinstance(inline, dict) or not isinstance(inline.get("data"), str) or not inline["data"]:
            continue
        try:
            data = base64.b64decode(inline["data"])
        except (binascii.Error, ValueError) as e:
            raise ProviderError(f"{ERROR_PREFIX}: Invalid image payload: {e}") from e
        if data:
            mime_type = inline.get("mimeType") or inline.get("mime_type")
            return data, mime_type if isinstance(mime_type, str) else "image/png"

    raise NoImageDataError(f"{ERROR_PREFIX}: No image data found in response")


def generate_climate_effect(
    image: bytes,
    mime_type: str | None,
    description: str,
    config: ClimateVisionConfig,
    api_key: str | None = None,
    client: httpx.Client | None = None,
) -> GeneratedImage:
    """
    Transform an image according to a climate effect or solution description.

    Args:
        image: Source image bytes
        mime_type: Declared MIME type of the source image
        description: Free-text description of the scenario
        config: ClimateVision configuration
        api_key: Optional key overriding the configured one
        client: Optional httpx client (a short-lived one is created otherwise)

    Returns:
        GeneratedImage with non-empty bytes

    Raises:
        ValidationError: Empty description or unsupported image, before any request
        ConfigurationError: No Gemini API key
        NoResultError, NoImageDataError, ProviderError: Provider failures
    """
    if not description or not description.strip():
        raise ValidationError(
            "Please provide a description of the effect you want to create",
            fields=["description"],
        )
    effective_type = ensure_supported_image(image, mime_type)

    key = api_key or config.gemini_api_key
    if not key:
        raise ConfigurationError(
            "Gemini API key not configured. Set GEMINI_API_KEY or run "
            "'climatevision config --set-gemini-key'."
        )

    url = f"{config.gemini_api_base.rstrip('/')}/v1beta/models/{config.image_model}:generateContent"
    payload = build_payload(image, effective_type, description)

    owns_client = client is None
    http = client or httpx.Client(timeout=config.image_timeout)
    try:
        response = make_api_request(
            http,
            "POST",
            url,
            operation_name="Gemini image generation",
            headers={"x-goog-api-key": key, "Content-Type": "application/json"},
            json=payload,
        )
        result = response_json(response, "Gemini image generation")
    except httpx.TimeoutException as e:
        raise ProviderError(f"{ERROR_PREFIX}: request timed out") from e
    except ProviderError as e:
        if str(e).startswith(ERROR_PREFIX):
            raise
        raise ProviderError(f"{ERROR_PREFIX}: {e}", status_code=e.status_code) from e
    finally:
        if owns_client:
            http.close()

    if not isinstance(result, dict):
        raise NoResultError(f"{ERROR_PREFIX}: No candidates returned from Gemini API")

    data, result_type = extract_image(result)
    console.print(f"[green]Generated image:[/] {len(data)} bytes ({result_type})")
    return GeneratedImage(data=data, mime_type=result_type, description=description.strip())
