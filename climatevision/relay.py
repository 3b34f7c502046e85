"""Backend relay function for video generation.

Holds the provider credential server-side. Each call runs a fixed chain of
steps; any failure stops the chain and is reported with the step name:

1. api_key_check         provider key configured
2. json_parse            request body is a JSON object
3. parameter_validation  image and prompt present
4. image_upload          inline image written to object storage
5. public_url            fetchable URL for the stored object
6. video_generation      provider called with the public URL

Unexpected exceptions are tagged ``execution_error``. Nothing is retried and
nothing is deduplicated: every call stores a new object.
"""

from __future__ import annotations

import json
import traceback
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from rich.console import Console
from starlette.concurrency import run_in_threadpool

from .api_utils import make_api_request, response_json
from .errors import ProviderError, StorageError, ValidationError
from .media import decode_base64, sniff_image_type, split_data_url
from .storage import ObjectStorage, generate_object_name
from .videogen import build_provider_payload, extract_video

if TYPE_CHECKING:
    from .config import ClimateVisionConfig

console = Console()

RELAY_PATH = "/functions/v1/generate-video"
OBJECT_PREFIX = "climate-image"


@dataclass
class RelayResponse:
    """Status code and JSON body returned by the relay."""

    status_code: int
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class RelayStepError(Exception):
    """Failure inside a relay step."""

    def __init__(self, step: str, message: str, status_code: int = 500, **extra: Any) -> None:
        super().__init__(message)
        self.step = step
        self.status_code = status_code
        self.extra = extra

    def to_response(self) -> RelayResponse:
        return RelayResponse(
            status_code=self.status_code,
            payload={"error": str(self), "step": self.step, **self.extra},
        )


def _decode_image(image_data: str) -> tuple[bytes, str]:
    """Decode an inline image payload into bytes and MIME type."""
    declared = None
    if image_data.startswith("data:"):
        declared, _ = split_data_url(image_data)
    data = decode_base64(image_data)
    mime_type = declared if declared and declared.startswith("image/") else None
    return data, mime_type or sniff_image_type(data) or "image/png"


def handle_generate_video(
    raw_body: bytes | str | dict[str, Any],
    config: ClimateVisionConfig,
    storage: ObjectStorage,
    client: httpx.Client | None = None,
) -> RelayResponse:
    """
    Run one relay invocation.

    Args:
        raw_body: Request body (raw JSON text or an already parsed object)
        config: ClimateVision configuration holding the provider key
        storage: Object storage used to publish the image
        client: Optional httpx client for the provider call

    Returns:
        RelayResponse with ``{success, videoUrl, imageUrl}`` or ``{error, step, ...}``
    """
    console.print("[bold]=== VIDEO GENERATION REQUEST START ===[/]")
    try:
        return _run_steps(raw_body, config, storage, client)
    except RelayStepError as e:
        console.print(f"[red]Relay failed at step {e.step}:[/] {e}")
        return e.to_response()
    except Exception as e:
        console.print(f"[red]=== VIDEO GENERATION ERROR ({type(e).__name__}) ===[/] {e}")
        return RelayResponse(
            status_code=500,
            payload={
                "error": str(e) or "Unknown error occurred",
                "details": traceback.format_exc(),
                "step": "execution_error",
            },
        )


def _run_steps(
    raw_body: bytes | str | dict[str, Any],
    config: ClimateVisionConfig,
    storage: ObjectStorage,
    client: httpx.Client | None,
) -> RelayResponse:
    # 1. Provider credential
    console.print(f"[dim]FAL_API_KEY exists: {bool(config.fal_api_key)}[/]")
    if not config.fal_api_key:
        raise RelayStepError(
            "api_key_check",
            "FAL API key not configured. Please add FAL_API_KEY to the relay environment.",
            status_code=400,
        )

    # 2. Body
    if isinstance(raw_body, dict):
        body = raw_body
    else:
        try:
            body = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RelayStepError(
                "json_parse", "Invalid JSON in request body", status_code=400, details=str(e)
            ) from e
        if not isinstance(body, dict):
            raise RelayStepError(
                "json_parse", "Request body must be a JSON object", status_code=400
            )

    # 3. Parameters
    image_data = body.get("imageData")
    image_url = body.get("imageUrl")
    prompt = body.get("prompt")
    has_image = bool(image_data) or bool(image_url)
    has_prompt = isinstance(prompt, str) and bool(prompt.strip())
    if not has_image or not has_prompt:
        raise RelayStepError(
            "parameter_validation",
            "Missing required parameters: imageData and prompt are required",
            status_code=400,
            received={"hasImageData": has_image, "hasPrompt": has_prompt},
        )
    console.print(f"[dim]Parameters validated, prompt length: {len(prompt)}[/]")

    if image_data:
        # 4. Store image (the provider needs a URL, not inline bytes)
        try:
            data, mime_type = _decode_image(str(image_data))
        except ValidationError as e:
            raise RelayStepError("image_upload", f"Image processing failed: {e}") from e
        name = generate_object_name(OBJECT_PREFIX, mime_type)
        try:
            storage.upload(config.image_bucket, name, data, mime_type)
        except StorageError as e:
            raise RelayStepError("image_upload", f"Image processing failed: {e}") from e
        console.print(f"[dim]Image uploaded: {name} ({len(data)} bytes)[/]")

        # 5. Public URL
        try:
            image_url = storage.public_url(config.image_bucket, name)
        except StorageError as e:
            raise RelayStepError("public_url", str(e)) from e
        console.print(f"[dim]Public URL generated: {image_url}[/]")
    elif not str(image_url).startswith(("http://", "https://")):
        raise RelayStepError(
            "parameter_validation", "imageUrl must be an http(s) URL", status_code=400
        )

    # 6. Provider call
    url = f"{config.fal_run_base.rstrip('/')}/{config.video_model.strip('/')}"
    payload = build_provider_payload(config, prompt.strip(), str(image_url))
    http = client or httpx.Client(timeout=config.video_timeout)
    try:
        response = make_api_request(
            http,
            "POST",
            url,
            operation_name="FAL API",
            step="video_generation",
            headers={"Authorization": f"Key {config.fal_api_key}", "Content-Type": "application/json"},
            json=payload,
        )
        video = extract_video(response_json(response, "FAL API"))
    except httpx.TimeoutException as e:
        raise RelayStepError("video_generation", f"FAL API timed out: {e}", status_code=504) from e
    except ProviderError as e:
        raise RelayStepError("video_generation", str(e)) from e
    finally:
        if client is None:
            http.close()

    console.print(f"[green]Video generation completed:[/] {video.url}")
    return RelayResponse(
        status_code=200,
        payload={"success": True, "videoUrl": video.url, "imageUrl": image_url},
    )


def register_relay_routes(
    app: FastAPI,
    config: ClimateVisionConfig,
    storage: ObjectStorage,
    client: httpx.Client | None = None,
) -> None:
    """Attach the relay endpoint to an app."""

    @app.post(RELAY_PATH)
    async def generate_video(request: Request) -> JSONResponse:
        """Relay a video generation request to the provider."""
        raw = await request.body()
        result = await run_in_threadpool(handle_generate_video, raw, config, storage, client)
        return JSONResponse(content=result.payload, status_code=result.status_code)


def create_relay_app(
    config: ClimateVisionConfig,
    storage: ObjectStorage,
    client: httpx.Client | None = None,
) -> FastAPI:
    """Create a standalone FastAPI app serving only the relay function."""
    app = FastAPI(
        title="ClimateVision Relay",
        description="Server-side video generation relay",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    register_relay_routes(app, config, storage, client)
    return app
