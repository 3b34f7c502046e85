"""Image-to-video generation through FAL, directly or via the relay function."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from rich.console import Console

from .api_utils import make_api_request, response_json
from .config import ClimateVisionConfig
from .credentials import FAL_API_KEY, CredentialStore
from .errors import ConfigurationError, GenerationTimeoutError, ProviderError, ValidationError
from .fallback import FallbackPolicy
from .media import ensure_supported_image, to_data_url

console = Console()

ERROR_PREFIX = "Failed to generate video"

# Terminal queue states reported by the provider
QUEUE_DONE = "COMPLETED"
QUEUE_PENDING = ("IN_QUEUE", "IN_PROGRESS")

VIDEO_MODES = ("auto", "direct", "relay")

StatusCallback = Callable[[str, dict[str, Any]], None]


@dataclass
class GeneratedVideo:
    """Playable video returned by the provider (or a canned fallback)."""

    url: str
    content_type: str = "video/mp4"
    file_name: str = "climate-video.mp4"
    file_size: int = 0
    fallback: bool = False
    image_url: str | None = None


def extract_video(result: Any) -> GeneratedVideo:
    """Build a GeneratedVideo from a provider result payload."""
    video = result.get("video") if isinstance(result, dict) else None
    if not isinstance(video, dict):
        raise ProviderError(f"{ERROR_PREFIX}: No video URL returned from FAL API")
    url = video.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ProviderError(f"{ERROR_PREFIX}: No video URL returned from FAL API")
    return GeneratedVideo(
        url=url.strip(),
        content_type=str(video.get("content_type") or "video/mp4"),
        file_name=str(video.get("file_name") or "climate-video.mp4"),
        file_size=_file_size(video.get("file_size")),
    )


def _file_size(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def build_provider_payload(config: ClimateVisionConfig, prompt: str, image_url: str) -> dict[str, Any]:
    """Provider request body with the configured latency/quality knobs."""
    return {
        "prompt": prompt,
        "image_url": image_url,
        "duration": config.video_duration,
        "generate_audio": config.generate_audio,
        "resolution": config.video_resolution,
    }


def image_reference(image: bytes | str, mime_type: str | None = None) -> str:
    """Public URL or data URL for an image given as bytes or a reference string."""
    if isinstance(image, bytes):
        return to_data_url(image, ensure_supported_image(image, mime_type))
    if image.startswith(("http://", "https://", "data:")):
        return image
    raise ValidationError("Image must be bytes, an http(s) URL, or a data URL", fields=["image"])


class VideoClient:
    """
    Generates videos from an image and a prompt.

    Direct mode talks to the FAL queue API with a user credential and polls for
    completion. Relayed mode posts to the relay function, which holds the
    credential server-side. The whole call is bounded by ``config.video_timeout``.
    """

    def __init__(
        self,
        config: ClimateVisionConfig,
        credentials: CredentialStore | None = None,
        fallback_policy: FallbackPolicy | None = None,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.credentials = credentials or CredentialStore.in_memory()
        self.fallback_policy = fallback_policy or FallbackPolicy.disabled()
        self._client = client
        self._clock = clock
        self._sleep = sleep

    def api_key(self) -> str | None:
        """User-supplied key first, then configured key."""
        return self.credentials.get(FAL_API_KEY) or self.config.fal_api_key or None

    def check_mode(self) -> str:
        """Normalized configured mode; unknown values are a configuration error."""
        mode = (self.config.video_mode or "auto").strip().lower()
        if mode not in VIDEO_MODES:
            raise ConfigurationError(
                f"Unknown video mode '{self.config.video_mode}'. Use one of: {', '.join(VIDEO_MODES)}."
            )
        return mode

    def resolve_mode(self) -> str:
        """Pick ``relay`` or ``direct`` according to config and available credentials."""
        mode = self.check_mode()
        if mode == "relay" or (mode == "auto" and self.config.relay_url):
            if not self.config.relay_url:
                raise ConfigurationError(
                    "Relay URL not configured. Set CLIMATEVISION_RELAY_URL."
                )
            return "relay"
        if self.api_key():
            return "direct"
        raise ConfigurationError(
            "FAL API key not configured. Add your key with "
            "'climatevision config --set-fal-key' or configure a relay URL."
        )

    def generate(
        self,
        image: bytes | str,
        prompt: str,
        mime_type: str | None = None,
        on_status: StatusCallback | None = None,
    ) -> GeneratedVideo:
        """
        Generate a video.

        Args:
            image: Image bytes, public URL, or data URL
            prompt: Description of the motion/scene
            mime_type: MIME type when ``image`` is bytes
            on_status: Optional callback receiving provider status updates

        Returns:
            GeneratedVideo (``fallback=True`` when a canned clip was substituted)

        Raises:
            ValidationError: Empty prompt or unusable image reference
            ConfigurationError: Unknown video mode, or neither credential nor relay
                configured (and no fallback)
            ProviderError: Provider or relay failure (and no fallback)
            GenerationTimeoutError: Wall-clock bound elapsed (and no fallback)
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Please describe the video you want to generate", fields=["prompt"])
        prompt = prompt.strip()
        image_ref = image_reference(image, mime_type)
        self.check_mode()

        mode = None
        try:
            mode = self.resolve_mode()
            deadline = self._clock() + self.config.video_timeout
            console.print(f"[blue]Generating video ({mode} mode)...[/]")
            if mode == "relay":
                return self._generate_relayed(image_ref, prompt, deadline)
            return self._generate_direct(image_ref, prompt, deadline, on_status)
        except (ConfigurationError, ProviderError, GenerationTimeoutError) as e:
            # The relay reports its own failures; canned clips only stand in for the provider
            if mode == "relay":
                raise
            substitute = self._fallback(prompt)
            if substitute is None:
                raise
            console.print(f"[yellow]Video generation unavailable ({e}); using fallback clip[/]")
            return substitute

    def _fallback(self, prompt: str) -> GeneratedVideo | None:
        selected = self.fallback_policy.select(prompt)
        if selected is None:
            return None
        tag, asset = selected
        console.print(f"[dim]Fallback clip selected for tag '{tag}'[/]")
        return GeneratedVideo(
            url=asset.url,
            content_type=asset.content_type,
            file_name=asset.file_name,
            file_size=asset.file_size,
            fallback=True,
        )

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise self._timeout_error()
        return remaining

    def _timeout_error(self) -> GenerationTimeoutError:
        timeout = self.config.video_timeout
        return GenerationTimeoutError(
            f"Video generation timed out after {timeout:g}s. "
            "Try again with a shorter or simpler prompt.",
            timeout=timeout,
        )

    def _request(self, method: str, url: str, deadline: float, operation: str, **kwargs: Any) -> Any:
        client = self._client or httpx.Client()
        try:
            response = make_api_request(
                client,
                method,
                url,
                operation_name=operation,
                timeout=self._remaining(deadline),
                **kwargs,
            )
            return response_json(response, operation)
        except httpx.TimeoutException as e:
            raise self._timeout_error() from e
        finally:
            if self._client is None:
                client.close()

    def _generate_direct(
        self,
        image_ref: str,
        prompt: str,
        deadline: float,
        on_status: StatusCallback | None,
    ) -> GeneratedVideo:
        headers = {"Authorization": f"Key {self.api_key()}", "Content-Type": "application/json"}
        base = self.config.fal_queue_base.rstrip("/")
        model = self.config.video_model.strip("/")

        try:
            queued = self._request(
                "POST",
                f"{base}/{model}",
                deadline,
                "FAL queue submit",
                headers=headers,
                json=build_provider_payload(self.config, prompt, image_ref),
            )
            if not isinstance(queued, dict) or not queued.get("request_id"):
                raise ProviderError("FAL queue did not return a request id")
            request_id = queued["request_id"]
            status_url = queued.get("status_url") or f"{base}/{model}/requests/{request_id}/status"
            response_url = queued.get("response_url") or f"{base}/{model}/requests/{request_id}"

            while True:
                status = self._request(
                    "GET", status_url, deadline, "FAL status", headers=headers, params={"logs": 1}
                )
                if not isinstance(status, dict):
                    raise ProviderError("FAL status response is not a JSON object")
                state = str(status.get("status", "")).upper()
                if on_status:
                    on_status(state, status)
                if state == QUEUE_DONE:
                    if status.get("error"):
                        raise ProviderError(str(status["error"]))
                    break
                if state not in QUEUE_PENDING:
                    raise ProviderError(f"Unexpected provider status: {state or 'unknown'}")
                position = status.get("queue_position")
                if position is not None:
                    console.print(f"[dim]  {state} (queue position {position})[/]")
                self._sleep(min(self.config.poll_interval, self._remaining(deadline)))

            result = self._request("GET", response_url, deadline, "FAL result", headers=headers)
        except ProviderError as e:
            if str(e).startswith(ERROR_PREFIX):
                raise
            raise ProviderError(f"{ERROR_PREFIX}: {e}", status_code=e.status_code) from e

        video = extract_video(result)
        console.print(f"[green]Video ready:[/] {video.url}")
        return video

    def _generate_relayed(self, image_ref: str, prompt: str, deadline: float) -> GeneratedVideo:
        body: dict[str, str] = {"prompt": prompt}
        if image_ref.startswith("data:"):
            body["imageData"] = image_ref
        else:
            body["imageUrl"] = image_ref

        headers = {"Content-Type": "application/json"}
        if self.config.supabase_key:
            headers["Authorization"] = f"Bearer {self.config.supabase_key}"

        client = self._client or httpx.Client()
        try:
            response = client.post(
                self.config.relay_url,
                headers=headers,
                json=body,
                timeout=self._remaining(deadline),
            )
        except httpx.TimeoutException as e:
            raise self._timeout_error() from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{ERROR_PREFIX}: relay unreachable: {e}") from e
        finally:
            if self._client is None:
                client.close()

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error or not isinstance(data, dict) or data.get("error"):
            message = data.get("error") if isinstance(data, dict) else None
            step = data.get("step") if isinstance(data, dict) else None
            console.print(f"[red]Relay failed at step {step or 'unknown'}:[/] {message}")
            raise ProviderError(
                f"{ERROR_PREFIX}: {message or response.text or response.reason_phrase}",
                status_code=response.status_code,
                step=step,
            )

        url = data.get("videoUrl")
        if not isinstance(url, str) or not url.strip():
            raise ProviderError(f"{ERROR_PREFIX}: Relay returned no video URL", step="execution_error")
        image_url = data.get("imageUrl")
        return GeneratedVideo(url=url.strip(), image_url=image_url if isinstance(image_url, str) else None)
