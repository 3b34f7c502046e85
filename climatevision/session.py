"""Application context and generation session state.

``AppContext`` owns everything that used to be process-global (notifications,
credentials, object URLs, backends) and is created at session start and closed
at session end. ``GenerationSession`` tracks one user's image/effect/result
state; every generation gets a request token, and a result is only applied
when its token is still the latest one issued.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import httpx
from rich.console import Console

from .config import ClimateVisionConfig
from .credentials import GEMINI_API_KEY, CredentialStore
from .errors import ClimateVisionError, ValidationError
from .fallback import FallbackPolicy
from .imagegen import GeneratedImage, generate_climate_effect
from .media import ObjectUrlRegistry, ensure_supported_image
from .notifications import NotificationCenter
from .prompts import Category
from .reports import ReportFlow, ReportForm, ReportStore, report_store_from_config
from .storage import ObjectStorage, storage_from_config
from .videogen import GeneratedVideo, VideoClient

console = Console()


@dataclass
class AppContext:
    """Explicitly scoped application state shared by one user session."""

    config: ClimateVisionConfig
    notifications: NotificationCenter = field(default_factory=NotificationCenter)
    credentials: CredentialStore = field(default_factory=CredentialStore.in_memory)
    media: ObjectUrlRegistry = field(default_factory=ObjectUrlRegistry)
    storage: ObjectStorage | None = None
    report_store: ReportStore | None = None
    fallback_policy: FallbackPolicy = field(default_factory=FallbackPolicy.disabled)
    http_client: httpx.Client | None = None
    closed: bool = False

    @classmethod
    def create(cls, config: ClimateVisionConfig | None = None, **overrides: Any) -> "AppContext":
        """Build a context with backends resolved from config."""
        config = config or ClimateVisionConfig.load()
        overrides.setdefault("credentials", CredentialStore(config.get_credentials_path()))
        overrides.setdefault("fallback_policy", FallbackPolicy.load())
        if "storage" not in overrides:
            overrides["storage"] = storage_from_config(config)
        if "report_store" not in overrides:
            overrides["report_store"] = report_store_from_config(config)
        return cls(config=config, **overrides)

    def video_client(self) -> VideoClient:
        return VideoClient(
            self.config,
            credentials=self.credentials,
            fallback_policy=self.fallback_policy,
            client=self.http_client,
        )

    def report_flow(self) -> ReportFlow:
        if self.report_store is None:
            raise ClimateVisionError("No report store configured")
        return ReportFlow(
            self.report_store,
            self.storage,
            self.notifications,
            bucket=self.config.report_bucket,
        )

    def gemini_key(self) -> str:
        return self.credentials.get(GEMINI_API_KEY) or self.config.gemini_api_key

    def close(self) -> None:
        """Release session-owned state."""
        self.media.clear()
        self.notifications.clear()
        self.closed = True

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class GenerationSession:
    """Image/effect selection and generation results for one user."""

    def __init__(self, context: AppContext) -> None:
        self.context = context
        self.source_image: bytes | None = None
        self.source_mime: str | None = None
        self.source_url: str | None = None
        self.description: str | None = None
        self.category: Category | None = None
        self.result: GeneratedImage | None = None
        self.result_url: str | None = None
        self.video: GeneratedVideo | None = None
        self.report_form = ReportForm()
        self._token = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def notifications(self) -> NotificationCenter:
        return self.context.notifications

    @property
    def is_generating(self) -> bool:
        return self._in_flight > 0

    def _next_token(self) -> int:
        with self._lock:
            self._token += 1
            return self._token

    def _discard_result(self) -> None:
        if self.result_url:
            self.context.media.revoke(self.result_url)
        self.result = None
        self.result_url = None
        self.video = None

    def select_image(self, data: bytes, mime_type: str | None) -> str | None:
        """Set the source image; returns its object URL or None if rejected."""
        try:
            mime_type = ensure_supported_image(data, mime_type)
        except ValidationError as e:
            self.notifications.error(str(e))
            return None
        self.clear_image(silent=True)
        self.source_image = data
        self.source_mime = mime_type
        self.source_url = self.context.media.create(data, mime_type)
        self.notifications.success("Image uploaded successfully! Now choose a climate effect.")
        return self.source_url

    def clear_image(self, silent: bool = False) -> None:
        """Drop the source image, the selected effect, and any result."""
        self._next_token()
        if self.source_url:
            self.context.media.revoke(self.source_url)
        self.source_image = None
        self.source_mime = None
        self.source_url = None
        self.description = None
        self.category = None
        self._discard_result()
        if not silent:
            self.notifications.info("Image cleared. Upload a new one to continue.")

    def select_effect(self, description: str, category: Category | str) -> bool:
        if not description.strip():
            return False
        self.description = description.strip()
        self.category = Category.parse(category) if isinstance(category, str) else category
        self.notifications.success(f"Selected {self.description} effect. Ready to generate!")
        return True

    def reset(self) -> None:
        """Discard the result and effect, keeping the source image."""
        self._next_token()
        self._discard_result()
        self.description = None
        self.category = None
        self.notifications.info("Ready for another climate effect!")

    def _begin(self, keep_image_result: bool = False) -> int:
        token = self._next_token()
        with self._lock:
            self._in_flight += 1
        # A new request invalidates whatever result is showing
        if keep_image_result:
            self.video = None
        else:
            self._discard_result()
        return token

    def _finish(self) -> None:
        with self._lock:
            self._in_flight -= 1

    def _is_current(self, token: int) -> bool:
        if token == self._token:
            return True
        console.print(f"[dim]Dropping stale result for request {token} (latest {self._token})[/]")
        return False

    def generate_image(self) -> GeneratedImage | None:
        """Run image generation for the current selection; errors become notifications."""
        if self.source_image is None or not self.description:
            self.notifications.error("Please upload an image and select an effect first.")
            return None

        token = self._begin()
        try:
            result = generate_climate_effect(
                self.source_image,
                self.source_mime,
                self.description,
                self.context.config,
                api_key=self.context.gemini_key() or None,
                client=self.context.http_client,
            )
        except ClimateVisionError as e:
            if self._is_current(token):
                self.notifications.error(str(e))
            return None
        finally:
            self._finish()

        if not self._is_current(token):
            return None
        self.result = result
        self.result_url = self.context.media.create(result.data, result.mime_type)
        self.notifications.success("Climate impact visualization generated!")
        return result

    def generate_video(self, prompt: str | None = None, use_result: bool = False) -> GeneratedVideo | None:
        """Animate the source image (or the generated result) into a short video."""
        prompt = (prompt or self.description or "").strip()
        image = self.result.data if use_result and self.result else self.source_image
        mime = self.result.mime_type if use_result and self.result else self.source_mime
        if image is None:
            self.notifications.error("Please upload an image first.")
            return None

        token = self._begin(keep_image_result=True)
        try:
            video = self.context.video_client().generate(image, prompt, mime_type=mime)
        except ClimateVisionError as e:
            # Timeouts carry their own "try a simpler prompt" message
            if self._is_current(token):
                self.notifications.error(str(e))
            return None
        finally:
            self._finish()

        if not self._is_current(token):
            return None
        self.video = video
        if video.fallback:
            self.notifications.info("Showing a pre-recorded video for this scenario.")
        else:
            self.notifications.success("Climate video generated!")
        return video

    def save_report_draft(self, image: tuple[bytes, str] | None = None) -> bool:
        try:
            self.context.report_flow().save_draft(self.report_form, image)
        except ClimateVisionError as e:
            self.notifications.error(str(e))
            return False
        return True

    def submit_report(self, image: tuple[bytes, str] | None = None) -> bool:
        try:
            self.context.report_flow().submit(self.report_form, image)
        except ClimateVisionError as e:
            self.notifications.error(str(e))
            return False
        return True
