"""Tests for video generation in direct and relayed mode."""

import json

import httpx
import pytest

from climatevision.config import ClimateVisionConfig
from climatevision.credentials import FAL_API_KEY, CredentialStore
from climatevision.errors import (
    ConfigurationError,
    GenerationTimeoutError,
    ProviderError,
    ValidationError,
)
from climatevision.fallback import DEFAULT_FALLBACKS_PATH, FallbackPolicy
from climatevision.videogen import VideoClient

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
VIDEO_URL = "https://v3.fal.media/files/result.mp4"
QUEUE = "https://queue.fal.run/fal-ai/veo3/fast/image-to-video"
STATUS_URL = "https://queue.fal.run/fal-ai/veo3/requests/req-1/status"
RESPONSE_URL = "https://queue.fal.run/fal-ai/veo3/requests/req-1"
RELAY_URL = "https://relay.example.com/functions/v1/generate-video"

# --- Fixtures ---


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> ClimateVisionConfig:
    cfg = ClimateVisionConfig()
    cfg.fal_api_key = "fal-test-key"
    return cfg


@pytest.fixture
def fire_policy() -> FallbackPolicy:
    return FallbackPolicy.load(DEFAULT_FALLBACKS_PATH)


def queue_handler(statuses: list[str], calls: list[httpx.Request]):
    """Fake FAL queue: submit, then the given statuses, then a result."""
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        url = str(request.url).split("?")[0]
        if request.method == "POST" and url == QUEUE:
            return httpx.Response(
                200,
                json={"request_id": "req-1", "status_url": STATUS_URL, "response_url": RESPONSE_URL},
            )
        if url == STATUS_URL:
            status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            return httpx.Response(200, json={"status": status, "queue_position": 0})
        if url == RESPONSE_URL:
            return httpx.Response(
                200,
                json={"video": {"url": VIDEO_URL, "content_type": "video/mp4", "file_size": 1234}},
            )
        return httpx.Response(404, json={"detail": "not found"})

    return handler


def make_client(config, handler, clock=None, policy=None, credentials=None) -> VideoClient:
    clock = clock or FakeClock()
    return VideoClient(
        config,
        credentials=credentials,
        fallback_policy=policy,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        clock=clock,
        sleep=clock.sleep,
    )


# --- Direct mode ---


class TestDirectMode:
    """Queue submission and status polling."""

    def test_polls_until_completed(self, config: ClimateVisionConfig) -> None:
        calls: list = []
        statuses: list[str] = []
        client = make_client(config, queue_handler(["IN_QUEUE", "IN_PROGRESS", "COMPLETED"], calls))

        video = client.generate(PNG_BYTES, "Wildfire spreading", on_status=lambda s, _: statuses.append(s))

        assert video.url == VIDEO_URL
        assert video.file_size == 1234
        assert video.fallback is False
        assert statuses == ["IN_QUEUE", "IN_PROGRESS", "COMPLETED"]

    def test_submit_payload_uses_configured_knobs(self, config: ClimateVisionConfig) -> None:
        calls: list = []
        client = make_client(config, queue_handler(["COMPLETED"], calls))

        client.generate(PNG_BYTES, "  Reforestation  ")

        submit = calls[0]
        body = json.loads(submit.content)
        assert submit.headers["Authorization"] == "Key fal-test-key"
        assert body["prompt"] == "Reforestation"
        assert body["duration"] == "4s"
        assert body["generate_audio"] is False
        assert body["resolution"] == "720p"
        assert body["image_url"].startswith("data:image/png;base64,")

    def test_image_url_passed_through(self, config: ClimateVisionConfig) -> None:
        calls: list = []
        client = make_client(config, queue_handler(["COMPLETED"], calls))

        client.generate("https://cdn.example.com/forest.png", "Wind turbines")

        assert json.loads(calls[0].content)["image_url"] == "https://cdn.example.com/forest.png"

    def test_user_credential_preferred(self) -> None:
        calls: list = []
        credentials = CredentialStore.in_memory()
        credentials.set(FAL_API_KEY, "user-key")
        client = make_client(
            ClimateVisionConfig(), queue_handler(["COMPLETED"], calls), credentials=credentials
        )

        client.generate(PNG_BYTES, "Solar panels")

        assert calls[0].headers["Authorization"] == "Key user-key"

    def test_failed_status_is_provider_error(self, config: ClimateVisionConfig) -> None:
        client = make_client(config, queue_handler(["IN_QUEUE", "FAILED"], []))

        with pytest.raises(ProviderError) as exc_info:
            client.generate(PNG_BYTES, "Severe flooding")

        assert str(exc_info.value).startswith("Failed to generate video")

    def test_missing_video_url(self, config: ClimateVisionConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url).split("?")[0]
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "req-1", "status_url": STATUS_URL, "response_url": RESPONSE_URL})
            if url == STATUS_URL:
                return httpx.Response(200, json={"status": "COMPLETED"})
            return httpx.Response(200, json={"video": {}})

        client = make_client(config, handler)

        with pytest.raises(ProviderError):
            client.generate(PNG_BYTES, "Severe flooding")


def shaped_queue(status_body: object, result_body: object):
    """Fake FAL queue returning the given raw status and result bodies."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        if request.method == "POST":
            return httpx.Response(
                200, json={"request_id": "req-1", "status_url": STATUS_URL, "response_url": RESPONSE_URL}
            )
        if url == STATUS_URL:
            return httpx.Response(200, json=status_body)
        return httpx.Response(200, json=result_body)

    return handler


class TestMalformedProviderResponses:
    """Unexpected JSON shapes surface as ProviderError, never as raw exceptions."""

    @pytest.mark.parametrize(
        ("status_body", "result_body"),
        [
            (["IN_QUEUE"], {"video": {"url": VIDEO_URL}}),
            ("COMPLETED", {"video": {"url": VIDEO_URL}}),
            ({"status": "COMPLETED"}, {"video": "https://x/v.mp4"}),
            ({"status": "COMPLETED"}, {"video": {"url": ["https://x/v.mp4"]}}),
            ({"status": "COMPLETED"}, ["https://x/v.mp4"]),
        ],
    )
    def test_shapes(self, config: ClimateVisionConfig, status_body: object, result_body: object) -> None:
        client = make_client(config, shaped_queue(status_body, result_body))

        with pytest.raises(ProviderError) as exc_info:
            client.generate(PNG_BYTES, "Severe flooding")

        assert str(exc_info.value).startswith("Failed to generate video")

    @pytest.mark.parametrize("file_size", ["big", None, {"bytes": 3}, -5])
    def test_odd_file_size_is_zero(self, config: ClimateVisionConfig, file_size: object) -> None:
        result_body = {"video": {"url": VIDEO_URL, "file_size": file_size}}
        client = make_client(config, shaped_queue({"status": "COMPLETED"}, result_body))

        video = client.generate(PNG_BYTES, "Severe flooding")

        assert video.url == VIDEO_URL
        assert video.file_size == 0

    def test_malformed_shape_still_falls_back_for_fire(
        self, config: ClimateVisionConfig, fire_policy: FallbackPolicy
    ) -> None:
        client = make_client(config, shaped_queue(["IN_QUEUE"], {}), policy=fire_policy)

        video = client.generate(PNG_BYTES, "Wildfire spreading across the landscape")

        assert video.fallback is True

    def test_relay_non_string_video_url(self) -> None:
        cfg = ClimateVisionConfig()
        cfg.relay_url = RELAY_URL
        client = make_client(cfg, lambda r: httpx.Response(200, json={"success": True, "videoUrl": {"u": 1}}))

        with pytest.raises(ProviderError):
            client.generate(PNG_BYTES, "Wind turbines")


class TestModeValidation:
    """Only auto, direct and relay are accepted."""

    @pytest.mark.parametrize("mode", ["relya", "fast", "queue"])
    def test_unknown_mode_rejected_without_fallback(
        self, config: ClimateVisionConfig, fire_policy: FallbackPolicy, mode: str
    ) -> None:
        calls: list = []
        config.video_mode = mode
        client = make_client(config, queue_handler(["COMPLETED"], calls), policy=fire_policy)

        with pytest.raises(ConfigurationError) as exc_info:
            client.generate(PNG_BYTES, "Fire brigade arriving")

        assert mode in str(exc_info.value)
        assert calls == []

    def test_mode_is_case_insensitive(self, config: ClimateVisionConfig) -> None:
        config.video_mode = " Direct "
        client = make_client(config, queue_handler(["COMPLETED"], []))

        assert client.resolve_mode() == "direct"


class TestTimeout:
    """Wall-clock bound on the whole operation."""

    def test_times_out_while_polling(self, config: ClimateVisionConfig) -> None:
        config.video_timeout = 10.0
        config.poll_interval = 3.0
        client = make_client(config, queue_handler(["IN_PROGRESS"], []))

        with pytest.raises(GenerationTimeoutError) as exc_info:
            client.generate(PNG_BYTES, "Severe flooding")

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.timeout == 10.0
        assert "simpler" in str(exc_info.value)

    def test_transport_timeout_maps_to_timeout_error(self, config: ClimateVisionConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(config, handler)

        with pytest.raises(GenerationTimeoutError):
            client.generate(PNG_BYTES, "Severe flooding")


class TestFallback:
    """Canned clips replace provider failures for matching prompts."""

    def test_fire_prompt_falls_back_on_provider_error(
        self, config: ClimateVisionConfig, fire_policy: FallbackPolicy
    ) -> None:
        client = make_client(config, lambda r: httpx.Response(500, text="boom"), policy=fire_policy)

        video = client.generate(PNG_BYTES, "Fire brigade extinguishing forest fires")

        assert video.fallback is True
        assert video.url == fire_policy.assets["fire"].url
        assert video.file_name == "fire-brigade-fallback.mp4"

    def test_fire_prompt_falls_back_without_credentials(self, fire_policy: FallbackPolicy) -> None:
        calls: list = []
        client = make_client(ClimateVisionConfig(), queue_handler(["COMPLETED"], calls), policy=fire_policy)

        video = client.generate(PNG_BYTES, "Firefighters with hoses")

        assert video.fallback is True
        assert calls == []

    def test_wildfire_suggestion_falls_back(self, fire_policy: FallbackPolicy) -> None:
        calls: list = []
        client = make_client(ClimateVisionConfig(), queue_handler(["COMPLETED"], calls), policy=fire_policy)

        video = client.generate(PNG_BYTES, "Wildfire spreading across the landscape")

        assert video.fallback is True
        assert video.url == fire_policy.assets["fire"].url
        assert calls == []

    def test_fallback_on_timeout(self, config: ClimateVisionConfig, fire_policy: FallbackPolicy) -> None:
        config.video_timeout = 5.0
        client = make_client(config, queue_handler(["IN_QUEUE"], []), policy=fire_policy)

        video = client.generate(PNG_BYTES, "Extinguish the wildfire")

        assert video.fallback is True

    def test_other_prompts_still_fail(self, config: ClimateVisionConfig, fire_policy: FallbackPolicy) -> None:
        client = make_client(config, lambda r: httpx.Response(500, text="boom"), policy=fire_policy)

        with pytest.raises(ProviderError):
            client.generate(PNG_BYTES, "Severe flooding and water damage")

    def test_no_credentials_without_fallback(self, fire_policy: FallbackPolicy) -> None:
        client = make_client(ClimateVisionConfig(), lambda r: httpx.Response(500), policy=fire_policy)

        with pytest.raises(ConfigurationError):
            client.generate(PNG_BYTES, "Solar panels")


class TestRelayedMode:
    """Delegation to the relay function."""

    @pytest.fixture
    def relay_config(self) -> ClimateVisionConfig:
        cfg = ClimateVisionConfig()
        cfg.relay_url = RELAY_URL
        return cfg

    def test_success(self, relay_config: ClimateVisionConfig) -> None:
        calls: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(
                200,
                json={"success": True, "videoUrl": VIDEO_URL, "imageUrl": "https://store/img.png"},
            )

        client = make_client(relay_config, handler)

        video = client.generate(PNG_BYTES, "Wind turbines")

        assert video.url == VIDEO_URL
        assert video.image_url == "https://store/img.png"
        body = json.loads(calls[0].content)
        assert str(calls[0].url) == RELAY_URL
        assert body["prompt"] == "Wind turbines"
        assert body["imageData"].startswith("data:image/png;base64,")

    def test_step_tagged_error_has_no_fallback(
        self, relay_config: ClimateVisionConfig, fire_policy: FallbackPolicy
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "FAL API error (500)", "step": "video_generation"})

        client = make_client(relay_config, handler, policy=fire_policy)

        with pytest.raises(ProviderError) as exc_info:
            client.generate(PNG_BYTES, "Fire brigade arriving")

        assert exc_info.value.step == "video_generation"
        assert exc_info.value.status_code == 500

    def test_forced_relay_without_url(self, config: ClimateVisionConfig) -> None:
        config.video_mode = "relay"
        client = make_client(config, lambda r: httpx.Response(200))

        with pytest.raises(ConfigurationError):
            client.generate(PNG_BYTES, "Wind turbines")


class TestValidation:
    """Input checks happen before any request."""

    @pytest.mark.parametrize("prompt", ["", "   "])
    def test_blank_prompt(self, config: ClimateVisionConfig, prompt: str) -> None:
        calls: list = []
        client = make_client(config, queue_handler(["COMPLETED"], calls))

        with pytest.raises(ValidationError):
            client.generate(PNG_BYTES, prompt)

        assert calls == []

    def test_bad_image_reference(self, config: ClimateVisionConfig) -> None:
        client = make_client(config, queue_handler(["COMPLETED"], []))

        with pytest.raises(ValidationError):
            client.generate("/local/path.png", "Wind turbines")
