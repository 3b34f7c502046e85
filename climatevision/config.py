"""Configuration management with embedded defaults."""

import os
from dataclasses import dataclass
from pathlib import Path

# Default provider configuration
GEMINI_API_BASE = "https://generativelanguage.googleapis.com"
FAL_RUN_BASE = "https://fal.run"
FAL_QUEUE_BASE = "https://queue.fal.run"

# Default models
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_VIDEO_MODEL = "fal-ai/veo3/fast/image-to-video"

# Storage
DEFAULT_IMAGE_BUCKET = "generated-images"
DEFAULT_REPORT_BUCKET = "report-images"
DEFAULT_REPORTS_TABLE = "reports"

# Config file locations (checked in order)
CONFIG_PATHS = [
    Path.cwd() / ".env",  # Local project .env first
    Path.home() / ".config" / "climatevision" / "config.env",
    Path.home() / ".climatevision.env",
    Path("/etc/climatevision/config.env"),
]


@dataclass
class ClimateVisionConfig:
    """ClimateVision configuration."""

    # Provider credentials
    gemini_api_key: str = ""
    fal_api_key: str = ""

    # Endpoints
    gemini_api_base: str = GEMINI_API_BASE
    fal_run_base: str = FAL_RUN_BASE
    fal_queue_base: str = FAL_QUEUE_BASE
    relay_url: str = ""

    # Models
    image_model: str = DEFAULT_IMAGE_MODEL
    video_model: str = DEFAULT_VIDEO_MODEL

    # Video tuning (longer duration and audio both increase provider latency)
    video_duration: str = "4s"
    generate_audio: bool = False
    video_resolution: str = "720p"
    video_timeout: float = 120.0
    poll_interval: float = 2.0
    video_mode: str = "auto"  # auto, direct, relay

    # Image request timeout
    image_timeout: float = 120.0

    # Supabase-compatible backend
    supabase_url: str = ""
    supabase_key: str = ""
    image_bucket: str = DEFAULT_IMAGE_BUCKET
    report_bucket: str = DEFAULT_REPORT_BUCKET
    reports_table: str = DEFAULT_REPORTS_TABLE

    # Local fallbacks when no hosted backend is configured
    local_storage_dir: str = ""
    local_public_base: str = "http://localhost:8000/media"
    credentials_path: str = ""

    @classmethod
    def load(cls) -> "ClimateVisionConfig":
        """Load config from environment and config files."""
        config = cls()

        # Try config files first
        for config_path in CONFIG_PATHS:
            if config_path.exists():
                config._load_from_file(config_path)
                break

        # Environment variables override config files
        config._load_from_env()

        return config

    def _load_from_file(self, path: Path) -> None:
        """Load configuration from .env file."""
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    self._set_from_key(key, value)

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        for env_key in ENV_MAPPING:
            value = os.environ.get(env_key)
            if value:
                self._set_from_key(env_key, value)

    def _set_from_key(self, key: str, value: str) -> None:
        """Set attribute from key-value pair."""
        attr = ENV_MAPPING.get(key.upper())
        if attr is None:
            return

        current = getattr(self, attr)
        if isinstance(current, bool):
            setattr(self, attr, value.lower() in ("true", "1", "yes"))
        elif isinstance(current, float):
            try:
                setattr(self, attr, float(value))
            except ValueError:
                return
        elif attr == "supabase_url":
            self.supabase_url = value.rstrip("/")
        elif attr == "video_duration":
            # Accept bare seconds ("8") as well as the provider form ("8s")
            self.video_duration = value if value.endswith("s") else f"{value}s"
        else:
            setattr(self, attr, value)

    @property
    def has_backend(self) -> bool:
        """Whether a hosted storage/report backend is configured."""
        return bool(self.supabase_url and self.supabase_key)

    def get_credentials_path(self) -> Path:
        """Path of the local credential store."""
        if self.credentials_path:
            return Path(self.credentials_path).expanduser()
        return Path.home() / ".config" / "climatevision" / "credentials.json"

    def get_local_storage_dir(self) -> Path:
        """Directory used by local object storage."""
        if self.local_storage_dir:
            return Path(self.local_storage_dir).expanduser()
        return Path.home() / ".local" / "share" / "climatevision" / "media"

    def save_default_config(self) -> Path:
        """Save current config to user's config directory."""
        config_dir = Path.home() / ".config" / "climatevision"
        config_dir.mkdir(parents=True, exist_ok=True)
        config_path = config_dir / "config.env"

        content = f"""# ClimateVision Configuration

# Image generation (Gemini)
GEMINI_API_KEY={self.gemini_api_key}
CLIMATEVISION_IMAGE_MODEL={self.image_model}

# Video generation (FAL)
FAL_API_KEY={self.fal_api_key}
CLIMATEVISION_VIDEO_MODEL={self.video_model}
CLIMATEVISION_VIDEO_DURATION={self.video_duration}
CLIMATEVISION_GENERATE_AUDIO={str(self.generate_audio).lower()}
CLIMATEVISION_RESOLUTION={self.video_resolution}
CLIMATEVISION_VIDEO_TIMEOUT={self.video_timeout:g}

# Relay function (leave empty to call the provider directly)
CLIMATEVISION_RELAY_URL={self.relay_url}

# Hosted backend for storage and reports
SUPABASE_URL={self.supabase_url}
SUPABASE_SERVICE_ROLE_KEY={self.supabase_key}
CLIMATEVISION_IMAGE_BUCKET={self.image_bucket}
CLIMATEVISION_REPORT_BUCKET={self.report_bucket}
"""

        with open(config_path, "w") as f:
            f.write(content)

        return config_path


# Environment/config-file keys and the attribute each one sets
ENV_MAPPING = {
    "GEMINI_API_KEY": "gemini_api_key",
    "GOOGLE_API_KEY": "gemini_api_key",
    "FAL_API_KEY": "fal_api_key",
    "FAL_KEY": "fal_api_key",
    "GEMINI_API_BASE": "gemini_api_base",
    "CLIMATEVISION_RELAY_URL": "relay_url",
    "CLIMATEVISION_IMAGE_MODEL": "image_model",
    "CLIMATEVISION_VIDEO_MODEL": "video_model",
    "CLIMATEVISION_VIDEO_DURATION": "video_duration",
    "CLIMATEVISION_GENERATE_AUDIO": "generate_audio",
    "CLIMATEVISION_RESOLUTION": "video_resolution",
    "CLIMATEVISION_VIDEO_TIMEOUT": "video_timeout",
    "CLIMATEVISION_POLL_INTERVAL": "poll_interval",
    "CLIMATEVISION_VIDEO_MODE": "video_mode",
    "CLIMATEVISION_IMAGE_TIMEOUT": "image_timeout",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_SERVICE_ROLE_KEY": "supabase_key",
    "SUPABASE_KEY": "supabase_key",
    "CLIMATEVISION_IMAGE_BUCKET": "image_bucket",
    "CLIMATEVISION_REPORT_BUCKET": "report_bucket",
    "CLIMATEVISION_REPORTS_TABLE": "reports_table",
    "CLIMATEVISION_STORAGE_DIR": "local_storage_dir",
    "CLIMATEVISION_PUBLIC_BASE": "local_public_base",
    "CLIMATEVISION_CREDENTIALS": "credentials_path",
}
