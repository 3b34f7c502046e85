"""Tests for ClimateVisionConfig environment key handling."""

from pathlib import Path

import pytest

from climatevision.config import ClimateVisionConfig


class TestConfigKeys:
    """Tests for key mapping and value coercion."""

    def test_provider_keys_map_to_attributes(self) -> None:
        """Provider key aliases set the right credential."""
        config = ClimateVisionConfig()

        config._set_from_key("FAL_KEY", "fal-secret")
        config._set_from_key("GOOGLE_API_KEY", "gem-secret")

        assert config.fal_api_key == "fal-secret"
        assert config.gemini_api_key == "gem-secret"

    def test_boolean_and_float_coercion(self) -> None:
        """Typed attributes are parsed from their string form."""
        config = ClimateVisionConfig()

        config._set_from_key("CLIMATEVISION_GENERATE_AUDIO", "yes")
        config._set_from_key("CLIMATEVISION_VIDEO_TIMEOUT", "45")

        assert config.generate_audio is True
        assert config.video_timeout == 45.0

    def test_invalid_float_is_ignored(self) -> None:
        """A malformed number leaves the default in place."""
        config = ClimateVisionConfig()

        config._set_from_key("CLIMATEVISION_VIDEO_TIMEOUT", "soon")

        assert config.video_timeout == 120.0

    def test_duration_accepts_bare_seconds(self) -> None:
        """Duration is normalized to the provider's "Ns" form."""
        config = ClimateVisionConfig()

        config._set_from_key("CLIMATEVISION_VIDEO_DURATION", "8")
        assert config.video_duration == "8s"

        config._set_from_key("CLIMATEVISION_VIDEO_DURATION", "4s")
        assert config.video_duration == "4s"

    def test_supabase_url_trailing_slash_stripped(self) -> None:
        config = ClimateVisionConfig()

        config._set_from_key("SUPABASE_URL", "https://abc.supabase.co/")

        assert config.supabase_url == "https://abc.supabase.co"

    def test_unknown_key_ignored(self) -> None:
        config = ClimateVisionConfig()

        config._set_from_key("SOMETHING_ELSE", "value")

        assert config == ClimateVisionConfig()


class TestConfigLoading:
    """Tests for file and environment loading."""

    def test_defaults(self) -> None:
        config = ClimateVisionConfig()

        assert config.video_duration == "4s"
        assert config.generate_audio is False
        assert config.video_resolution == "720p"
        assert config.video_timeout == 120.0
        assert config.has_backend is False

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Comments and quotes are handled in .env files."""
        env_file = tmp_path / "config.env"
        env_file.write_text(
            "# comment\n"
            'FAL_API_KEY="quoted-key"\n'
            "SUPABASE_URL=https://abc.supabase.co\n"
            "SUPABASE_SERVICE_ROLE_KEY='service'\n"
        )
        config = ClimateVisionConfig()

        config._load_from_file(env_file)

        assert config.fal_api_key == "quoted-key"
        assert config.has_backend is True

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLIMATEVISION_RELAY_URL", "https://relay.example.com/generate-video")
        monkeypatch.setenv("CLIMATEVISION_RESOLUTION", "1080p")
        config = ClimateVisionConfig()

        config._load_from_env()

        assert config.relay_url == "https://relay.example.com/generate-video"
        assert config.video_resolution == "1080p"
