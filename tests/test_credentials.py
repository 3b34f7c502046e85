"""Tests for the local credential store."""

import json
import stat
from pathlib import Path

import pytest

from climatevision.credentials import FAL_API_KEY, GEMINI_API_KEY, CredentialStore, mask_secret


class TestCredentialStore:
    """Tests for get/set/delete semantics."""

    def test_missing_key_is_none(self) -> None:
        store = CredentialStore.in_memory()

        assert store.get(FAL_API_KEY) is None
        assert store.has(FAL_API_KEY) is False

    def test_set_get_delete(self) -> None:
        store = CredentialStore.in_memory()

        store.set(FAL_API_KEY, "  fal-key  ")

        assert store.get(FAL_API_KEY) == "fal-key"
        store.delete(FAL_API_KEY)
        assert store.get(FAL_API_KEY) is None

    def test_empty_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            CredentialStore.in_memory().set(FAL_API_KEY, "   ")

    def test_persists_to_file(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "credentials.json"
        CredentialStore(path).set(GEMINI_API_KEY, "gem-key")

        reloaded = CredentialStore(path)

        assert reloaded.get(GEMINI_API_KEY) == "gem-key"
        assert json.loads(path.read_text()) == {GEMINI_API_KEY: "gem-key"}
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_corrupt_file_reads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "credentials.json"
        path.write_text("{not json")

        assert CredentialStore(path).get(FAL_API_KEY) is None


class TestMaskSecret:
    def test_mask(self) -> None:
        assert mask_secret("abcdefghijkl").endswith("efghijkl")
        assert "abcd" not in mask_secret("abcdefghijkl")
        assert "NOT SET" in mask_secret(None)
