"""Local key-value store for user-supplied provider credentials."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from rich.console import Console

console = Console()

# Fixed key names
FAL_API_KEY = "fal_api_key"
GEMINI_API_KEY = "gemini_api_key"


class CredentialStore:
    """
    JSON-file backed credential store.

    A missing file or key is a normal state and reads as ``None``.
    """

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()
        self._load()

    @classmethod
    def in_memory(cls) -> "CredentialStore":
        """Store that never touches disk."""
        return cls(None)

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[yellow]Could not read credentials from {self.path}: {e}[/]")
            return
        if isinstance(data, dict):
            self._values = {str(k): str(v) for k, v in data.items() if v}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)
        os.chmod(self.path, 0o600)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        value = value.strip()
        if not value:
            raise ValueError(f"Empty value for credential '{key}'")
        with self._lock:
            self._values[key] = value
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._save()

    def has(self, key: str) -> bool:
        return self.get(key) is not None


def mask_secret(value: str | None) -> str:
    """Mask a secret for display."""
    if not value:
        return "[red]NOT SET[/]"
    return "*" * 20 + value[-8:]
