"""Append-only object storage: Supabase Storage and local directory."""

from __future__ import annotations

import secrets
import time
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx
from rich.console import Console

from .config import ClimateVisionConfig
from .errors import StorageError
from .media import extension_for

console = Console()

STORAGE_TIMEOUT = 60.0


def generate_object_name(prefix: str, mime_type: str = "image/png") -> str:
    """Unique object name: ``<prefix>-<epoch ms>-<random hex>.<ext>``."""
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{secrets.token_hex(4)}.{extension_for(mime_type)}"


class ObjectStorage(Protocol):
    """Write-once object storage with public URLs."""

    def upload(self, bucket: str, name: str, data: bytes, content_type: str) -> str: ...

    def public_url(self, bucket: str, name: str) -> str: ...


class SupabaseStorage:
    """Supabase Storage over its REST API."""

    def __init__(self, base_url: str, api_key: str, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client

    @classmethod
    def from_config(cls, config: ClimateVisionConfig, client: httpx.Client | None = None) -> "SupabaseStorage":
        return cls(config.supabase_url, config.supabase_key, client=client)

    def _headers(self, content_type: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }

    def upload(self, bucket: str, name: str, data: bytes, content_type: str) -> str:
        """
        Upload a new object. Existing names are never overwritten.

        Returns:
            The stored object key

        Raises:
            StorageError: On transport failure or non-2xx response
        """
        url = f"{self.base_url}/storage/v1/object/{bucket}/{quote(name)}"
        client = self._client or httpx.Client(timeout=STORAGE_TIMEOUT)
        try:
            response = client.post(url, headers=self._headers(content_type), content=data)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to upload image to storage: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if response.is_error:
            raise StorageError(
                f"Failed to upload image to storage ({response.status_code}): {response.text}"
            )
        try:
            return str(response.json().get("Key") or f"{bucket}/{name}")
        except ValueError:
            return f"{bucket}/{name}"

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(name)}"

    def download(self, bucket: str, name: str) -> bytes:
        """Fetch an object through its public URL."""
        client = self._client or httpx.Client(timeout=STORAGE_TIMEOUT)
        try:
            response = client.get(self.public_url(bucket, name))
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download {bucket}/{name}: {e}") from e
        finally:
            if self._client is None:
                client.close()


class LocalStorage:
    """Directory-backed storage, one subdirectory per bucket."""

    def __init__(self, root: Path, public_base: str) -> None:
        self.root = root
        self.public_base = public_base.rstrip("/")

    @classmethod
    def from_config(cls, config: ClimateVisionConfig) -> "LocalStorage":
        return cls(config.get_local_storage_dir(), config.local_public_base)

    def _path(self, bucket: str, name: str) -> Path:
        if "/" in name or name in ("", ".", ".."):
            raise StorageError(f"Invalid object name: {name!r}")
        return self.root / bucket / name

    def upload(self, bucket: str, name: str, data: bytes, content_type: str) -> str:
        path = self._path(bucket, name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # "xb" refuses to overwrite an existing object
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(f"Object already exists: {bucket}/{name}") from e
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{name}: {e}") from e
        return f"{bucket}/{name}"

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.public_base}/{bucket}/{quote(name)}"

    def download(self, bucket: str, name: str) -> bytes:
        try:
            return self._path(bucket, name).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {bucket}/{name}: {e}") from e


def storage_from_config(config: ClimateVisionConfig) -> SupabaseStorage | LocalStorage:
    """Hosted storage when configured, local directory otherwise."""
    if config.has_backend:
        return SupabaseStorage.from_config(config)
    console.print(f"[dim]Using local storage at {config.get_local_storage_dir()}[/]")
    return LocalStorage.from_config(config)
