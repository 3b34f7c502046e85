"""Canned video responses selected by prompt classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Protocol

import yaml
from rich.console import Console

console = Console()

# Path to embedded default fallback mapping
DEFAULT_FALLBACKS_PATH = Path(__file__).parent / "default_fallbacks.yaml"


class PromptClassifier(Protocol):
    """Assigns tags to a free-text prompt."""

    def classify(self, prompt: str) -> list[str]: ...


@dataclass
class KeywordClassifier:
    """Tags a prompt when any of a tag's keywords occurs in it (case-insensitive).

    Matching is by substring, so "fire" also tags "wildfire" and "firefighters".
    """

    tags: dict[str, list[str]] = field(default_factory=dict)

    def classify(self, prompt: str) -> list[str]:
        text = prompt.lower()
        matched = []
        for tag, keywords in self.tags.items():
            if any(k.lower() in text for k in keywords if k):
                matched.append(tag)
        return matched


@dataclass
class FallbackAsset:
    """Pre-recorded video returned in place of a provider result."""

    url: str
    file_name: str = "fallback.mp4"
    content_type: str = "video/mp4"
    file_size: int = 0


@dataclass
class FallbackPolicy:
    """Maps prompt tags to fallback assets."""

    classifier: PromptClassifier
    assets: dict[str, FallbackAsset] = field(default_factory=dict)
    enabled: bool = True

    # Search paths for fallbacks file (in order of priority)
    SEARCH_PATHS: ClassVar[list[str]] = [
        "fallbacks.yaml",
        ".climatevision/fallbacks.yaml",
    ]

    def select(self, prompt: str) -> tuple[str, FallbackAsset] | None:
        """Return (tag, asset) for the first classified tag with an asset."""
        if not self.enabled:
            return None
        for tag in self.classifier.classify(prompt):
            asset = self.assets.get(tag)
            if asset is not None:
                return tag, asset
        return None

    @classmethod
    def disabled(cls) -> "FallbackPolicy":
        """Policy that never substitutes a canned result."""
        return cls(classifier=KeywordClassifier(), enabled=False)

    @classmethod
    def load(cls, fallbacks_file: Path | None = None) -> "FallbackPolicy":
        """
        Load the fallback policy.

        Priority:
        1. Explicit fallbacks_file parameter
        2. fallbacks.yaml in current directory
        3. Embedded defaults
        """
        if fallbacks_file:
            if fallbacks_file.exists():
                return cls._load_from_file(fallbacks_file)
            console.print(f"[yellow]Fallbacks file not found: {fallbacks_file}[/]")
            console.print("[dim]Falling back to defaults[/]")

        for search_path in cls.SEARCH_PATHS:
            path = Path.cwd() / search_path
            if path.exists():
                console.print(f"[dim]Using fallbacks from: {path}[/]")
                return cls._load_from_file(path)

        return cls._load_from_file(DEFAULT_FALLBACKS_PATH)

    @classmethod
    def _load_from_file(cls, path: Path) -> "FallbackPolicy":
        """Load policy from YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            console.print(f"[yellow]Error parsing fallbacks file: {e}[/]")
            return cls._load_defaults(path)
        except OSError as e:
            console.print(f"[yellow]Error reading fallbacks file: {e}[/]")
            return cls._load_defaults(path)

        if not isinstance(data, dict):
            console.print(f"[yellow]Invalid fallbacks file format: {path}[/]")
            return cls._load_defaults(path)

        tags = {
            str(tag): [str(k) for k in (keywords or [])]
            for tag, keywords in (data.get("tags") or {}).items()
        }
        assets = {}
        for tag, entry in (data.get("fallbacks") or {}).items():
            if not isinstance(entry, dict) or not entry.get("url"):
                continue
            assets[str(tag)] = FallbackAsset(
                url=str(entry["url"]),
                file_name=str(entry.get("file_name", f"{tag}-fallback.mp4")),
                content_type=str(entry.get("content_type", "video/mp4")),
                file_size=int(entry.get("file_size", 0)),
            )

        return cls(
            classifier=KeywordClassifier(tags=tags),
            assets=assets,
            enabled=bool(data.get("enabled", True)),
        )

    @classmethod
    def _load_defaults(cls, failed_path: Path) -> "FallbackPolicy":
        if failed_path == DEFAULT_FALLBACKS_PATH:
            return cls.disabled()
        return cls._load_from_file(DEFAULT_FALLBACKS_PATH)


def save_default_fallbacks(path: Path) -> None:
    """Save default fallback mapping to a file for user customization."""
    import shutil

    shutil.copy(DEFAULT_FALLBACKS_PATH, path)
    console.print(f"[green]Default fallbacks saved to: {path}[/]")
