"""Session-scoped notification center."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from rich.console import Console

console = Console()

NotificationKind = Literal["success", "error", "info", "warning"]

_KIND_STYLES = {
    "success": "green",
    "error": "red",
    "info": "blue",
    "warning": "yellow",
}


@dataclass
class Notification:
    """Outcome message shown to the user."""

    id: str
    kind: NotificationKind
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "kind": self.kind,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class NotificationCenter:
    """Newest-first list of notifications with an unread counter."""

    def __init__(self, echo: bool = False) -> None:
        self._items: list[Notification] = []
        self._unread = 0
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self.echo = echo

    def add(self, kind: NotificationKind, message: str) -> Notification:
        # Millisecond timestamp plus a sequence number keeps ids unique
        note_id = f"{int(time.time() * 1000)}-{next(self._counter)}"
        note = Notification(id=note_id, kind=kind, message=message)
        with self._lock:
            self._items.insert(0, note)
            self._unread += 1
        if self.echo:
            console.print(f"[{_KIND_STYLES[kind]}]{message}[/]")
        return note

    def success(self, message: str) -> Notification:
        return self.add("success", message)

    def error(self, message: str) -> Notification:
        return self.add("error", message)

    def info(self, message: str) -> Notification:
        return self.add("info", message)

    def warning(self, message: str) -> Notification:
        return self.add("warning", message)

    def remove(self, note_id: str) -> bool:
        with self._lock:
            before = len(self._items)
            self._items = [n for n in self._items if n.id != note_id]
            return len(self._items) != before

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._unread = 0

    def mark_all_read(self) -> None:
        with self._lock:
            self._unread = 0

    @property
    def unread_count(self) -> int:
        return self._unread

    @property
    def items(self) -> list[Notification]:
        with self._lock:
            return list(self._items)

    @property
    def latest(self) -> Notification | None:
        with self._lock:
            return self._items[0] if self._items else None

    def __len__(self) -> int:
        return len(self._items)
