"""Per-session toast notifications, drained by GET /api/notifications."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

MAX_TOASTS = 50


@dataclass
class Toast:
    title: str
    description: str
    variant: str = "default"  # "default" or "destructive"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "createdAt": self.created_at.isoformat(),
        }


class ToastQueue:
    """Bounded FIFO of pending toasts; oldest are dropped when full."""

    def __init__(self, maxlen: int = MAX_TOASTS) -> None:
        self._items: deque[Toast] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def push(self, title: str, description: str, variant: str = "default") -> Toast:
        toast = Toast(title, description, variant)
        with self._lock:
            self._items.append(toast)
        return toast

    def error(self, description: str, title: str = "Error") -> Toast:
        return self.push(title, description, variant="destructive")

    def drain(self) -> list[Toast]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
