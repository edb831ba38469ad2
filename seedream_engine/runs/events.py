"""Progress events emitted while a generation call runs."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal

from ..utils import drop_none, now_utc_iso

EventType = Literal["image", "error", "completed", "progress"]


@dataclass(frozen=True)
class ProgressEvent:
    type: EventType
    index: int | None = None
    url: str | None = None
    message: str | None = None
    generated: int | None = None
    total: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return drop_none(
            {
                "type": self.type,
                "index": self.index,
                "url": self.url,
                "message": self.message,
                "generated": self.generated,
                "total": self.total,
            }
        )


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class EventWriter:
    """Append-only JSONL sink; usable directly as a progress callback."""

    path: Path
    run_id: str
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, init=False)

    def emit(self, event_type: str, **payload: Any) -> dict[str, Any]:
        event = {
            "type": event_type,
            "run_id": self.run_id,
            "ts": now_utc_iso(),
        }
        event.update(payload)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = f"{json.dumps(event)}\n"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        return event

    def __call__(self, event: ProgressEvent) -> None:
        payload = event.to_dict()
        event_type = payload.pop("type")
        self.emit(event_type, **payload)


def fan_out(*callbacks: ProgressCallback | None) -> ProgressCallback | None:
    active = [callback for callback in callbacks if callback is not None]
    if not active:
        return None
    if len(active) == 1:
        return active[0]

    def _emit(event: ProgressEvent) -> None:
        for callback in active:
            callback(event)

    return _emit
