"""Time-bounded cache of data-URL encoded reference images."""

from __future__ import annotations

import asyncio
import base64
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

CACHE_MAX_ENTRIES = 10
CACHE_TTL_S = 5 * 60


@dataclass
class CacheEntry:
    payload: str
    inserted_at: float


def _read_file(path: Path) -> bytes:
    return path.read_bytes()


def mime_subtype(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext == "jpg":
        return "jpeg"
    return ext or "png"


def encode_data_url(data: bytes, path: Path) -> str:
    return f"data:image/{mime_subtype(path)};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass
class PayloadCache:
    max_entries: int = CACHE_MAX_ENTRIES
    ttl_s: float = CACHE_TTL_S
    clock: Callable[[], float] = time.monotonic
    _entries: OrderedDict[str, CacheEntry] = field(default_factory=OrderedDict, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.get(path) is not None

    def get(self, path: str | Path) -> str | None:
        key = str(Path(path).resolve())
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.inserted_at >= self.ttl_s:
            return None
        return entry.payload

    def put(self, path: str | Path, payload: str) -> None:
        key = str(Path(path).resolve())
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(payload=payload, inserted_at=self.clock())
        self.sweep()
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def sweep(self) -> None:
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if now - entry.inserted_at >= self.ttl_s]
        for key in expired:
            del self._entries[key]

    async def get_or_encode(self, path: str | Path) -> str:
        absolute = Path(path).resolve()
        self.sweep()
        cached = self.get(absolute)
        if cached is not None:
            return cached
        data = await asyncio.to_thread(_read_file, absolute)
        payload = encode_data_url(data, absolute)
        self.put(absolute, payload)
        return payload
