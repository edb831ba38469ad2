"""Provider base classes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx


@dataclass
class GeneratedImage:
    url: str
    size: str
    index: int
    local_path: str | None = None
    download_time_ms: int | None = None
    width: int | None = None
    height: int | None = None


@dataclass
class GenerationUnit:
    index: int
    payload: dict[str, Any]


class ImageStreamClient(Protocol):
    async def consume_one_image(
        self,
        http: httpx.AsyncClient,
        payload: Mapping[str, Any],
        api_key: str,
        *,
        index: int,
    ) -> GeneratedImage | None:
        ...
