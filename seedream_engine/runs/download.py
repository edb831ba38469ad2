"""Download stage: fetch generated images to disk with retries."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

import httpx
from PIL import Image

from ..errors import ErrorKind, SeedreamApiError, http_status_error, transport_error
from ..utils import ensure_dir, filename_timestamp

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "seedream"

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class DownloadResult:
    local_path: Path
    download_time_ms: int
    width: int | None = None
    height: int | None = None


def build_image_path(destination_dir: Path, sequence_index: int, stamp: str | None = None) -> Path:
    return destination_dir / f"{FILENAME_PREFIX}_{stamp or filename_timestamp()}_{sequence_index}.jpg"


def probe_dimensions(path: Path) -> tuple[int | None, int | None]:
    try:
        with Image.open(path) as image:
            return image.size
    except OSError:
        return None, None


class Downloader:
    def __init__(
        self,
        timeout_s: float = 30.0,
        retry_attempts: int = 2,
        retry_delay_s: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.timeout_s = timeout_s
        self.retry_attempts = max(0, retry_attempts)
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep

    async def download(
        self,
        http: httpx.AsyncClient,
        url: str,
        destination_dir: str | Path,
        sequence_index: int,
    ) -> DownloadResult:
        started = time.monotonic()
        target_dir = Path(destination_dir)
        await asyncio.to_thread(ensure_dir, target_dir)
        local_path = build_image_path(target_dir, sequence_index)

        last_error: Exception | None = None
        for attempt in range(self.retry_attempts + 1):
            try:
                data = await self._fetch(http, url)
                await asyncio.to_thread(local_path.write_bytes, data)
            except (SeedreamApiError, OSError) as exc:
                last_error = exc
                logger.debug("Download attempt %s for image %s failed: %s", attempt + 1, sequence_index, exc)
                if attempt < self.retry_attempts:
                    await self._sleep(self.retry_delay_s * (attempt + 1))
                continue
            width, height = await asyncio.to_thread(probe_dimensions, local_path)
            return DownloadResult(
                local_path=local_path,
                download_time_ms=int((time.monotonic() - started) * 1000),
                width=width,
                height=height,
            )
        if last_error is None:
            raise SeedreamApiError(ErrorKind.UNKNOWN, "Download failed after retries")
        raise last_error

    async def _fetch(self, http: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await http.get(url, timeout=self.timeout_s)
        except httpx.TransportError as exc:
            raise transport_error(exc, self.timeout_s) from exc
        if response.status_code != 200:
            raise http_status_error(response.status_code, response.text)
        return response.content
