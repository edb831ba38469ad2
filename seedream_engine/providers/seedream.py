"""Seedream streaming image provider."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Sequence

import httpx

from ..config import API_ENDPOINT, MODEL_ID
from ..errors import ErrorKind, SeedreamApiError, http_status_error, transport_error
from ..runs.receipts import GenerationRequest, resolve_size
from ..utils import sanitize_payload
from .base import GeneratedImage

logger = logging.getLogger(__name__)

EVENT_PARTIAL_SUCCEEDED = "image_generation.partial_succeeded"
EVENT_PARTIAL_FAILED = "image_generation.partial_failed"
DEFAULT_IMAGE_SIZE = "2K"
_DATA_PREFIX = "data: "
_DONE_MARKER = "[DONE]"


def build_payload(
    request: GenerationRequest,
    resolved_images: Sequence[str] = (),
    *,
    model_id: str = MODEL_ID,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model_id,
        "prompt": request.prompt,
        "size": resolve_size(request.size),
        "response_format": "url",
        "watermark": bool(request.watermark),
        "stream": True,
    }
    if resolved_images:
        if len(resolved_images) == 1:
            payload["image"] = resolved_images[0]
        else:
            # Multi-image blends produce one output per call.
            payload["image"] = list(resolved_images)
            payload["sequential_image_generation"] = "disabled"
        if request.strength is not None:
            payload["strength"] = max(0.0, min(1.0, float(request.strength)))
    return payload


def unit_count(request: GenerationRequest, max_batch_count: int = 15) -> int:
    if request.reference_images:
        return 1
    return max(1, min(int(request.batch_count), max_batch_count))


def parse_sse_line(line: str) -> dict[str, Any] | None:
    if not line.startswith(_DATA_PREFIX):
        return None
    data = line[len(_DATA_PREFIX):].strip()
    if not data or data == _DONE_MARKER:
        return None
    try:
        event = json.loads(data)
    except ValueError:
        return None
    return event if isinstance(event, dict) else None


def _failure_message(event: Mapping[str, Any]) -> str:
    error = event.get("error")
    if isinstance(error, Mapping):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return "Image generation failed"


class SeedreamStreamClient:
    name = "seedream"

    def __init__(self, endpoint: str = API_ENDPOINT, timeout_s: float = 180.0) -> None:
        self.endpoint = endpoint
        self.timeout_s = timeout_s

    async def consume_one_image(
        self,
        http: httpx.AsyncClient,
        payload: Mapping[str, Any],
        api_key: str,
        *,
        index: int,
    ) -> GeneratedImage | None:
        """Stream one generation call and return its image as soon as it is ready.

        Raises ``SeedreamApiError`` for a non-200 response, an explicit failure
        frame, a transport failure or when the whole call exceeds ``timeout_s``.
        Returns ``None`` when the stream ends without a terminal frame.
        """
        logger.debug(
            "Streaming request %s to %s: %s",
            index,
            self.endpoint,
            sanitize_payload(payload),
        )
        try:
            async with asyncio.timeout(self.timeout_s):
                return await self._stream(http, payload, api_key, index)
        except TimeoutError as exc:
            raise SeedreamApiError(ErrorKind.TIMEOUT, f"Request timed out after {self.timeout_s:g}s") from exc
        except httpx.TransportError as exc:
            raise transport_error(exc, self.timeout_s) from exc

    async def _stream(
        self,
        http: httpx.AsyncClient,
        payload: Mapping[str, Any],
        api_key: str,
        index: int,
    ) -> GeneratedImage | None:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        async with http.stream(
            "POST",
            self.endpoint,
            json=dict(payload),
            headers=headers,
            timeout=self.timeout_s,
        ) as response:
            logger.debug("Request %s response status: %s", index, response.status_code)
            if response.status_code != 200:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise http_status_error(response.status_code, body)
            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is None:
                    continue
                event_type = event.get("type")
                if event_type == EVENT_PARTIAL_SUCCEEDED:
                    url = event.get("url")
                    if not isinstance(url, str) or not url:
                        continue
                    size = event.get("size") or DEFAULT_IMAGE_SIZE
                    return GeneratedImage(url=url, size=str(size), index=index)
                if event_type == EVENT_PARTIAL_FAILED:
                    raise SeedreamApiError(ErrorKind.SERVER, _failure_message(event))
        return None
