"""Core Seedream generation pipeline."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from pathlib import Path

import httpx

from .config import DEFAULT_DOWNLOAD_DIR, PipelineConfig, get_api_key
from .errors import classify_error
from .providers.base import GeneratedImage, GenerationUnit, ImageStreamClient
from .providers.seedream import SeedreamStreamClient, build_payload, unit_count
from .runs.cache import PayloadCache
from .runs.download import Downloader
from .runs.events import ProgressCallback, ProgressEvent
from .runs.inputs import ImageInputResolver
from .runs.receipts import (
    TOKENS_PER_IMAGE_ESTIMATE,
    GenerationRequest,
    GenerationResult,
    Timing,
    UnitFailure,
    Usage,
    generation_mode,
)
from .sync.base import GalleryStore
from .sync.gallery import sync_images
from .sync.s3 import S3GalleryStore

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = "ARK_API_KEY environment variable is not set. Please set it before using this tool."
EMPTY_STREAM_MESSAGE = "Stream ended without an image"
UNREADABLE_REFERENCE_MESSAGE = "Could not read reference image"


@dataclass
class UnitOutcome:
    index: int
    image: GeneratedImage | None = None
    error: str | None = None


@dataclass
class _Pipeline:
    http: httpx.AsyncClient
    api_key: str
    generation_slots: asyncio.Semaphore
    download_slots: asyncio.Semaphore
    download: bool
    download_dir: Path
    on_progress: ProgressCallback | None
    total: int
    finished: int = 0


class GenerationEngine:
    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        cache: PayloadCache | None = None,
        client: ImageStreamClient | None = None,
        downloader: Downloader | None = None,
        store: GalleryStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        api_key: str | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.cache = cache or PayloadCache()
        self.resolver = ImageInputResolver(self.cache)
        self.client = client or SeedreamStreamClient(self.config.api_endpoint, timeout_s=self.config.api_timeout_s)
        self.downloader = downloader or Downloader(
            timeout_s=self.config.download_timeout_s,
            retry_attempts=self.config.retry_attempts,
            retry_delay_s=self.config.retry_delay_s,
        )
        self.store = store
        self.transport = transport
        self._api_key = api_key

    @classmethod
    def from_env(cls) -> "GenerationEngine":
        return cls(PipelineConfig.from_env(), store=S3GalleryStore())

    async def generate(
        self,
        request: GenerationRequest,
        *,
        download: bool = True,
        download_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
        on_progress: ProgressCallback | None = None,
        skip_sync: bool = False,
    ) -> GenerationResult:
        """Generate every image of ``request`` and return them in request order.

        Failures of single units are reported in ``GenerationResult.failures``;
        only missing credentials, unreadable reference images or unexpected
        errors produce ``success=False``.
        """
        started = time.monotonic()
        api_key = self._api_key or get_api_key()
        if not api_key:
            logger.error("ARK_API_KEY not set")
            return GenerationResult(success=False, error=MISSING_API_KEY_MESSAGE)

        logger.debug("Starting image generation: prompt=%r size=%s", request.prompt[:100], request.size)
        try:
            return await self._generate(
                request,
                api_key,
                started=started,
                download=download,
                download_dir=Path(download_dir),
                on_progress=on_progress,
                skip_sync=skip_sync,
            )
        except Exception as exc:
            message = classify_error(exc)
            logger.error("Generation failed: %s", message, exc_info=True)
            return GenerationResult(success=False, error=message)

    async def _generate(
        self,
        request: GenerationRequest,
        api_key: str,
        *,
        started: float,
        download: bool,
        download_dir: Path,
        on_progress: ProgressCallback | None,
        skip_sync: bool,
    ) -> GenerationResult:
        try:
            resolved = await self.resolver.resolve_all(request.reference_images)
        except OSError as exc:
            message = f"{UNREADABLE_REFERENCE_MESSAGE}: {exc.filename or exc}"
            logger.error("Reference image unreadable: %s", exc)
            return GenerationResult(success=False, error=message)
        payload = build_payload(request, resolved, model_id=self.config.model_id)
        total = unit_count(request, self.config.max_batch_count)
        units = [GenerationUnit(index=idx, payload=copy.deepcopy(payload)) for idx in range(1, total + 1)]
        logger.debug("Making %s parallel API calls (size=%s)", total, payload["size"])

        generation_started = time.monotonic()
        async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as http:
            pipeline = _Pipeline(
                http=http,
                api_key=api_key,
                generation_slots=asyncio.Semaphore(self.config.max_parallel_api_calls),
                download_slots=asyncio.Semaphore(self.config.max_parallel_downloads),
                download=download,
                download_dir=download_dir,
                on_progress=on_progress,
                total=total,
            )
            _emit(on_progress, ProgressEvent("progress", generated=0, total=total))
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._run_unit(pipeline, unit)) for unit in units]
        outcomes = [task.result() for task in tasks]
        generation_ms = int((time.monotonic() - generation_started) * 1000)

        images = sorted((outcome.image for outcome in outcomes if outcome.image is not None), key=lambda image: image.index)
        failures = tuple(
            UnitFailure(index=outcome.index, error=outcome.error)
            for outcome in sorted(outcomes, key=lambda item: item.index)
            if outcome.image is None and outcome.error is not None
        )
        _emit(on_progress, ProgressEvent("completed", generated=len(images), total=total))
        logger.debug("Generation completed: %s/%s images in %sms", len(images), total, generation_ms)

        if self.store is not None and not skip_sync and self.store.is_configured():
            downloaded = [image for image in images if image.local_path]
            if downloaded:
                logger.debug("Syncing %s images to gallery", len(downloaded))
                await sync_images(self.store, downloaded, request.prompt, generation_mode(request))
        elif skip_sync:
            logger.debug("Skipping gallery sync (caller will handle)")

        return GenerationResult(
            success=True,
            images=tuple(images),
            usage=Usage(
                generated_images=len(images),
                total_tokens=len(images) * TOKENS_PER_IMAGE_ESTIMATE,
            ),
            timing=Timing(
                generation_ms=generation_ms,
                download_ms=sum(image.download_time_ms or 0 for image in images),
                total_ms=int((time.monotonic() - started) * 1000),
            ),
            failures=failures,
        )

    async def _run_unit(self, pipeline: _Pipeline, unit: GenerationUnit) -> UnitOutcome:
        outcome = await self._generate_unit(pipeline, unit)
        pipeline.finished += 1
        _emit(
            pipeline.on_progress,
            ProgressEvent("progress", generated=pipeline.finished, total=pipeline.total),
        )
        return outcome

    async def _generate_unit(self, pipeline: _Pipeline, unit: GenerationUnit) -> UnitOutcome:
        try:
            async with pipeline.generation_slots:
                image = await self.client.consume_one_image(
                    pipeline.http,
                    unit.payload,
                    pipeline.api_key,
                    index=unit.index,
                )
        except Exception as exc:
            message = classify_error(exc)
            logger.warning("Image %s generation failed: %s", unit.index, message)
            _emit(pipeline.on_progress, ProgressEvent("error", index=unit.index, message=message))
            return UnitOutcome(unit.index, error=message)
        if image is None:
            _emit(pipeline.on_progress, ProgressEvent("error", index=unit.index, message=EMPTY_STREAM_MESSAGE))
            return UnitOutcome(unit.index, error=EMPTY_STREAM_MESSAGE)

        _emit(
            pipeline.on_progress,
            ProgressEvent("image", index=unit.index, url=image.url, message=f"Image {unit.index} generated"),
        )
        if pipeline.download:
            await self._download_unit(pipeline, image)
        return UnitOutcome(unit.index, image=image)

    async def _download_unit(self, pipeline: _Pipeline, image: GeneratedImage) -> None:
        try:
            async with pipeline.download_slots:
                result = await self.downloader.download(pipeline.http, image.url, pipeline.download_dir, image.index)
        except Exception as exc:
            logger.warning("Failed to download image %s: %s", image.index, exc)
            return
        image.local_path = str(result.local_path)
        image.download_time_ms = result.download_time_ms
        image.width = result.width
        image.height = result.height
        logger.debug("Image %s downloaded in %sms", image.index, result.download_time_ms)


def _emit(callback: ProgressCallback | None, event: ProgressEvent) -> None:
    if callback is None:
        return
    try:
        callback(event)
    except Exception:
        logger.warning("Progress callback failed for %s event", event.type, exc_info=True)


def generate_images(
    request: GenerationRequest,
    download: bool = True,
    download_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
    on_progress: ProgressCallback | None = None,
    skip_sync: bool = False,
    *,
    engine: GenerationEngine | None = None,
) -> GenerationResult:
    active = engine or GenerationEngine.from_env()
    return asyncio.run(
        active.generate(
            request,
            download=download,
            download_dir=download_dir,
            on_progress=on_progress,
            skip_sync=skip_sync,
        )
    )
