"""Submit-and-poll generation tasks tracked in the gallery store."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..config import DEFAULT_DOWNLOAD_DIR
from ..runs.receipts import GenerationRequest, generation_mode
from ..utils import drop_none, serialize
from .base import GalleryStore
from .gallery import sync_image

if TYPE_CHECKING:
    from ..engine import GenerationEngine

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_GENERATING = "generating"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class StoreNotConfiguredError(RuntimeError):
    pass


def new_task_id() -> str:
    return f"task_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


@dataclass(frozen=True)
class TaskSnapshot:
    task_id: str
    status: str
    prompt: str
    images: list[dict[str, Any]]
    expected_count: int | None = None
    error: str | None = None
    usage: dict[str, Any] | None = None
    created_at: str | None = None

    @property
    def progress(self) -> str:
        expected = self.expected_count if self.expected_count is not None else "?"
        return f"{len(self.images)}/{expected}"


class TaskManager:
    def __init__(
        self,
        engine: GenerationEngine,
        store: GalleryStore,
        download_dir: str | Path = DEFAULT_DOWNLOAD_DIR,
    ) -> None:
        self.engine = engine
        self.store = store
        self.download_dir = Path(download_dir)
        self._background: set[asyncio.Task[None]] = set()

    async def create(self, request: GenerationRequest, mode: str | None = None) -> str:
        """Write the durable ``pending`` record and return the new task id."""
        if not self.store.is_configured():
            raise StoreNotConfiguredError("The async task system requires a configured gallery store.")
        task_id = new_task_id()
        await asyncio.to_thread(
            self.store.create_record,
            task_id,
            {
                "kind": "task",
                "status": STATUS_PENDING,
                "prompt": request.prompt,
                "mode": mode or generation_mode(request),
                "size": request.size,
                "strength": request.strength,
                "expected_count": request.batch_count if not request.reference_images else 1,
                "images": [],
            },
        )
        return task_id

    async def submit(self, request: GenerationRequest, mode: str | None = None) -> str:
        task_id = await self.create(request, mode)
        task = asyncio.create_task(self.process(task_id, request, mode))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task_id

    async def wait(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background))

    async def process(self, task_id: str, request: GenerationRequest, mode: str | None = None) -> None:
        resolved_mode = mode or generation_mode(request)
        logger.info("Starting background processing for task %s", task_id)
        try:
            await self._update(task_id, STATUS_GENERATING)
            result = await self.engine.generate(
                request,
                download=True,
                download_dir=self.download_dir,
                skip_sync=True,
            )
            if not result.success:
                await self._update(task_id, STATUS_FAILED, {"error": result.error or "Generation failed"})
                return

            images: list[dict[str, Any]] = []
            for position, image in enumerate(result.images):
                synced = await sync_image(self.store, image, request.prompt, resolved_mode)
                images.append(
                    drop_none(
                        {
                            "id": f"img_{int(time.time() * 1000)}_{position}",
                            "url": image.url,
                            "size": image.size,
                            "status": "ready",
                            "storage_url": synced.storage_url if synced else None,
                            "processed_at": int(time.time() * 1000),
                        }
                    )
                )
                await self._update(task_id, STATUS_PROCESSING, {"images": images})

            await self._update(task_id, STATUS_COMPLETED, {"images": images, "usage": serialize(result.usage)})
            logger.info("Task %s completed with %s images", task_id, len(images))
        except Exception as exc:
            logger.error("Task %s failed", task_id, exc_info=True)
            try:
                await self._update(task_id, STATUS_FAILED, {"error": str(exc)})
            except Exception:
                logger.warning("Could not record failure for task %s", task_id, exc_info=True)

    async def result(self, task_id: str) -> TaskSnapshot | None:
        if not self.store.is_configured():
            raise StoreNotConfiguredError("The async task system requires a configured gallery store.")
        record = await asyncio.to_thread(self.store.get_record, task_id)
        if record is None:
            return None
        return snapshot_from_record(task_id, record)

    async def _update(self, task_id: str, status: str, patch: dict[str, Any] | None = None) -> None:
        await asyncio.to_thread(self.store.update_record_status, task_id, status, patch)


def snapshot_from_record(task_id: str, record: dict[str, Any]) -> TaskSnapshot:
    images = record.get("images")
    usage = record.get("usage")
    expected = record.get("expected_count")
    return TaskSnapshot(
        task_id=task_id,
        status=str(record.get("status") or STATUS_PENDING),
        prompt=str(record.get("prompt") or ""),
        images=list(images) if isinstance(images, list) else [],
        expected_count=int(expected) if isinstance(expected, int) else None,
        error=record.get("error") if isinstance(record.get("error"), str) else None,
        usage=usage if isinstance(usage, dict) else None,
        created_at=record.get("created_at") if isinstance(record.get("created_at"), str) else None,
    )
