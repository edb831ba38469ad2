from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Any

import pytest
from botocore.exceptions import ClientError

from seedream_engine.providers.base import GeneratedImage
from seedream_engine.runs.receipts import GenerationRequest, GenerationResult, Usage
from seedream_engine.sync.s3 import S3GalleryStore
from seedream_engine.sync.tasks import StoreNotConfiguredError, TaskManager, new_task_id


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.objects[kwargs["Key"]] = kwargs["Body"]
        return {}

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}


class StatusTrackingStore(S3GalleryStore):
    def __init__(self) -> None:
        super().__init__(bucket="gallery", region="us-east-1", prefix="seedream", client=FakeS3Client())
        self.statuses: list[str] = []

    def update_record_status(self, record_id, status, patch=None) -> None:
        self.statuses.append(status)
        super().update_record_status(record_id, status, patch)


class FakeEngine:
    def __init__(self, result: GenerationResult) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    async def generate(self, request: GenerationRequest, **kwargs: Any) -> GenerationResult:
        self.calls.append(kwargs)
        return self.result


def _downloaded(tmp_path: Path, count: int) -> tuple[GeneratedImage, ...]:
    images = []
    for index in range(1, count + 1):
        path = tmp_path / f"seedream_{index}.jpg"
        path.write_bytes(b"jpeg")
        images.append(GeneratedImage(url=f"https://cdn.test/{index}.jpg", size="2K", index=index, local_path=str(path)))
    return tuple(images)


def _submit_and_wait(manager: TaskManager, request: GenerationRequest) -> str:
    async def _run() -> str:
        task_id = await manager.submit(request)
        await manager.wait()
        return task_id

    return asyncio.run(_run())


def test_task_runs_to_completion(tmp_path: Path) -> None:
    result = GenerationResult(
        success=True,
        images=_downloaded(tmp_path, 2),
        usage=Usage(generated_images=2, total_tokens=8192),
    )
    engine = FakeEngine(result)
    store = StatusTrackingStore()
    manager = TaskManager(engine, store, tmp_path)  # type: ignore[arg-type]

    task_id = _submit_and_wait(manager, GenerationRequest(prompt="a canyon", batch_count=2))

    assert store.statuses == ["generating", "processing", "processing", "completed"]
    assert engine.calls[0]["skip_sync"] is True
    snapshot = asyncio.run(manager.result(task_id))
    assert snapshot is not None
    assert snapshot.status == "completed"
    assert snapshot.prompt == "a canyon"
    assert snapshot.progress == "2/2"
    assert [image["url"] for image in snapshot.images] == ["https://cdn.test/1.jpg", "https://cdn.test/2.jpg"]
    assert all(image["storage_url"].startswith("https://gallery.s3.") for image in snapshot.images)
    assert snapshot.usage == {"generated_images": 2, "total_tokens": 8192}


def test_failed_generation_marks_task_failed(tmp_path: Path) -> None:
    engine = FakeEngine(GenerationResult(success=False, error="Authentication failed."))
    store = StatusTrackingStore()
    manager = TaskManager(engine, store, tmp_path)  # type: ignore[arg-type]

    task_id = _submit_and_wait(manager, GenerationRequest(prompt="p"))

    snapshot = asyncio.run(manager.result(task_id))
    assert snapshot is not None
    assert snapshot.status == "failed"
    assert snapshot.error == "Authentication failed."
    assert store.statuses == ["generating", "failed"]


def test_pending_record_written_before_processing(tmp_path: Path) -> None:
    store = StatusTrackingStore()
    manager = TaskManager(FakeEngine(GenerationResult(success=True)), store, tmp_path)  # type: ignore[arg-type]

    task_id = asyncio.run(manager.create(GenerationRequest(prompt="p", reference_images=("https://a",))))
    snapshot = asyncio.run(manager.result(task_id))

    assert snapshot is not None
    assert snapshot.status == "pending"
    assert snapshot.expected_count == 1
    assert snapshot.progress == "0/1"


def test_unknown_task_returns_none(tmp_path: Path) -> None:
    manager = TaskManager(FakeEngine(GenerationResult(success=True)), StatusTrackingStore(), tmp_path)  # type: ignore[arg-type]
    assert asyncio.run(manager.result("task_missing")) is None


def test_unconfigured_store_rejected(tmp_path: Path) -> None:
    store = S3GalleryStore(bucket="", client=FakeS3Client())
    manager = TaskManager(FakeEngine(GenerationResult(success=True)), store, tmp_path)  # type: ignore[arg-type]
    with pytest.raises(StoreNotConfiguredError):
        asyncio.run(manager.submit(GenerationRequest(prompt="p")))


def test_task_ids_are_unique() -> None:
    first, second = new_task_id(), new_task_id()
    assert first.startswith("task_")
    assert first != second
