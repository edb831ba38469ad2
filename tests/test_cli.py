from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from botocore.exceptions import ClientError

from seedream_engine.cli import _build_parser, main
from seedream_engine.config import PipelineConfig
from seedream_engine.engine import GenerationEngine
from seedream_engine.sync.s3 import S3GalleryStore

API = "https://api.test/v3/images/generations"


def _sse_handler(request: httpx.Request) -> httpx.Response:
    frame = json.dumps({"type": "image_generation.partial_succeeded", "url": "https://cdn.test/out.jpg"})
    return httpx.Response(200, content=f"data: {frame}\n\n".encode("utf-8"))


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


def _engine(store: S3GalleryStore | None = None) -> GenerationEngine:
    return GenerationEngine(
        PipelineConfig(api_endpoint=API),
        transport=httpx.MockTransport(_sse_handler),
        api_key="test-key",
        store=store,
    )


def _run(argv: list[str], engine: GenerationEngine | None = None) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(argv, engine_factory=(lambda: engine) if engine is not None else None)
    return int(excinfo.value.code)


def test_parser_collects_repeated_images() -> None:
    args = _build_parser().parse_args(["blend", "merge them", "--image", "a.png", "--image", "b.png"])
    assert args.images == ["a.png", "b.png"]
    assert args.download is True
    assert args.format == "markdown"


def test_generate_json_output(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    events_path = tmp_path / "events.jsonl"

    code = _run(
        ["generate", "a fox", "--count", "2", "--no-download", "--format", "json", "--events", str(events_path)],
        _engine(),
    )

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["success"] is True
    assert payload["prompt"] == "a fox"
    assert [image["index"] for image in payload["images"]] == [1, 2]
    event_types = [json.loads(line)["type"] for line in events_path.read_text(encoding="utf-8").splitlines()]
    assert event_types.count("image") == 2
    assert event_types[-1] == "completed"


def test_generate_markdown_output(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    code = _run(["variations", "a fox", "--count", "2", "--no-download"], _engine())
    out = capsys.readouterr().out
    assert code == 0
    assert "# Variations Generated Successfully" in out
    assert "### Variation 2" in out


def test_invalid_requests_exit_with_usage_error(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    assert _run(["generate", "   "], _engine()) == 2
    assert "Prompt is required" in capsys.readouterr().err
    assert _run(["blend", "p", "--image", "only-one.png"], _engine()) == 2
    assert "At least 2 images" in capsys.readouterr().err


def test_status_json(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SEEDREAM_SYNC_BUCKET", raising=False)
    monkeypatch.setenv("ARK_API_KEY", "k")

    assert _run(["status", "--format", "json"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "healthy"
    assert report["store_configured"] is False


def test_submit_requires_store(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    assert _run(["submit", "p"], _engine()) == 1
    assert "SEEDREAM_SYNC_BUCKET" in capsys.readouterr().err


def test_submit_then_result(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    store = S3GalleryStore(bucket="gallery", region="us-east-1", prefix="seedream", client=FakeS3Client())
    engine = _engine(store)

    assert _run(["submit", "p", "--count", "1", "--format", "json", "--download-dir", str(tmp_path)], engine) == 0
    task_id = json.loads(capsys.readouterr().out)["task_id"]

    assert _run(["result", task_id], engine) == 0
    out = capsys.readouterr().out
    assert "# Task Completed" in out
    assert "https://cdn.test/out.jpg" in out


def test_result_unknown_task(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    store = S3GalleryStore(bucket="gallery", client=FakeS3Client())
    assert _run(["result", "task_missing"], _engine(store)) == 1
    assert "No task found" in capsys.readouterr().err
