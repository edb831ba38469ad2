from __future__ import annotations

import asyncio
import base64
from pathlib import Path

from seedream_engine.runs import cache as cache_module
from seedream_engine.runs.cache import PayloadCache, encode_data_url, mime_subtype


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entry_expires_after_ttl(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = PayloadCache(clock=clock)
    path = tmp_path / "ref.png"
    cache.put(path, "data:image/png;base64,AAAA")

    clock.now = 299.0
    assert cache.get(path) == "data:image/png;base64,AAAA"

    clock.now = 300.0
    assert cache.get(path) is None
    assert path not in cache


def test_eleventh_insert_evicts_oldest(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = PayloadCache(clock=clock)
    paths = [tmp_path / f"ref-{idx}.png" for idx in range(11)]
    for idx, path in enumerate(paths):
        clock.now = float(idx)
        cache.put(path, f"payload-{idx}")

    assert len(cache) == 10
    assert paths[0] not in cache
    assert cache.get(paths[10]) == "payload-10"


def test_put_sweeps_expired_entries(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = PayloadCache(clock=clock)
    cache.put(tmp_path / "old.png", "old")
    clock.now = 400.0
    cache.put(tmp_path / "new.png", "new")
    assert len(cache) == 1


def test_get_or_encode_reads_file_once(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "ref.png"
    path.write_bytes(b"\x89PNG fake")
    reads: list[Path] = []

    def fake_read(target: Path) -> bytes:
        reads.append(target)
        return target.read_bytes()

    monkeypatch.setattr(cache_module, "_read_file", fake_read)
    cache = PayloadCache()

    async def _twice() -> tuple[str, str]:
        first = await cache.get_or_encode(path)
        second = await cache.get_or_encode(str(path))
        return first, second

    first, second = asyncio.run(_twice())
    assert first == second
    assert len(reads) == 1
    assert first == "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode("ascii")


def test_mime_subtype_from_extension() -> None:
    assert mime_subtype(Path("photo.JPG")) == "jpeg"
    assert mime_subtype(Path("photo.webp")) == "webp"
    assert mime_subtype(Path("no_extension")) == "png"
    assert encode_data_url(b"hi", Path("a.jpg")).startswith("data:image/jpeg;base64,")


def test_get_or_encode_sweeps_expired_entries(tmp_path: Path) -> None:
    clock = FakeClock()
    cache = PayloadCache(clock=clock)
    cache.put(tmp_path / "stale.png", "stale")
    fresh = tmp_path / "fresh.png"
    fresh.write_bytes(b"png")

    clock.now = 301.0
    asyncio.run(cache.get_or_encode(fresh))

    assert len(cache) == 1
    assert fresh in cache
