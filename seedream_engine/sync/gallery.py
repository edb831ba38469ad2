"""Upload downloaded images to the shared gallery."""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..providers.base import GeneratedImage
from ..utils import filename_timestamp
from .base import GalleryStore

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "engine-public"
DEFAULT_USER_NAME = "Seedream Engine"


@dataclass(frozen=True)
class SyncedImage:
    storage_url: str
    record_id: str


def gallery_identity() -> tuple[str, str]:
    user_id = os.getenv("SEEDREAM_USER_ID", "").strip() or DEFAULT_USER_ID
    user_name = os.getenv("SEEDREAM_USER_NAME", "").strip() or DEFAULT_USER_NAME
    return user_id, user_name


def upload_filename() -> str:
    return f"seedream_{filename_timestamp()}_{secrets.token_hex(3)}.jpg"


async def sync_image(
    store: GalleryStore,
    image: GeneratedImage,
    prompt: str,
    mode: str = "text",
) -> SyncedImage | None:
    if not image.local_path:
        return None
    try:
        data = await asyncio.to_thread(Path(image.local_path).read_bytes)
        storage_url = await asyncio.to_thread(store.upload_blob, data, upload_filename())
        user_id, user_name = gallery_identity()
        record_id = f"img_{uuid.uuid4().hex[:12]}"
        await asyncio.to_thread(
            store.create_record,
            record_id,
            {
                "user_id": user_id,
                "user_name": user_name,
                "prompt": prompt,
                "image_url": storage_url,
                "original_url": image.url,
                "size": image.size,
                "mode": mode,
                "source": "engine",
                "liked": False,
                "deleted": False,
            },
        )
    except Exception:
        logger.warning("Failed to sync image %s to gallery", image.index, exc_info=True)
        return None
    logger.debug("Synced image %s to %s (%s)", image.index, storage_url, record_id)
    return SyncedImage(storage_url=storage_url, record_id=record_id)


async def sync_images(
    store: GalleryStore,
    images: Sequence[GeneratedImage],
    prompt: str,
    mode: str = "text",
) -> list[SyncedImage | None]:
    return list(await asyncio.gather(*(sync_image(store, image, prompt, mode) for image in images)))
