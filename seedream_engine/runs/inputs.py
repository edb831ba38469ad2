"""Reference image resolution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

from .cache import PayloadCache

PASSTHROUGH_PREFIXES = ("http://", "https://", "data:")


def is_passthrough(ref: str) -> bool:
    return ref.startswith(PASSTHROUGH_PREFIXES)


@dataclass
class ImageInputResolver:
    cache: PayloadCache = field(default_factory=PayloadCache)

    async def resolve(self, ref: str) -> str:
        if is_passthrough(ref):
            return ref
        return await self.cache.get_or_encode(ref)

    async def resolve_all(self, refs: Sequence[str]) -> list[str]:
        # gather keeps input order and re-raises the first failure.
        return list(await asyncio.gather(*(self.resolve(ref) for ref in refs)))
