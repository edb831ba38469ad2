"""Request and result records for one generation call."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..providers.base import GeneratedImage
from ..utils import serialize

MAX_PROMPT_CHARS = 2000
MAX_REFERENCE_IMAGES = 14
MAX_BATCH_COUNT = 15
TOKENS_PER_IMAGE_ESTIMATE = 4096
DEFAULT_STRENGTH = 0.7

SIZE_PRESETS: dict[str, str] = {
    "2K": "2K",
    "4K": "4K",
    "1:1": "2048x2048",
    "4:3": "2304x1728",
    "3:4": "1728x2304",
    "16:9": "2560x1440",
    "9:16": "1440x2560",
    "3:2": "2496x1664",
    "2:3": "1664x2496",
    "21:9": "3024x1296",
}
_DIM_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    size: str = "2K"
    reference_images: tuple[str, ...] = ()
    strength: float | None = None
    batch_count: int = 4
    watermark: bool = False


@dataclass(frozen=True)
class Usage:
    generated_images: int
    total_tokens: int


@dataclass(frozen=True)
class Timing:
    generation_ms: int
    download_ms: int
    total_ms: int


@dataclass(frozen=True)
class UnitFailure:
    index: int
    error: str


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    images: tuple[GeneratedImage, ...] = ()
    usage: Usage | None = None
    timing: Timing | None = None
    error: str | None = None
    failures: tuple[UnitFailure, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        payload = serialize(self)
        return {key: value for key, value in payload.items() if value is not None}


def generation_mode(request: GenerationRequest) -> str:
    count = len(request.reference_images)
    if count == 0:
        return "text"
    if count == 1:
        return "image"
    return "multi"


def resolve_size(size: str) -> str:
    return SIZE_PRESETS.get(size, size)


def validate_request(request: GenerationRequest) -> GenerationRequest:
    prompt = request.prompt.strip() if isinstance(request.prompt, str) else ""
    if not prompt:
        raise ValueError("Prompt is required")
    if len(request.prompt) > MAX_PROMPT_CHARS:
        raise ValueError(f"Prompt must not exceed {MAX_PROMPT_CHARS} characters")
    if request.size not in SIZE_PRESETS and not _DIM_RE.match(request.size or ""):
        choices = ", ".join(SIZE_PRESETS)
        raise ValueError(f"Unsupported size '{request.size}'. Use one of {choices} or WIDTHxHEIGHT.")
    if len(request.reference_images) > MAX_REFERENCE_IMAGES:
        raise ValueError(f"Maximum {MAX_REFERENCE_IMAGES} reference images allowed")
    if any(not ref for ref in request.reference_images):
        raise ValueError("Reference images must be non-empty URLs or paths")
    if not 1 <= request.batch_count <= MAX_BATCH_COUNT:
        raise ValueError(f"batch_count must be between 1 and {MAX_BATCH_COUNT}")
    if request.strength is not None and not 0.0 <= request.strength <= 1.0:
        raise ValueError("strength must be between 0 and 1")
    return request


def text_request(prompt: str, *, size: str = "2K", count: int = 4, watermark: bool = False) -> GenerationRequest:
    return GenerationRequest(prompt=prompt, size=size, batch_count=count, watermark=watermark)


def edit_request(
    prompt: str,
    image: str,
    *,
    size: str = "2K",
    strength: float = DEFAULT_STRENGTH,
    watermark: bool = False,
) -> GenerationRequest:
    return GenerationRequest(
        prompt=prompt,
        size=size,
        reference_images=(image,),
        strength=strength,
        batch_count=1,
        watermark=watermark,
    )


def blend_request(
    prompt: str,
    images: Sequence[str],
    *,
    size: str = "2K",
    strength: float = DEFAULT_STRENGTH,
    watermark: bool = False,
) -> GenerationRequest:
    if len(images) < 2:
        raise ValueError("At least 2 images required for blending")
    return GenerationRequest(
        prompt=prompt,
        size=size,
        reference_images=tuple(images),
        strength=strength,
        batch_count=1,
        watermark=watermark,
    )


def variations_request(
    prompt: str,
    *,
    count: int = 4,
    base_image: str | None = None,
    size: str = "2K",
    watermark: bool = False,
) -> GenerationRequest:
    if not 2 <= count <= MAX_BATCH_COUNT:
        raise ValueError(f"Variations count must be between 2 and {MAX_BATCH_COUNT}")
    return GenerationRequest(
        prompt=prompt,
        size=size,
        reference_images=(base_image,) if base_image else (),
        batch_count=count,
        watermark=watermark,
    )
