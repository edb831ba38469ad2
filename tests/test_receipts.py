from __future__ import annotations

import pytest

from seedream_engine.providers.base import GeneratedImage
from seedream_engine.runs.receipts import (
    GenerationRequest,
    GenerationResult,
    Timing,
    UnitFailure,
    Usage,
    blend_request,
    edit_request,
    generation_mode,
    resolve_size,
    text_request,
    validate_request,
    variations_request,
)


@pytest.mark.parametrize(
    ("request_kwargs", "message"),
    [
        ({"prompt": "   "}, "Prompt is required"),
        ({"prompt": "x" * 2001}, "2000 characters"),
        ({"prompt": "p", "size": "huge"}, "Unsupported size"),
        ({"prompt": "p", "reference_images": tuple(f"https://cdn.test/{n}" for n in range(15))}, "Maximum 14"),
        ({"prompt": "p", "batch_count": 16}, "between 1 and 15"),
        ({"prompt": "p", "strength": 1.5}, "strength"),
    ],
)
def test_validate_request_rejects(request_kwargs, message) -> None:
    with pytest.raises(ValueError, match=message):
        validate_request(GenerationRequest(**request_kwargs))


def test_validate_request_accepts_presets_and_dimensions() -> None:
    for size in ("2K", "4K", "21:9", "1024x768", "2048X2048"):
        request = GenerationRequest(prompt="p", size=size)
        assert validate_request(request) is request


def test_resolve_size() -> None:
    assert resolve_size("1:1") == "2048x2048"
    assert resolve_size("9:16") == "1440x2560"
    assert resolve_size("4K") == "4K"
    assert resolve_size("1000x500") == "1000x500"


def test_builders() -> None:
    assert text_request("p").batch_count == 4

    edit = edit_request("p", "https://cdn.test/a.png")
    assert edit.reference_images == ("https://cdn.test/a.png",)
    assert edit.strength == 0.7
    assert generation_mode(edit) == "image"

    blend = blend_request("p", ["a.png", "b.png"], strength=0.4)
    assert blend.reference_images == ("a.png", "b.png")
    assert generation_mode(blend) == "multi"
    with pytest.raises(ValueError, match="At least 2 images"):
        blend_request("p", ["a.png"])

    variations = variations_request("p", count=6)
    assert variations.batch_count == 6
    assert generation_mode(variations) == "text"
    assert variations_request("p", base_image="a.png").reference_images == ("a.png",)
    with pytest.raises(ValueError, match="between 2 and 15"):
        variations_request("p", count=1)


def test_result_to_dict_drops_empty_fields() -> None:
    result = GenerationResult(
        success=True,
        images=(GeneratedImage(url="https://cdn.test/1.jpg", size="2K", index=1),),
        usage=Usage(generated_images=1, total_tokens=4096),
        timing=Timing(generation_ms=1200, download_ms=300, total_ms=1600),
        failures=(UnitFailure(index=2, error="Rate limit exceeded."),),
    )
    payload = result.to_dict()
    assert "error" not in payload
    assert payload["images"][0]["url"] == "https://cdn.test/1.jpg"
    assert payload["usage"] == {"generated_images": 1, "total_tokens": 4096}
    assert payload["failures"] == [{"index": 2, "error": "Rate limit exceeded."}]
