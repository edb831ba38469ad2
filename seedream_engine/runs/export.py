"""Render generation results, task snapshots and status reports."""

from __future__ import annotations

import json
from typing import Any

from ..utils import format_duration_ms, serialize
from .receipts import GenerationResult

FORMAT_MARKDOWN = "markdown"
FORMAT_JSON = "json"
OUTPUT_FORMATS = (FORMAT_MARKDOWN, FORMAT_JSON)


def to_json(payload: Any) -> str:
    return json.dumps(serialize(payload), indent=2)


def result_payload(result: GenerationResult, prompt: str | None = None) -> dict[str, Any]:
    payload = result.to_dict()
    if prompt is not None:
        payload["prompt"] = prompt
    return payload


def result_markdown(
    result: GenerationResult,
    *,
    prompt: str,
    size: str,
    title: str = "Image Generated Successfully",
    item_label: str = "Image",
) -> str:
    if not result.success:
        return "\n".join(["# Generation Failed", "", f"**Error:** {result.error or 'Unknown error'}"])

    lines = [
        f"# {title}",
        "",
        f"**Prompt:** {prompt}",
        f"**Size:** {size}",
        "",
        "## Generated Images",
        "",
    ]
    if not result.images:
        lines.append("_No images were returned._")
        lines.append("")
    for position, image in enumerate(result.images, start=1):
        lines.append(f"### {item_label} {position}")
        lines.append(f"- **URL:** {image.url}")
        if image.local_path:
            lines.append(f"- **Local:** `{image.local_path}`")
        if image.width and image.height:
            lines.append(f"- **Size:** {image.size} ({image.width}x{image.height})")
        else:
            lines.append(f"- **Size:** {image.size}")
        lines.append("")

    if result.failures:
        lines.append("## Failures")
        for failure in result.failures:
            lines.append(f"- Request {failure.index}: {failure.error}")
        lines.append("")

    if result.usage:
        lines.append("## Usage")
        lines.append(f"- Generated images: {result.usage.generated_images}")
        lines.append(f"- Tokens used: {result.usage.total_tokens}")
        lines.append("")

    if result.timing:
        lines.append("## Performance")
        lines.append(f"- Generation: {format_duration_ms(result.timing.generation_ms)}")
        lines.append(f"- Download: {format_duration_ms(result.timing.download_ms)}")
        lines.append(f"- **Total: {format_duration_ms(result.timing.total_ms)}**")

    return "\n".join(lines).rstrip() + "\n"


def submitted_markdown(task_id: str, prompt: str, expected_count: int) -> str:
    return "\n".join(
        [
            "# Task Submitted Successfully",
            "",
            f"**Task ID:** `{task_id}`",
            "**Status:** pending",
            f"**Prompt:** {prompt}",
            f"**Images:** {expected_count}",
            "",
            "## Next Steps",
            "",
            f"Run `seedream result {task_id}` to check progress.",
        ]
    ) + "\n"


def task_payload(snapshot: Any) -> dict[str, Any]:
    payload = serialize(snapshot)
    payload["progress"] = snapshot.progress
    return {key: value for key, value in payload.items() if value is not None}


def task_markdown(snapshot: Any) -> str:
    header = [f"**Task ID:** `{snapshot.task_id}`"]
    if snapshot.status == "pending":
        lines = [
            "# Task Status: Pending",
            "",
            *header,
            f"**Prompt:** {snapshot.prompt}",
            "",
            "Task is queued and will start shortly.",
        ]
    elif snapshot.status in {"generating", "processing"}:
        lines = [
            f"# Task Status: {snapshot.status.capitalize()}",
            "",
            *header,
            f"**Progress:** {snapshot.progress} images",
            f"**Prompt:** {snapshot.prompt}",
        ]
    elif snapshot.status == "completed":
        lines = [
            "# Task Completed",
            "",
            *header,
            f"**Prompt:** {snapshot.prompt}",
            f"**Images:** {len(snapshot.images)}",
            "",
            "## Generated Images",
            "",
        ]
        for position, image in enumerate(snapshot.images, start=1):
            lines.append(f"### Image {position}")
            lines.append(f"- **URL:** {image.get('url')}")
            if image.get("storage_url"):
                lines.append(f"- **Storage URL:** {image['storage_url']}")
            lines.append("")
        if snapshot.usage:
            lines.append("## Usage")
            lines.append(f"- Generated: {snapshot.usage.get('generated_images')} images")
            lines.append(f"- Tokens: {snapshot.usage.get('total_tokens')}")
    elif snapshot.status == "failed":
        lines = [
            "# Task Failed",
            "",
            *header,
            f"**Error:** {snapshot.error or 'Unknown error'}",
            f"**Prompt:** {snapshot.prompt}",
        ]
    else:
        lines = [f"Task status: {snapshot.status}"]
    return "\n".join(lines).rstrip() + "\n"


def _format_uptime(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def status_markdown(report: dict[str, Any]) -> str:
    store_line = "Not configured"
    if report.get("store_configured"):
        store_line = f"Configured (User: {report.get('gallery_user_id', 'engine-public')})"
    lines = [
        "# Seedream Engine Status",
        "",
        f"**Status:** {'Healthy' if report.get('status') == 'healthy' else 'Degraded'}",
        f"**API Key:** {'Configured' if report.get('api_key_configured') else 'Not set (ARK_API_KEY required)'}",
        f"**Gallery:** {store_line}",
        "",
        "## Engine Info",
        f"- Version: {report.get('version')}",
        f"- Python: {report.get('python_version')}",
        f"- Uptime: {_format_uptime(int(report.get('uptime_seconds', 0)))}",
    ]
    if report.get("platform"):
        lines.append(f"- Platform: {report['platform']}")
    lines.append("")
    lines.append("## Available Commands")
    for command in report.get("commands", []):
        lines.append(f"- `{command}`")
    if not report.get("api_key_configured"):
        lines.append("")
        lines.append("## Action Required")
        lines.append("Set your API key to enable image generation:")
        lines.append("```bash")
        lines.append('export ARK_API_KEY="your-api-key"')
        lines.append("```")
    return "\n".join(lines) + "\n"
