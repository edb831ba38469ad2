"""Seedream CLI entrypoints."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Callable

from .cli_progress import ProgressTicker
from .config import DEFAULT_DOWNLOAD_DIR
from .engine import GenerationEngine
from .runs.events import EventWriter, ProgressCallback, fan_out
from .runs.export import (
    FORMAT_JSON,
    FORMAT_MARKDOWN,
    OUTPUT_FORMATS,
    result_markdown,
    result_payload,
    status_markdown,
    submitted_markdown,
    task_markdown,
    task_payload,
    to_json,
)
from .runs.receipts import (
    DEFAULT_STRENGTH,
    SIZE_PRESETS,
    GenerationRequest,
    blend_request,
    edit_request,
    generation_mode,
    text_request,
    validate_request,
    variations_request,
)
from .status import status_report
from .sync.s3 import S3GalleryStore
from .sync.tasks import StoreNotConfiguredError, TaskManager
from .utils import load_dotenv

SIZE_HELP = f"Size preset ({', '.join(SIZE_PRESETS)}) or WIDTHxHEIGHT"


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format", choices=OUTPUT_FORMATS, default=FORMAT_MARKDOWN, help="Output format")
    parser.add_argument("--debug", action="store_true", help="Log pipeline details to stderr")


def _add_generation_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("prompt", help="Text description of the image")
    parser.add_argument("--size", default="2K", help=SIZE_HELP)
    parser.add_argument("--watermark", action="store_true")
    parser.add_argument("--no-download", dest="download", action="store_false", help="Only return URLs")
    parser.add_argument("--download-dir", dest="download_dir", default=DEFAULT_DOWNLOAD_DIR)
    parser.add_argument("--events", help="Append progress events to this JSONL file")
    _add_output_args(parser)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seedream", description="Seedream image generation")
    sub = parser.add_subparsers(dest="command")

    generate = sub.add_parser("generate", help="Generate images from text")
    _add_generation_args(generate)
    generate.add_argument("--count", type=int, default=4, help="Number of images (1-15)")

    edit = sub.add_parser("edit", help="Edit one reference image")
    _add_generation_args(edit)
    edit.add_argument("--image", required=True, help="URL or local path of the image to edit")
    edit.add_argument("--strength", type=float, default=DEFAULT_STRENGTH)

    blend = sub.add_parser("blend", help="Blend 2-14 reference images into one")
    _add_generation_args(blend)
    blend.add_argument("--image", dest="images", action="append", required=True, help="Repeat for each image")
    blend.add_argument("--strength", type=float, default=DEFAULT_STRENGTH)

    variations = sub.add_parser("variations", help="Generate variations of a prompt")
    _add_generation_args(variations)
    variations.add_argument("--count", type=int, default=4, help="Number of variations (2-15)")
    variations.add_argument("--base-image", dest="base_image", help="Optional reference image")

    submit = sub.add_parser("submit", help="Create a tracked task and generate in the background")
    submit.add_argument("prompt")
    submit.add_argument("--size", default="2K", help=SIZE_HELP)
    submit.add_argument("--count", type=int, default=4)
    submit.add_argument("--image", dest="images", action="append", default=[], help="Reference image (repeatable)")
    submit.add_argument("--strength", type=float)
    submit.add_argument("--download-dir", dest="download_dir", default=DEFAULT_DOWNLOAD_DIR)
    _add_output_args(submit)

    result = sub.add_parser("result", help="Show the state of a submitted task")
    result.add_argument("task_id")
    _add_output_args(result)

    status = sub.add_parser("status", help="Report configuration and health")
    status.add_argument("--verbose", action="store_true", help="Include platform details")
    _add_output_args(status)

    return parser


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _request_from_args(args: argparse.Namespace) -> GenerationRequest:
    if args.command == "generate":
        return text_request(args.prompt, size=args.size, count=args.count, watermark=args.watermark)
    if args.command == "edit":
        return edit_request(args.prompt, args.image, size=args.size, strength=args.strength, watermark=args.watermark)
    if args.command == "blend":
        return blend_request(args.prompt, args.images, size=args.size, strength=args.strength, watermark=args.watermark)
    if args.command == "variations":
        return variations_request(
            args.prompt,
            count=args.count,
            base_image=args.base_image,
            size=args.size,
            watermark=args.watermark,
        )
    raise ValueError(f"Unknown generation command: {args.command}")


def _titles(command: str) -> tuple[str, str]:
    if command == "variations":
        return "Variations Generated Successfully", "Variation"
    if command == "blend":
        return "Images Blended Successfully", "Image"
    if command == "edit":
        return "Image Edited Successfully", "Image"
    return "Image Generated Successfully", "Image"


def _event_sink(path: str | None) -> ProgressCallback | None:
    if not path:
        return None
    return EventWriter(Path(path), f"run_{uuid.uuid4().hex[:12]}")


def _handle_generate(args: argparse.Namespace, engine_factory: Callable[[], GenerationEngine]) -> int:
    try:
        request = validate_request(_request_from_args(args))
    except ValueError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2

    engine = engine_factory()
    ticker = ProgressTicker("Generating images")
    ticker.start_ticking()
    try:
        result = asyncio.run(
            engine.generate(
                request,
                download=args.download,
                download_dir=args.download_dir,
                on_progress=fan_out(ticker, _event_sink(args.events)),
            )
        )
    finally:
        ticker.stop(done=True)

    if args.format == FORMAT_JSON:
        print(to_json(result_payload(result, prompt=request.prompt)))
    else:
        title, label = _titles(args.command)
        print(result_markdown(result, prompt=request.prompt, size=request.size, title=title, item_label=label))
    if not result.success:
        return 1
    return 0 if result.images else 1


def _handle_submit(args: argparse.Namespace, engine_factory: Callable[[], GenerationEngine]) -> int:
    request = GenerationRequest(
        prompt=args.prompt,
        size=args.size,
        reference_images=tuple(args.images),
        strength=args.strength,
        batch_count=args.count,
    )
    try:
        validate_request(request)
    except ValueError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2

    engine = engine_factory()
    if engine.store is None or not engine.store.is_configured():
        print("Gallery store not configured: set SEEDREAM_SYNC_BUCKET to use tasks.", file=sys.stderr)
        return 1
    manager = TaskManager(engine, engine.store, args.download_dir)

    async def _run() -> str:
        task_id = await manager.submit(request, generation_mode(request))
        expected = 1 if request.reference_images else request.batch_count
        if args.format == FORMAT_JSON:
            print(to_json({"success": True, "task_id": task_id, "status": "pending"}), flush=True)
        else:
            print(submitted_markdown(task_id, request.prompt, expected), flush=True)
        await manager.wait()
        return task_id

    try:
        asyncio.run(_run())
    except StoreNotConfiguredError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0


def _handle_result(args: argparse.Namespace, engine_factory: Callable[[], GenerationEngine]) -> int:
    engine = engine_factory()
    if engine.store is None:
        print("Gallery store not configured: set SEEDREAM_SYNC_BUCKET to use tasks.", file=sys.stderr)
        return 1
    manager = TaskManager(engine, engine.store)
    try:
        snapshot = asyncio.run(manager.result(args.task_id))
    except StoreNotConfiguredError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    if snapshot is None:
        print(f"No task found with ID: {args.task_id}", file=sys.stderr)
        return 1
    if args.format == FORMAT_JSON:
        print(to_json(task_payload(snapshot)))
    else:
        print(task_markdown(snapshot))
    return 0


def _handle_status(args: argparse.Namespace) -> int:
    report = status_report(S3GalleryStore(), verbose=args.verbose)
    if args.format == FORMAT_JSON:
        print(to_json(report))
    else:
        print(status_markdown(report))
    return 0


def main(argv: list[str] | None = None, engine_factory: Callable[[], GenerationEngine] | None = None) -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        raise SystemExit(1)
    _configure_logging(args.debug)
    factory = engine_factory or GenerationEngine.from_env
    if args.command in {"generate", "edit", "blend", "variations"}:
        raise SystemExit(_handle_generate(args, factory))
    if args.command == "submit":
        raise SystemExit(_handle_submit(args, factory))
    if args.command == "result":
        raise SystemExit(_handle_result(args, factory))
    if args.command == "status":
        raise SystemExit(_handle_status(args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
