"""Command line entry point for the Ollo generation core.

Commands
--------
``ollo generate PROMPT --model MODEL [--image PATH ...]``
    Upload reference images, queue one or more generations, show live
    progress and report failures.
``ollo models``
    List known models with their estimated durations.
``ollo prepare PATH ... --out DIR``
    Run the image preprocessing pipeline locally (HEIC conversion and
    resize) without uploading anything.

This module is registered as the ``ollo`` console script in
``pyproject.toml``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from ollo.api.client import OlloClient
from ollo.api.models import ASPECT_RATIOS, OUTPUT_FORMATS, RESOLUTIONS, CreationOptions
from ollo.api.request_builder import build_generate_request, display_prompt
from ollo.core.config import config
from ollo.core.errors import NetworkError, OlloError
from ollo.core.media import MediaFile, MediaPreprocessor
from ollo.core.model_registry import model_registry
from ollo.core.progress import ProgressSample, ProgressTicker
from ollo.core.queue import GenerationQueueManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ollo", description="Ollo generation client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Queue generations and wait for them")
    generate.add_argument("prompt", help="Text prompt")
    generate.add_argument("--model", required=True, help="Model identifier")
    generate.add_argument(
        "--image",
        dest="images",
        action="append",
        type=Path,
        default=[],
        help="Reference image (repeatable)",
    )
    generate.add_argument("--aspect-ratio", choices=ASPECT_RATIOS, default="match_input_image")
    generate.add_argument("--resolution", choices=RESOLUTIONS, default="2K")
    generate.add_argument("--output-format", choices=OUTPUT_FORMATS, default="png")
    generate.add_argument(
        "--count", type=int, default=1, help="Number of independent jobs to queue"
    )
    generate.add_argument(
        "--policy",
        choices=["linear", "asymptotic"],
        default=None,
        help="Progress curve (defaults to OLLO_PROGRESS_POLICY)",
    )

    subparsers.add_parser("models", help="List models and estimated durations")

    prepare = subparsers.add_parser("prepare", help="Convert and resize images locally")
    prepare.add_argument("paths", nargs="+", type=Path, help="Images to prepare")
    prepare.add_argument("--out", type=Path, required=True, help="Output directory")

    return parser


async def _refresh_models(client: OlloClient) -> None:
    try:
        model_registry.update(await client.fetch_models())
    except NetworkError as e:
        logger.warning(f"Could not fetch model statistics, using built-in catalogue: {e}")


def _print_sample(sample: ProgressSample) -> None:
    print(f"\r[{sample.job_id[:8]}] {sample.progress:5.1f}% {sample.label:<16}", end="", flush=True)


async def _run_generate(args: argparse.Namespace) -> int:
    images = [MediaFile.from_path(path) for path in args.images]
    options = CreationOptions(
        aspect_ratio=args.aspect_ratio,
        resolution=args.resolution,
        output_format=args.output_format,
    )

    async with OlloClient() as client:
        await _refresh_models(client)

        succeeded: list[str] = []
        manager = GenerationQueueManager(
            client.generate,
            upload=client.upload,
            on_success=[lambda job, response: succeeded.append(job.id)],
        )

        tickers: list[ProgressTicker] = []
        for _ in range(max(1, args.count)):
            request = build_generate_request(args.prompt, args.model, options=options)
            job_id = str(uuid.uuid4())
            await manager.submit(
                request,
                job_id,
                images=images,
                prompt=display_prompt(request),
            )
            ticker = ProgressTicker(manager, job_id, _print_sample, policy=args.policy)
            ticker.start()
            tickers.append(ticker)

        await manager.wait_idle()
        for ticker in tickers:
            ticker.stop()
        print()

    failed = [job for job in manager.snapshot() if job.status == "failed"]
    for job in failed:
        print(f"✗ {job.id}: {job.error}", file=sys.stderr)
    print(f"{len(succeeded)} succeeded, {len(failed)} failed")
    return 1 if failed else 0


def _run_models() -> int:
    async def fetch() -> None:
        async with OlloClient() as client:
            await _refresh_models(client)

    asyncio.run(fetch())
    for model_id in model_registry.list_available():
        model = model_registry.lookup(model_id)
        estimate = model_registry.estimated_duration(model_id)
        images = f"up to {model.max_images} images" if model.supports_image_input else "text only"
        print(f"{model_id:<40} ~{estimate:5.1f}s  {images}")
    return 0


async def _run_prepare(args: argparse.Namespace) -> int:
    preprocessor = MediaPreprocessor()
    args.out.mkdir(parents=True, exist_ok=True)
    status = 0
    for path in args.paths:
        try:
            ready = await preprocessor.prepare(MediaFile.from_path(path))
        except OlloError as e:
            print(f"✗ {path.name}: {e}", file=sys.stderr)
            status = 1
            continue
        target = args.out / ready.name
        target.write_bytes(ready.content)
        print(f"✓ {path.name} → {target} ({ready.size} bytes)")
    return status


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the selected command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "generate":
        return asyncio.run(_run_generate(args))
    if args.command == "models":
        return _run_models()
    return asyncio.run(_run_prepare(args))


if __name__ == "__main__":
    sys.exit(main())
