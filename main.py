#!/usr/bin/env python3
"""
Async Job Client - Main Entry Point

Runs remote video generation jobs from the command line.

Usage:
    # Generate a single clip
    python main.py generate --prompt "A paper boat drifting down a rainy street"

    # Generate one clip per line of a prompts file, one at a time
    python main.py batch --prompts-file scenes.txt --output-dir ./output

    # Check configuration
    python main.py check-config
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional


def configure_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request URL at INFO; download URLs carry the API key
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


# Configure logging
configure_logging()
logger = logging.getLogger("asyncjobs")

EXIT_FAILED = 1
EXIT_PERMISSION = 2

PERMISSION_HINT = (
    "The API key has no access to the video model (or is a free-tier key). "
    "Select a key from a paid project and try again."
)


def build_poll_config(poll_interval: Optional[float], max_attempts: Optional[int]):
    from services.async_jobs import PollConfig
    from core.config import get_config

    config = get_config()
    attempts = max_attempts if max_attempts is not None else config.polling.max_attempts

    def on_progress(attempt: int):
        print(f"Poll {attempt}/{attempts}...", flush=True)

    return PollConfig(
        poll_interval_seconds=(
            poll_interval if poll_interval is not None else config.polling.poll_interval_seconds
        ),
        max_attempts=attempts,
        on_progress=on_progress,
    )


def load_prompt(prompt: str, image_path: Optional[str] = None):
    from services.async_jobs import VideoPrompt

    if not image_path:
        return VideoPrompt(prompt=prompt)

    mime_type = mimetypes.guess_type(image_path)[0] or "image/png"
    return VideoPrompt(
        prompt=prompt,
        image=Path(image_path).read_bytes(),
        image_mime_type=mime_type,
    )


def write_artifact(data: bytes, output_path: Path) -> str:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "wb") as f:
        f.write(data)
    logger.info(f"Artifact written: {output_path} ({len(data) / 1024 / 1024:.1f} MB)")
    return str(output_path)


async def generate_video(
    prompt: str,
    image_path: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    resolution: Optional[str] = None,
    model: Optional[str] = None,
    output: str = "./output/video.mp4",
    poll_interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
) -> int:
    """
    Generate one video and write it to disk.

    Returns:
        Process exit code
    """
    from services.async_jobs import AsyncJobClient, AsyncJobError, SubmitOptions

    options = SubmitOptions(model=model, aspect_ratio=aspect_ratio, resolution=resolution)
    poll_config = build_poll_config(poll_interval, max_attempts)

    async with AsyncJobClient.from_config() as client:
        try:
            data = await client.run(load_prompt(prompt, image_path), options, poll_config)
        except AsyncJobError as e:
            logger.error(f"Video generation failed: {e}")
            if e.is_permission_issue:
                print(PERMISSION_HINT, file=sys.stderr)
                return EXIT_PERMISSION
            return EXIT_FAILED

    write_artifact(data, Path(output))
    return 0


async def generate_batch(
    prompts_file: str,
    output_dir: str = "./output",
    aspect_ratio: Optional[str] = None,
    resolution: Optional[str] = None,
    model: Optional[str] = None,
    poll_interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
    force: bool = False,
) -> int:
    """
    Generate one video per non-empty line of `prompts_file`, sequentially.

    Each clip is written as scene_<n>.mp4 as soon as its job finishes, so an
    interrupted batch keeps the clips it finished. Scenes whose file
    already exists are skipped unless `force` is set.
    """
    from services.async_jobs import AsyncJobClient, SubmitOptions, VideoPrompt, run_batch

    lines = Path(prompts_file).read_text(encoding="utf-8").splitlines()
    prompts = {
        index: VideoPrompt(prompt=line.strip())
        for index, line in enumerate((l for l in lines if l.strip()), start=1)
    }
    if not prompts:
        print(f"No prompts found in {prompts_file}", file=sys.stderr)
        return EXIT_FAILED

    output_root = Path(output_dir)

    def scene_path(key) -> Path:
        return output_root / f"scene_{key}.mp4"

    items = prompts
    if not force:
        existing = [key for key in prompts if scene_path(key).exists()]
        if existing:
            print(f"Skipping {len(existing)} scene(s) already on disk, use --force to redo", flush=True)
        items = {key: prompt for key, prompt in prompts.items() if key not in existing}
        if not items:
            return 0

    options = SubmitOptions(model=model, aspect_ratio=aspect_ratio, resolution=resolution)
    poll_config = build_poll_config(poll_interval, max_attempts)
    write_failures = []

    def on_item(index: int, total: int, key):
        print(f"Generating scene {key} ({index}/{total}), about 1-3 minutes per clip", flush=True)

    def on_result(result):
        if not result.ok:
            print(f"Scene {result.key} failed: {result.error}", file=sys.stderr)
            return
        try:
            write_artifact(result.artifact, scene_path(result.key))
        except OSError as e:
            logger.error(f"Could not write scene {result.key}: {e}")
            write_failures.append(result.key)

    async with AsyncJobClient.from_config() as client:
        report = await run_batch(
            client, items, options, poll_config, on_item=on_item, on_result=on_result
        )

    if report.stopped_on_permission_issue:
        print(PERMISSION_HINT, file=sys.stderr)
        return EXIT_PERMISSION
    return 0 if not report.failed and not write_failures else EXIT_FAILED


def check_config() -> int:
    from core.config import get_config

    config = get_config()
    issues = config.validate()

    print(f"API base: {config.api.api_base}")
    print(f"Model: {config.api.model}")
    print(
        f"Polling: every {config.polling.poll_interval_seconds:g}s, "
        f"up to {config.polling.max_attempts} attempts"
    )

    if issues:
        for issue in issues:
            print(f"  - {issue}")
        return EXIT_FAILED

    print("Configuration OK")
    return 0


def _add_job_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--aspect-ratio", "-a", choices=["16:9", "9:16"], help="Output aspect ratio")
    parser.add_argument("--resolution", help="Output resolution (default 720p)")
    parser.add_argument("--model", "-m", help="Model override")
    parser.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    parser.add_argument("--max-attempts", type=int, help="Status checks before giving up")


def main():
    parser = argparse.ArgumentParser(
        description="Async Job Client - remote video generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Generate a vertical clip
    python main.py generate --prompt "Neon city at night" --aspect-ratio 9:16

    # Animate a still image
    python main.py generate --prompt "Slow push in" --image scene1.png -o scene1.mp4

    # Generate every scene in a file
    python main.py batch --prompts-file scenes.txt --output-dir ./output
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Generate a video")
    gen_parser.add_argument("--prompt", "-p", required=True, help="Visual prompt")
    gen_parser.add_argument("--image", "-i", help="Seed image path (image-to-video)")
    gen_parser.add_argument("--output", "-o", default="./output/video.mp4", help="Output file")
    _add_job_arguments(gen_parser)

    # Batch command
    batch_parser = subparsers.add_parser("batch", help="Generate one video per prompt line")
    batch_parser.add_argument("--prompts-file", "-f", required=True, help="File with one prompt per line")
    batch_parser.add_argument("--output-dir", "-o", default="./output", help="Output directory")
    batch_parser.add_argument(
        "--force", action="store_true", help="Regenerate scenes whose output file already exists"
    )
    _add_job_arguments(batch_parser)

    # Config command
    subparsers.add_parser("check-config", help="Validate configuration")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "generate":
        sys.exit(
            asyncio.run(
                generate_video(
                    prompt=args.prompt,
                    image_path=args.image,
                    aspect_ratio=args.aspect_ratio,
                    resolution=args.resolution,
                    model=args.model,
                    output=args.output,
                    poll_interval=args.poll_interval,
                    max_attempts=args.max_attempts,
                )
            )
        )

    elif args.command == "batch":
        sys.exit(
            asyncio.run(
                generate_batch(
                    prompts_file=args.prompts_file,
                    output_dir=args.output_dir,
                    aspect_ratio=args.aspect_ratio,
                    resolution=args.resolution,
                    model=args.model,
                    poll_interval=args.poll_interval,
                    max_attempts=args.max_attempts,
                    force=args.force,
                )
            )
        )

    elif args.command == "check-config":
        sys.exit(check_config())


if __name__ == "__main__":
    main()
