"""Main entry point for the page acquisition pipeline."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from .agent.pipeline import AcquisitionPipeline
from .config.loader import Config, load_config
from .errors import PipelineError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Document discovery, embedding and decay monitoring pipeline"
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config/config.yaml",
        help="Path to config file (YAML or JSON)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("discover", help="Run one discovery cycle")
    sub.add_parser("process", help="Process one batch of pending items")
    sub.add_parser("decay-check", help="Probe stored pages and flag decayed ones")
    sub.add_parser("status", help="Show job state and pending counts")
    sub.add_parser("serve", help="Run discovery, batch and decay jobs on their intervals")

    enqueue = sub.add_parser("enqueue", help="Add a URL to the pending queue")
    enqueue.add_argument("url")
    enqueue.add_argument("--source", default="manual")
    enqueue.add_argument("--priority", type=float, default=0.0)

    reconstruct = sub.add_parser("reconstruct", help="Summarize a stored page from its embedding")
    reconstruct.add_argument("page_id")
    return parser


def resolve_config(config_arg: str) -> Config:
    """Load config; relative paths resolve against the project root."""
    project_root = Path(__file__).resolve().parent.parent.parent
    config_path = Path(config_arg)
    if not config_path.is_absolute():
        config_path = project_root / config_path

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    config = load_config(config_path)
    if not Path(config.storage_path).is_absolute():
        config.storage_path = str(project_root / config.storage_path)
    Path(config.storage_path).parent.mkdir(parents=True, exist_ok=True)
    return config


async def serve_forever(pipeline: AcquisitionPipeline) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    await pipeline.serve(stop)


async def run_command(args: argparse.Namespace, pipeline: AcquisitionPipeline) -> int:
    if args.command == "discover":
        report = await pipeline.trigger_discovery_cycle()
        if not report.success:
            print(f"Discovery failed: {report.error}")
            return 1
        errors = f", connector errors: {report.connector_errors}" if report.connector_errors else ""
        print(
            f"Discovery added {report.added}, skipped {report.skipped}, "
            f"filtered {report.filtered}{errors}"
        )
        return 0

    if args.command == "process":
        report = await pipeline.run_batch_processing()
        if report is None:
            print("Batch processing already running")
            return 1
        print(f"Processed {report.selected} items: {report.done} done, {report.failed} failed")
        return 0

    if args.command == "decay-check":
        report = await pipeline.run_decay_check()
        if report is None:
            print("Decay check already running")
            return 1
        print(
            f"Checked {report.checked} pages: {report.decayed} decayed, "
            f"{report.update_failures} update failures"
        )
        return 0

    if args.command == "enqueue":
        result = await pipeline.enqueue_manual_candidate(
            args.url, source=args.source, priority=args.priority
        )
        if result.added:
            print(f"Enqueued {result.url} (id={result.item.id})")
        else:
            print(f"Skipped {result.url}: {result.reason}")
        return 0

    if args.command == "reconstruct":
        reconstruction = await pipeline.reconstruct_page(args.page_id)
        print(reconstruction.text)
        return 0

    if args.command == "status":
        print(json.dumps(await pipeline.status(), indent=2, default=str))
        return 0

    if args.command == "serve":
        await serve_forever(pipeline)
        return 0

    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = resolve_config(args.config)
    except FileNotFoundError as e:
        print(e, file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Invalid config: {e}", file=sys.stderr)
        return 1

    pipeline = AcquisitionPipeline(config)
    try:
        return asyncio.run(run_command(args, pipeline))
    except PipelineError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
