"""
Command-line entry point.

    livescraper scrape RA_H2019 --output ranking.json
    livescraper post "Hello from livescraper" --media --test-mode
    livescraper dump --output view.txt
    livescraper status

Ctrl+C during a workflow requests a stop; the workflow finishes its
cleanup (walking back out of the target app) before the command exits.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .config import DEFAULT_NODE_NAME, DEFAULT_NODE_URL, LOG_DIR, AutomationConfig
from .device_client import DeviceNodeClient
from .enrichment import AvatarEnricher
from .models import document_to_json, save_document
from .posting import PostRequest
from .selectors import SelectorRegistry
from .service import AutomationService
from .session import SessionManager
from .tree import format_tree
from .utils import _timestamp, setup_logger
from .workflow import WorkflowOutcome, WorkflowState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _exit_code(outcome: WorkflowOutcome) -> int:
    if outcome.state == WorkflowState.SUCCEEDED:
        return EXIT_OK
    if outcome.state == WorkflowState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED


def _install_stop_handler(service: AutomationService) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, service.stop)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will abort without cleanup")


def _build_config(args: argparse.Namespace) -> AutomationConfig:
    config = AutomationConfig.from_env()
    if getattr(args, "test_mode", False):
        config.test_mode = True
    if getattr(args, "no_avatars", False):
        config.enrich_avatars = False
    if getattr(args, "overall_max", None) is not None:
        config.overall_max_items = args.overall_max
    if args.selectors:
        config.selectors_file = args.selectors
    return config


async def _connect(args: argparse.Namespace) -> Optional[DeviceNodeClient]:
    client = DeviceNodeClient(node_url=args.node_url, node_name=args.node_name)
    if not await client.connect():
        print(f"ERROR: Could not connect to device node at {args.node_url}")
        await client.close()
        return None
    return client


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _run_workflow(args: argparse.Namespace) -> int:
    config = _build_config(args)
    registry = SelectorRegistry.load(config.selectors_file, config.locales)
    client = await _connect(args)
    if client is None:
        return EXIT_FAILED

    enricher = AvatarEnricher(
        base_url=config.profile_base_url,
        enabled=config.enrich_avatars,
        min_interval=config.enrich_interval,
    )
    sessions = SessionManager(config, registry)
    sessions.on_connect(client)
    service = AutomationService(sessions, config, enricher)
    _install_stop_handler(service)

    try:
        if args.command == "scrape":
            outcome = await service.run_scraping(args.query)
        else:
            request = PostRequest(caption=args.caption, with_media=args.media, is_video=args.video)
            outcome = await service.run_posting(request)
    finally:
        await enricher.close()
        await client.close()

    print(f"{outcome.workflow}: {outcome.state.value} {outcome.message}".rstrip())
    if outcome.document is not None and args.output == "-":
        print(document_to_json(outcome.document))
    elif outcome.document is not None:
        output = Path(args.output or f"scrape_{args.query}_{_timestamp()}.json")
        save_document(output, outcome.document)
        summary = outcome.document["summary"]
        print(f"Saved {summary['total_users_scraped']} users to {output}")
    return _exit_code(outcome)


async def _cmd_dump(args: argparse.Namespace) -> int:
    client = await _connect(args)
    if client is None:
        return EXIT_FAILED
    try:
        root = await client.get_root()
    finally:
        await client.close()
    if root is None:
        print("ERROR: No active window")
        return EXIT_FAILED
    view_source = format_tree(root)
    if args.output:
        Path(args.output).write_text(view_source, encoding="utf-8")
        print(f"View source saved to {args.output}")
    else:
        print(view_source)
    return EXIT_OK


async def _cmd_status(args: argparse.Namespace) -> int:
    client = await _connect(args)
    if client is None:
        return EXIT_FAILED
    try:
        root = await client.get_root()
        width, height = await client.display_size()
    finally:
        await client.close()
    status = {
        "node_url": client.node_url,
        "foreground_package": root.package if root is not None else None,
        "sdk_level": client.sdk_level,
        "resolution": f"{width}x{height}",
    }
    if args.json:
        print(json.dumps(status, indent=2))
    else:
        for key, value in status.items():
            print(f"  {key:<20} {value}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livescraper",
        description="Accessibility-tree automation for posting and ranking scrapes",
    )
    parser.add_argument("--node-url", default=DEFAULT_NODE_URL, help="Device node URL")
    parser.add_argument("--node-name", default=DEFAULT_NODE_NAME, help="Device node name")
    parser.add_argument("--selectors", default=None, help="Selector override JSON file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # -- scrape ---------------------------------------------------------------
    sub_scrape = subparsers.add_parser("scrape", help="Scrape a host's contribution ranking")
    sub_scrape.add_argument("query", type=str, help="Host id to search for")
    sub_scrape.add_argument("--output", "-o", type=str, default=None, help="Output JSON path (- for stdout)")
    sub_scrape.add_argument("--no-avatars", action="store_true", help="Skip profile-page avatar lookups")
    sub_scrape.add_argument("--overall-max", type=int, default=None, help="Record cap for the Overall tab")
    sub_scrape.add_argument("--test-mode", action="store_true", help="Reduced record caps")

    # -- post -----------------------------------------------------------------
    sub_post = subparsers.add_parser("post", help="Publish a Facebook post")
    sub_post.add_argument("caption", type=str, help="Post text")
    sub_post.add_argument("--media", action="store_true", help="Attach the newest gallery item")
    sub_post.add_argument("--video", action="store_true", help="Attach a video instead of a photo")
    sub_post.add_argument("--test-mode", action="store_true", help="Stop before the final post click")

    # -- dump -----------------------------------------------------------------
    sub_dump = subparsers.add_parser("dump", help="Save the current view source")
    sub_dump.add_argument("--output", "-o", type=str, default=None, help="Output text file")

    # -- status ---------------------------------------------------------------
    sub_status = subparsers.add_parser("status", help="Show device status")
    sub_status.add_argument("--json", action="store_true", help="Output raw JSON")

    return parser


def main(argv: Optional[list] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logger(
        "livescraper",
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_dir=LOG_DIR,
    )

    if args.command in ("scrape", "post"):
        code = asyncio.run(_run_workflow(args))
    elif args.command == "dump":
        code = asyncio.run(_cmd_dump(args))
    else:
        code = asyncio.run(_cmd_status(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
