"""CLI entrypoint for adminsync."""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from adminsync.cache.keys import FilterTuple
from adminsync.cache.query_cache import QueryCache
from adminsync.config.loader import DEFAULT_CONFIG_PATH, Settings, get_settings, load_config
from adminsync.controller.list_controller import ListController
from adminsync.controller.pagination import page_tokens
from adminsync.moderation.board import ModerationBoard
from adminsync.mutations import actions
from adminsync.mutations.dispatcher import MutationDispatcher
from adminsync.resources.catalog import get_resource, list_resources
from adminsync.transport.adapter import TransportAdapter
from adminsync.transport.credentials import CredentialStore, FileCredentialStore, MemoryCredentialStore
from adminsync.transport.errors import ApiError, is_cancelled
from adminsync.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _settings(args: argparse.Namespace) -> Settings:
    config = load_config(Path(args.config) if args.config else DEFAULT_CONFIG_PATH)
    return get_settings(config)


def _credentials(args: argparse.Namespace, settings: Settings) -> Optional[CredentialStore]:
    if args.token:
        return MemoryCredentialStore(args.token)
    if settings.auth.store_path:
        return FileCredentialStore(Path(settings.auth.store_path), settings.auth.store_key)
    return None


def build_client(args: argparse.Namespace) -> Tuple[Settings, TransportAdapter, QueryCache]:
    """Create transport and cache from config and command-line overrides."""
    settings = _settings(args)
    transport = TransportAdapter(
        settings.api.base_url,
        credentials=_credentials(args, settings),
        timeout_seconds=settings.api.timeout_seconds,
        user_agent=settings.api.user_agent,
    )
    cache = QueryCache(
        stale_time=settings.cache.stale_time_seconds,
        retry=settings.cache.retry,
        max_entries=settings.cache.max_entries,
    )
    return settings, transport, cache


def _filters_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "status": args.status,
        "type": args.type,
        "tab": args.tab,
        "search": args.search,
        "start_date": args.start_date,
        "end_date": args.end_date,
    }


def _item_label(item: Any) -> str:
    if not isinstance(item, dict):
        return str(item)
    for field in ("title", "name", "email", "reason", "status"):
        if item.get(field):
            return str(item[field])
    return ""


def cmd_resources(args: argparse.Namespace) -> None:
    """List the built-in resources."""
    print(f"{'NAME':<22} {'PATH':<42} {'FILTERS':<40}")
    print("-" * 104)
    for spec in list_resources():
        print(f"{spec.name:<22} {spec.path:<42} {', '.join(spec.filters):<40}")


async def _list(args: argparse.Namespace) -> None:
    settings, transport, cache = build_client(args)
    spec = get_resource(args.resource, settings)
    requested = {k: v for k, v in _filters_from_args(args).items() if v is not None}
    unsupported = set(requested) - set(spec.filters)
    if unsupported:
        raise ValueError(f"Resource '{spec.name}' does not filter on {sorted(unsupported)}")

    controller = ListController(
        spec,
        cache,
        transport,
        page_size=args.page_size or spec.page_size or settings.lists.page_size,
        filters=FilterTuple(**requested),
    )
    try:
        state = await controller.load()
        if args.page > 1:
            controller.set_page(args.page)
            state = await controller.load()
        if state.error is not None:
            raise state.error
        if args.format == "json":
            result = controller.result
            print(json.dumps(result.model_dump() if result else {}, indent=2, default=str))
            return
        for item in controller.items:
            item_id = item.get("_id", "") if isinstance(item, dict) else ""
            print(f"{item_id:<26} {_item_label(item)}")
        print()
        print(controller.summary.describe())
        tokens = page_tokens(controller.total_pages, controller.page)
        print("Pages: " + " ".join(f"[{t}]" if t == controller.page else str(t) for t in tokens))
    finally:
        controller.close()


def cmd_list(args: argparse.Namespace) -> None:
    """Show one page of a list resource."""
    asyncio.run(_list(args))


async def _reports(args: argparse.Namespace) -> None:
    _, transport, cache = build_client(args)
    board = ModerationBoard(cache, transport)
    try:
        state = await board.load()
        if state.error is not None:
            raise state.error
        groups = board.groups
        print(f"Pending reports: {board.pending_count} ({len(groups)} messages)")
        print("-" * 80)
        for group in groups:
            print(f"[{group.key}] {group.content}")
            print(f"    posted {group.display_date}, {group.report_count} report(s)")
            for report in group.reports:
                print(f"    - {report.id}: {report.reason or 'no reason'} (by {report.reporter_label})")
    finally:
        board.close()


def cmd_reports(args: argparse.Namespace) -> None:
    """Show the moderation queue grouped by message."""
    asyncio.run(_reports(args))


async def _mutate(args: argparse.Namespace, action: actions.MutationAction) -> None:
    _, transport, cache = build_client(args)
    dispatcher = MutationDispatcher(transport, cache)
    result = await dispatcher.mutate(action)
    if is_cancelled(result):
        print("Cancelled.")
        return
    print(result.message)


def cmd_review_report(args: argparse.Namespace) -> None:
    """Mark a moderation report as reviewed."""
    asyncio.run(_mutate(args, actions.review_report(args.report_id)))


def cmd_delete_reported_message(args: argparse.Namespace) -> None:
    """Delete the message a report points at."""
    asyncio.run(_mutate(args, actions.delete_reported_message(args.report_id)))


def main() -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="adminsync",
        description="List sync and moderation tools for the therapy-booking admin API",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--token",
        type=str,
        help="Bearer token (default: read from auth.store_path)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # resources command
    resources_parser = subparsers.add_parser("resources", help="List built-in resources")
    resources_parser.set_defaults(func=cmd_resources)

    # list command
    list_parser = subparsers.add_parser("list", help="Show one page of a resource")
    list_parser.add_argument("resource", type=str, help="Resource name (see 'resources')")
    list_parser.add_argument("--status", type=str, help="Filter by status")
    list_parser.add_argument("--type", type=str, help="Filter by type / role / category")
    list_parser.add_argument("--tab", type=str, help="Filter by tab (bookings)")
    list_parser.add_argument("--search", type=str, help="Free-text search")
    list_parser.add_argument("--start-date", type=str, help="Range start (YYYY-MM-DD)")
    list_parser.add_argument("--end-date", type=str, help="Range end (YYYY-MM-DD)")
    list_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    list_parser.add_argument("--page-size", type=int, help="Page size (default: from config)")
    list_parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    list_parser.set_defaults(func=cmd_list)

    # reports command
    reports_parser = subparsers.add_parser("reports", help="Show pending moderation reports grouped by message")
    reports_parser.set_defaults(func=cmd_reports)

    # review-report command
    review_parser = subparsers.add_parser("review-report", help="Mark a report as reviewed")
    review_parser.add_argument("report_id", type=str, help="Report ID")
    review_parser.set_defaults(func=cmd_review_report)

    # delete-reported-message command
    delete_parser = subparsers.add_parser("delete-reported-message", help="Delete the message a report points at")
    delete_parser.add_argument("report_id", type=str, help="Report ID")
    delete_parser.set_defaults(func=cmd_delete_reported_message)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    configure_logging(args.log_level)

    try:
        args.func(args)
    except ApiError as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        raise SystemExit(f"Error: {e.message}")
    except Exception as e:
        logger.error(f"Error running command '{args.command}': {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
