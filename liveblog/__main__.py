"""CLI entry point for the live blog service."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

from .config import load_config
from .editorial import EditorialPoster
from .errors import ConfigError, SourceError, WriteError
from .sync import HttpEntrySource, SyncClient, SyncState


# Context passed through ``extra=`` that JSON log lines carry as top-level keys
LOG_CONTEXT_FIELDS = ("slug", "blog_id", "entry_id", "attempt")

# Loggers that log every request at INFO
QUIET_LOGGERS = ("httpx", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with live blog context when a record carries it."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        for key in LOG_CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging for the CLI.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level = logging.getLevelName(log_level.upper())
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)
    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _source(config) -> HttpEntrySource:
    return HttpEntrySource(
        config.sync.api_url,
        timeout=config.sync.request_timeout_seconds,
        max_retries=config.sync.retry_max_attempts,
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API."""
    config = load_config(args.config)

    import uvicorn

    from .server import create_app
    from .store import EntryStore

    store = EntryStore(config.store.db_path)
    store.connect()

    host = args.host or config.server.host
    port = args.port or config.server.port
    print(f"Serving live blogs from {config.store.db_path}")
    print(f"API: http://{host}:{port}/api/live-blogs")

    try:
        uvicorn.run(create_app(config, store), host=host, port=port, log_level="info")
    finally:
        store.close()
    return 0


async def cmd_create(args: argparse.Namespace) -> int:
    """Create a live blog."""
    config = load_config(args.config)
    try:
        blog = await _source(config).create_blog(
            args.title, slug=args.slug, excerpt=args.excerpt or ""
        )
    except SourceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Created {blog.slug} (id: {blog.id})")
    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    """List live blogs."""
    config = load_config(args.config)
    try:
        blogs = await _source(config).list_blogs(status=args.status, limit=args.limit)
    except SourceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([b.to_dict() for b in blogs], indent=2))
        return 0

    if not blogs:
        print("No live blogs")
        return 0

    for blog in blogs:
        badge = "LIVE " if blog.is_live else "ENDED"
        print(f"[{badge}] {blog.slug:40} {blog.id}  {blog.title}")
    return 0


async def cmd_post(args: argparse.Namespace) -> int:
    """Append an entry to a live blog."""
    config = load_config(args.config)
    poster = EditorialPoster(_source(config), author_name=config.editor.author_name)
    try:
        entry = await poster.post_entry(
            args.blog_id,
            args.content,
            image_url=args.image_url,
            image_alt=args.image_alt,
            author_name=args.author,
        )
    except WriteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Posted entry {entry.id} at {entry.created_at.isoformat()}")
    return 0


async def cmd_pin(args: argparse.Namespace) -> int:
    """Pin or unpin an entry."""
    config = load_config(args.config)
    poster = EditorialPoster(_source(config))
    try:
        if args.unpin:
            await poster.unpin_entry(args.blog_id, args.entry_id)
        else:
            await poster.pin_entry(args.blog_id, args.entry_id)
    except WriteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Entry {args.entry_id} {'unpinned' if args.unpin else 'pinned'}")
    return 0


async def cmd_delete_entry(args: argparse.Namespace) -> int:
    """Delete an entry."""
    config = load_config(args.config)
    poster = EditorialPoster(_source(config))
    try:
        await poster.delete_entry(args.blog_id, args.entry_id)
    except WriteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Entry {args.entry_id} deleted")
    return 0


async def cmd_end(args: argparse.Namespace) -> int:
    """End coverage of a live blog."""
    config = load_config(args.config)
    poster = EditorialPoster(_source(config))
    try:
        await poster.end_coverage(args.blog_id, summary=args.summary)
    except WriteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Coverage of {args.blog_id} ended")
    return 0


def _print_entry(entry) -> None:
    stamp = entry.created_at.astimezone().strftime("%H:%M:%S")
    pin = " [pinned]" if entry.is_pinned else ""
    byline = f" ({entry.author_name})" if entry.author_name else ""
    print(f"{stamp}{byline}{pin}: {entry.content}")


async def cmd_watch(args: argparse.Namespace) -> int:
    """Follow a live blog in the terminal until it ends."""
    config = load_config(args.config)
    done = asyncio.Event()
    printed: set[str] = set()

    def on_change(client: SyncClient) -> None:
        if client.state == SyncState.ERROR:
            done.set()
            return
        # Oldest first so the terminal reads top to bottom
        for entry in reversed(client.timeline.entries):
            if entry.id not in printed:
                printed.add(entry.id)
                _print_entry(entry)
        if client.state == SyncState.ENDED:
            done.set()

    client = SyncClient(
        _source(config),
        args.slug,
        poll_interval=args.interval or config.sync.poll_interval_seconds,
        new_entries_timeout=config.sync.new_entries_timeout_seconds,
        on_change=on_change,
    )

    await client.start()
    if client.state == SyncState.LIVE:
        print(f"--- following {client.blog.title} (Ctrl-C to stop) ---")
        try:
            await done.wait()
        finally:
            summary = client.summary
            client.stop()
    else:
        summary = client.summary

    if client.error:
        print(f"Error: {client.error}", file=sys.stderr)
        return 1

    if client.blog and not client.blog.is_live:
        print("--- coverage ended ---")
        if summary:
            print(summary)
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check API connectivity."""
    config = load_config(args.config)
    source = _source(config)
    source.max_retries = 1

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "api_url": config.sync.api_url,
        "reachable": await source.check_connection(),
        "poll_interval_seconds": config.sync.poll_interval_seconds,
    }

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        state = "reachable" if status_data["reachable"] else "unreachable"
        print(f"API {config.sync.api_url}: {state}")
        print(f"Poll interval: {config.sync.poll_interval_seconds}s")

    return 0 if status_data["reachable"] else 1


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="liveblog",
        description="Live blog publishing with incremental timeline sync",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("-p", "--port", type=int, default=None, help="Port to bind")
    serve_parser.add_argument("--host", type=str, default=None, help="Host to bind")
    serve_parser.set_defaults(func=cmd_serve)

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a live blog")
    create_parser.add_argument("title", help="Headline")
    create_parser.add_argument("--slug", default=None, help="URL slug (default: from title)")
    create_parser.add_argument("--excerpt", default=None, help="Short standfirst")
    create_parser.set_defaults(func=cmd_create)

    # List command
    list_parser = subparsers.add_parser("list", help="List live blogs")
    list_parser.add_argument("--status", choices=["live", "ended"], default=None)
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    # Post command
    post_parser = subparsers.add_parser("post", help="Post an entry")
    post_parser.add_argument("blog_id")
    post_parser.add_argument("content")
    post_parser.add_argument("--image-url", default=None)
    post_parser.add_argument("--image-alt", default=None)
    post_parser.add_argument("--author", default=None, help="Byline (default: from config)")
    post_parser.set_defaults(func=cmd_post)

    # Pin / unpin commands
    pin_parser = subparsers.add_parser("pin", help="Pin an entry")
    pin_parser.add_argument("blog_id")
    pin_parser.add_argument("entry_id")
    pin_parser.set_defaults(func=cmd_pin, unpin=False)

    unpin_parser = subparsers.add_parser("unpin", help="Unpin an entry")
    unpin_parser.add_argument("blog_id")
    unpin_parser.add_argument("entry_id")
    unpin_parser.set_defaults(func=cmd_pin, unpin=True)

    # Delete entry command
    delete_parser = subparsers.add_parser("delete-entry", help="Delete an entry")
    delete_parser.add_argument("blog_id")
    delete_parser.add_argument("entry_id")
    delete_parser.set_defaults(func=cmd_delete_entry)

    # End command
    end_parser = subparsers.add_parser("end", help="End coverage")
    end_parser.add_argument("blog_id")
    end_parser.add_argument("--summary", default=None, help="Recap shown to readers")
    end_parser.set_defaults(func=cmd_end)

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Follow a live blog")
    watch_parser.add_argument("slug")
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Poll interval in seconds (default: from config)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check API connectivity")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if asyncio.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
