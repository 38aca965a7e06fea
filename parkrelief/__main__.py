"""CLI entry point for ParkRelief."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime

from .config import load_config
from .runtime import build_runtime
from .share import generate_share_link


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data, ensure_ascii=False)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data, ensure_ascii=False)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


async def cmd_run(args: argparse.Namespace) -> int:
    """Connect to the store and serve the dashboard."""
    config = load_config(args.config)
    if args.host:
        config.dashboard.host = args.host
    if args.port:
        config.dashboard.port = args.port

    try:
        from .dashboard import create_app

        import uvicorn
    except ImportError as e:
        print(f"Dashboard dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install parkrelief[dashboard]", file=sys.stderr)
        return 1

    runtime = build_runtime(config)

    print(f"Starting ParkRelief node: {config.node.name}")
    print(f"Store: {config.store.backend} ({config.store.namespace})")
    print(f"URL: http://{config.dashboard.host}:{config.dashboard.port}")
    print(f"Share link: {generate_share_link(config.dashboard.page_url, config.store.namespace)}")

    if not await runtime.start():
        print("Error: could not connect to the event store", file=sys.stderr)
        return 1

    app = create_app(config, runtime.controller, runtime.repository)

    try:
        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=config.dashboard.host,
            port=config.dashboard.port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        await runtime.close()

    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Show configuration and store reachability."""
    config = load_config(args.config)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "node": {"name": config.node.name},
        "store": {
            "backend": config.store.backend,
            "namespace": config.store.namespace,
        },
        "session": {
            "default_duration_minutes": config.session.default_duration_minutes,
            "tick_interval_seconds": config.session.tick_interval_seconds,
        },
    }

    if config.store.backend == "mqtt":
        from .sync.mqtt_gateway import MQTTGateway

        gateway = MQTTGateway(config.mqtt)
        reachable = await gateway.check_connection()
        status_data["store"].update(
            {
                "broker": config.mqtt.broker,
                "port": config.mqtt.port,
                "reachable": reachable,
            }
        )
    else:
        status_data["store"]["reachable"] = True

    if args.json:
        print(json.dumps(status_data, indent=2, ensure_ascii=False))
        return 0

    store = status_data["store"]
    print("ParkRelief Status Check")
    print("=======================")
    print(f"Node: {config.node.name}")
    print()
    print(f"Store ({store['backend']}):")
    print(f"  Namespace: {store['namespace']}")
    if config.store.backend == "mqtt":
        print(f"  Broker: {store['broker']}:{store['port']}")
        if store["reachable"]:
            print("  Status: Reachable")
        else:
            print("  Status: Not reachable")
            print("  Make sure the MQTT broker is running")
    else:
        print("  Status: In-process (events are not shared with other devices)")
    print()
    print("Session:")
    print(f"  Default duration: {config.session.default_duration_minutes} min")

    return 0


async def cmd_events(args: argparse.Namespace) -> int:
    """Print the shared event log, most recent first."""
    config = load_config(args.config)
    runtime = build_runtime(config)

    if not await runtime.start():
        print("Error: could not connect to the event store", file=sys.stderr)
        return 1

    try:
        events = runtime.controller.events_view()
        complete = runtime.repository.initial_sync_complete
    finally:
        await runtime.close()

    if args.json:
        print(json.dumps({"complete": complete, "events": events}, indent=2, ensure_ascii=False))
        return 0

    if not events:
        print("No events recorded")
    for event in events:
        print(
            f"{event['timestampStr']}  {event['painArea']:<4} "
            f"intensity {event['intensity']:>2}/10  {event['duration']:>3} min  "
            f"[{event['syncStatus']}]"
        )
        if event["notes"]:
            print(f"    {event['notes']}")
    if not complete:
        print("(initial sync not complete, list may be partial)")

    return 0


def cmd_share_link(args: argparse.Namespace) -> int:
    """Print the share link for a page URL."""
    config = load_config(args.config)
    url = args.url or config.dashboard.page_url
    print(generate_share_link(url, config.store.namespace))
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="parkrelief",
        description="Massage session timer with a shared pain event log",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        choices=["warning", "info", "debug"],
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Serve the dashboard")
    run_parser.add_argument("--host", type=str, help="Host to bind to")
    run_parser.add_argument("-p", "--port", type=int, help="Port to listen on")
    run_parser.set_defaults(func=cmd_run)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check store connectivity")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Events command
    events_parser = subparsers.add_parser("events", help="List recorded pain events")
    events_parser.add_argument(
        "--json",
        action="store_true",
        help="Output events as JSON",
    )
    events_parser.set_defaults(func=cmd_events)

    # Share link command
    share_parser = subparsers.add_parser("share-link", help="Print the share link")
    share_parser.add_argument(
        "url",
        nargs="?",
        help="Page URL (default: dashboard.public_url)",
    )
    share_parser.set_defaults(func=cmd_share_link)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
