"""Command-line driver for the trace console."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Callable
from importlib import metadata
import logging
import sys
from typing import Any, TextIO

from pydantic import ValidationError

from trace_console.cli.helpers import (
    WatchRenderer,
    dump_json,
    format_summary,
    load_config,
)
from trace_console.config.env import ConsoleSettings, load_environment, load_settings
from trace_console.engine.view import RunView
from trace_console.enums import PipelineStatus, ViewMode
from trace_console.errors import ConsoleError
from trace_console.transport.client import RunSubmission, TraceClient
from trace_console.utilities.logger_manager import LoggerConfig, LoggerManager

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_RUN_FAILED = 2


def _package_version() -> str:
    try:
        return metadata.version("trace-console")
    except metadata.PackageNotFoundError:
        return "dev+unknown"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Follow pipeline runs from their trace snapshots and event stream.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=_package_version(),
        help="Show the installed version and exit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Optional configuration file (YAML) with console and logging sections.",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Base URL of the pipeline API (overrides TRACE_CONSOLE_API_URL).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for console diagnostics.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Follow a run until it finishes.")
    watch_parser.add_argument("run_id", help="Identifier of the run to follow.")
    _add_watch_options(watch_parser)

    snapshot_parser = subparsers.add_parser(
        "snapshot", help="Fetch one snapshot and print it as JSON."
    )
    snapshot_parser.add_argument("run_id", help="Identifier of the run to fetch.")

    submit_parser = subparsers.add_parser("submit", help="Submit a new run.")
    submit_parser.add_argument("--email", required=True, dest="customer_email")
    submit_parser.add_argument("--subject", required=True)
    submit_parser.add_argument("--description", required=True)
    submit_parser.add_argument("--order-id", default=None)
    submit_parser.add_argument(
        "--mode", choices=("orchestrated", "autonomous"), default="orchestrated"
    )
    submit_parser.add_argument(
        "--watch", action="store_true", help="Follow the new run once it is accepted."
    )
    _add_watch_options(submit_parser)
    return parser.parse_args(argv)


def _add_watch_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between snapshot fetches (overrides the configured cadence).",
    )
    parser.add_argument(
        "--handshake-timeout",
        type=float,
        default=None,
        help="Seconds to wait for the event stream handshake.",
    )


def _emit(lines: list[str], out: TextIO) -> None:
    for line in lines:
        print(line, file=out)
    out.flush()


def exit_code_for(view: RunView) -> int:
    snapshot = view.snapshot
    if snapshot is None:
        return EXIT_ERROR
    if snapshot.pipeline_status == PipelineStatus.FAILED:
        return EXIT_RUN_FAILED
    return EXIT_OK


async def watch_run(
    view: RunView,
    logger_manager: LoggerManager,
    *,
    out: TextIO = sys.stdout,
    refresh_every: float = 1.0,
) -> int:
    """Print a view's progress until the run completes or the view is a replay."""
    renderer = WatchRenderer()
    with logger_manager.context(run_id=view.run_id):
        async with view:
            _emit(renderer.render(view), out)
            while view.mode == ViewMode.LIVE and not view.is_complete:
                await view.wait_complete(timeout=refresh_every)
                _emit(renderer.render(view), out)
            _emit(format_summary(view), out)
            if view.stream is not None:
                logger_manager.log_metric("stream.events", view.stream.events_received)
                logger_manager.log_metric("stream.dropped", view.stream.dropped_count)
            logger_manager.log_metric("poll.fetches", view.poller.fetch_count)
            return exit_code_for(view)


def _settings_for(args: argparse.Namespace, config: dict[str, Any]) -> ConsoleSettings:
    settings = load_settings(config)
    return settings.with_overrides(
        {
            "api_url": args.api_url,
            "poll_interval": getattr(args, "interval", None),
            "handshake_timeout": getattr(args, "handshake_timeout", None),
        }
    )


def _logger_manager_for(args: argparse.Namespace, config: dict[str, Any]) -> LoggerManager:
    logging_section = dict(config.get("logging") or {})
    if args.log_level:
        logging_section["log_level"] = args.log_level
    return LoggerManager(LoggerConfig.from_mapping(logging_section))


async def main(
    argv: list[str] | None = None,
    *,
    client_factory: Callable[[ConsoleSettings], TraceClient] | None = None,
    out: TextIO = sys.stdout,
) -> int:
    """Main entry point for the trace console."""
    load_environment()
    args = parse_args(argv)

    bootstrap_logger = logging.getLogger("trace_console.bootstrap")
    config = load_config(args.config, bootstrap_logger)
    try:
        settings = _settings_for(args, config)
        logger_manager = _logger_manager_for(args, config)
    except (RuntimeError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    logger = logger_manager.get_logger()

    factory = client_factory or (
        lambda s: TraceClient(s.api_url, timeout=s.request_timeout)
    )
    client = factory(settings)
    try:
        if args.command == "snapshot":
            snapshot = await client.fetch_snapshot_async(args.run_id)
            print(dump_json(snapshot.to_wire()), file=out)
            return EXIT_OK

        if args.command == "submit":
            submission = RunSubmission(
                customer_email=args.customer_email,
                subject=args.subject,
                description=args.description,
                order_id=args.order_id,
                mode=args.mode,
            )
            submitted = await client.submit_run_async(submission)
            print(submitted.run_id, file=out)
            if not args.watch:
                return EXIT_OK
            run_id = submitted.run_id
        else:
            run_id = args.run_id

        view = RunView.for_client(client, run_id, settings, logger=logger)
        return await watch_run(view, logger_manager, out=out)
    except ValidationError as exc:
        logger.error("Invalid %s request: %d error(s)", args.command, exc.error_count())
        return EXIT_ERROR
    except ConsoleError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return EXIT_ERROR
    finally:
        client.close()
        logger_manager.flush()
        logger_manager.shutdown()


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
