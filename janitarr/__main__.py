#!/usr/bin/env python3
"""
Janitarr - Entry Point
Run with: python -m janitarr [command]
"""

import argparse
import sys
import signal
import os
from pathlib import Path

from . import __version__
from .config import Config
from .logger import Logger
from .core import JanitarrCore
from .automation import format_cycle_result
from .errors import ConfigAccessError, CycleCancelled, SchedulerBusyError


EXIT_FAILURE = 1
EXIT_ABORTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="janitarr",
        description="Janitarr - keeps Radarr and Sonarr searching for what is missing"
    )
    parser.add_argument("--config", "-c", type=str,
                        default=os.environ.get("JANITARR_CONFIG", "/config/config.json"),
                        help="Path to configuration file")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug mode")
    parser.add_argument("--version", "-v", action="version",
                        version=f"Janitarr v{__version__}")

    sub = parser.add_subparsers(dest="command")

    start = sub.add_parser("start", help="Run the scheduler and the web API (default)")
    start.add_argument("--host", type=str, default="0.0.0.0",
                       help="Web server host")
    start.add_argument("--port", "-p", type=int, default=8080,
                       help="Web server port")

    run = sub.add_parser("run", help="Run one automation cycle now")
    run.add_argument("--dry-run", action="store_true",
                     help="Show what would be searched without sending commands")

    sub.add_parser("scan", help="Detect missing and cutoff-unmet items only")
    sub.add_parser("status", help="Show schedule, limits and servers")

    logs = sub.add_parser("logs", help="Show recent activity")
    logs.add_argument("--limit", "-n", type=int, default=50,
                      help="Number of entries to show")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "start"

    config = Config(args.config)
    debug = args.debug or config.debug_mode
    logger = Logger(log_dir=str(Path(config.data_dir) / "logs"), debug=debug,
                    console=(command == "start" or debug))
    log = logger.get_logger("main")

    core = JanitarrCore(config, logger)

    def signal_handler(signum, frame):
        print("\nShutting down Janitarr...")
        core.shutdown_event.set()
        if command == "start":
            core.shutdown()
            sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if command == "start":
        return cmd_start(core, log, args)
    if command == "run":
        return cmd_run(core, args)
    if command == "scan":
        return cmd_scan(core)
    if command == "status":
        return cmd_status(config)
    if command == "logs":
        return cmd_logs(core, args)
    return EXIT_FAILURE


def cmd_start(core: JanitarrCore, log, args) -> int:
    from .web import WebServer

    log.info("=" * 60)
    log.info(f"Janitarr v{__version__} starting")
    log.info(f"Timezone: {os.environ.get('TZ', 'UTC')}")
    log.info("=" * 60)

    core.start_scheduler()
    server = WebServer(core)
    server.run(host=args.host, port=args.port, debug=args.debug)
    core.shutdown()
    return 0


def cmd_run(core: JanitarrCore, args) -> int:
    try:
        result = core.run_manual_cycle(dry_run=args.dry_run or None)
    except SchedulerBusyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    print(format_cycle_result(result), end="")
    if result.aborted:
        return EXIT_ABORTED
    return 0 if result.success else EXIT_FAILURE


def cmd_scan(core: JanitarrCore) -> int:
    try:
        detection = core.scan()
    except ConfigAccessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except CycleCancelled:
        print("Scan aborted", file=sys.stderr)
        return EXIT_ABORTED

    for res in detection.results:
        if res.ok:
            print(f"{res.server_name} ({res.server_type}): "
                  f"{len(res.missing)} missing, {len(res.cutoff)} below cutoff")
        else:
            print(f"{res.server_name} ({res.server_type}): FAILED - {res.error}")
    print(f"Total: {detection.total_missing} missing, {detection.total_cutoff} below cutoff "
          f"({detection.failure_count} servers failed)")
    return EXIT_FAILURE if detection.failure_count else 0


def cmd_status(config: Config) -> int:
    schedule = config.schedule
    limits = config.get_search_limits()
    print(f"Schedule: {'every %sh' % schedule.interval_hours if schedule.enabled else 'disabled'}")
    print(f"Dry run: {'yes' if config.search.dry_run else 'no'}")
    print("Limits:")
    print(f"  Missing movies:   {limits.missing_movies_limit}")
    print(f"  Missing episodes: {limits.missing_episodes_limit}")
    print(f"  Cutoff movies:    {limits.cutoff_movies_limit}")
    print(f"  Cutoff episodes:  {limits.cutoff_episodes_limit}")
    servers = config.list_servers()
    print(f"Servers ({len(servers)}):")
    for server in servers:
        state = "enabled" if server.enabled else "disabled"
        print(f"  {server.name} [{server.kind}] {server.url} ({state})")
    return 0


def cmd_logs(core: JanitarrCore, args) -> int:
    for entry in core.get_logs(limit=args.limit)['logs']:
        print(f"{entry['timestamp']}  {entry['type']:<12} {entry['message']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
