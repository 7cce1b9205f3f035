"""CLI entry point for RedfishGrabber.

Usage:
    python -m redfishgrabber {inventory,logs,action} --base-uri HOST [options]
"""

import argparse
import json
import sys
import threading
from typing import Any

from .collectors import (
    collect_inventory,
    collect_logs,
    crawl_targets,
    find_targets,
    open_session,
    run_action,
)
from .config import SERVICE_ROOT, CrawlConfig
from .errors import ConfigurationError, RedfishGrabberError

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redfishgrabber",
        description="RedfishGrabber - Crawl, snapshot and act on Redfish/Swordfish services "
                    "by following their hypermedia links.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Snapshot the whole service into ./out
  python -m redfishgrabber inventory --base-uri 10.0.0.5 --username admin --password secret --output-folder ./out

  # Only the account service
  python -m redfishgrabber inventory --base-uri 10.0.0.5 --root-path /redfish/v1/AccountService --filter "/redfish/v1/AccountService/*"

  # Read every log entry from several BMCs at once
  python -m redfishgrabber logs --hosts 10.0.0.5 10.0.0.6 --username admin --password secret --output-folder ./logs

  # Disable every non-admin account (dry run first)
  python -m redfishgrabber action --base-uri 10.0.0.5 --filter "/redfish/v1/AccountService/Accounts/*/" --method PATCH --body '{"Enabled": false}' --dry-run
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    inventory = subparsers.add_parser("inventory", help="Snapshot every in-scope resource")
    logs = subparsers.add_parser("logs", help="Collect log entries from all log services")
    action = subparsers.add_parser("action", help="Write to or delete matching resources")

    for sub in (inventory, logs, action):
        target = sub.add_mutually_exclusive_group(required=True)
        target.add_argument(
            "--base-uri",
            help="Service host or URL (e.g., 10.0.0.5 or https://bmc.example.com)",
        )
        target.add_argument(
            "--hosts",
            nargs="+",
            help="Several hosts to crawl in parallel (inventory and logs only)",
        )
        sub.add_argument("--username", default=None, help="Account used to open a Redfish session")
        sub.add_argument("--password", default=None, help="Password for --username")
        sub.add_argument("--token", default=None, help="Existing X-Auth-Token, skips login")
        sub.add_argument(
            "--verify-tls",
            action=argparse.BooleanOptionalAction,
            default=False,
            help="Validate the service certificate (default: false, BMCs are mostly self-signed)",
        )
        sub.add_argument("--timeout", type=int, default=30, help="Request timeout in seconds (default: 30)")
        sub.add_argument("--retries", type=int, default=3, help="Attempts per request (default: 3)")
        sub.add_argument("--delay", type=float, default=0.0, help="Seconds to wait between requests (default: 0)")
        sub.add_argument("--verbose", action="store_true", default=False,
                         help="Show out-of-scope links and per-resource link counts")

    for sub in (inventory, logs):
        sub.add_argument("--output-folder", default=None,
                         help="Folder for JSON snapshots (default: keep in memory, print summary only)")
        sub.add_argument("--workers", type=int, default=4, help="Parallel crawls with --hosts (default: 4)")

    inventory.add_argument("--root-path", default=SERVICE_ROOT,
                           help=f"Resource to start from (default: {SERVICE_ROOT})")
    inventory.add_argument("--filter", dest="filter_pattern", default="*",
                           help="Glob pattern of resources to follow (default: *)")
    inventory.add_argument("--max-resources", type=int, default=0,
                           help="Stop after this many resources (0 = unlimited, default: 0)")
    inventory.add_argument("--max-depth", type=int, default=None,
                           help="Link hops to follow from the root (default: unlimited)")

    action.add_argument("--filter", dest="filter_pattern", required=True,
                        help="Glob pattern naming the resources to act on")
    action.add_argument("--method", required=True, choices=["PATCH", "POST", "PUT", "DELETE"],
                        help="HTTP method to send to every matching resource")
    action.add_argument("--body", default=None, help="JSON request body")
    action.add_argument("--dry-run", action="store_true", default=False,
                        help="List matching resources without sending anything")

    return parser


def config_from_args(args: argparse.Namespace, base_uri: str) -> CrawlConfig:
    """Build a CrawlConfig from parsed arguments."""
    return CrawlConfig(
        base_uri=base_uri,
        root_path=getattr(args, "root_path", SERVICE_ROOT),
        filter_pattern=getattr(args, "filter_pattern", "*"),
        output_folder=getattr(args, "output_folder", None),
        username=args.username,
        password=args.password,
        token=args.token,
        verify_tls=args.verify_tls,
        timeout=args.timeout,
        retries=args.retries,
        delay=args.delay,
        max_resources=getattr(args, "max_resources", 0),
        max_depth=getattr(args, "max_depth", None),
        verbose=args.verbose,
    )


def _run_action(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    config = config_from_args(args, args.base_uri)
    config.validate()
    body: Any = None
    if args.body is not None:
        try:
            body = json.loads(args.body)
        except ValueError as e:
            raise ConfigurationError(f"--body is not valid JSON: {e}") from e

    with open_session(config) as session:
        targets = find_targets(config, args.filter_pattern, method=args.method,
                               session=session, cancel_event=cancel_event)
        if cancel_event.is_set():
            return EXIT_FAILURES
        print(f"\n[ACTION] {len(targets)} matching resource(s)")
        results = run_action(session, targets, args.method, body=body, dry_run=args.dry_run)

    failed = [result for result in results if not result.ok]
    return EXIT_FAILURES if failed else EXIT_OK


def run(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    """Execute a parsed command and return the process exit code."""
    if args.command == "action":
        if args.hosts:
            raise ConfigurationError("The action command takes a single --base-uri")
        return _run_action(args, cancel_event)

    collector = collect_inventory if args.command == "inventory" else collect_logs

    if args.hosts:
        template = config_from_args(args, args.hosts[0])
        template.validate()
        outcomes = crawl_targets(args.hosts, template, collector=collector,
                                 workers=args.workers, cancel_event=cancel_event)
        failed = [host for host, outcome in outcomes.items()
                  if isinstance(outcome, Exception) or not outcome.ok]
        return EXIT_FAILURES if failed else EXIT_OK

    outcome = collector(config_from_args(args, args.base_uri), cancel_event=cancel_event)
    return EXIT_OK if outcome.ok else EXIT_FAILURES


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    cancel_event = threading.Event()

    # Crawls catch Ctrl-C themselves, set cancel_event and print their summary
    try:
        code = run(args, cancel_event)
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        sys.exit(EXIT_CONFIG)
    except RedfishGrabberError as e:
        print(f"[ERROR] {e}")
        sys.exit(EXIT_FAILURES)
    except KeyboardInterrupt:
        print("\n\n[INTERRUPTED] Stopped by user.")
        _print_output_folder(args)
        sys.exit(EXIT_FAILURES)

    if cancel_event.is_set():
        _print_output_folder(args)
        sys.exit(EXIT_FAILURES)
    sys.exit(code)


def _print_output_folder(args: argparse.Namespace) -> None:
    if getattr(args, "output_folder", None):
        print(f"  Output folder: {args.output_folder}")


if __name__ == "__main__":
    main()
