"""Inventory, log and action collectors built on the crawl engine."""

import dataclasses
import os
import re
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config import SERVICE_ROOT, CrawlConfig
from .crawler import SUPPORTED_METHODS_KEY, Crawler, CrawlResult
from .errors import ConfigurationError, CrawlFailure, FetchError, RedfishGrabberError
from .path_filter import (
    literal_prefix,
    matches_exactly,
    normalize_path,
    path_segments,
    validate_pattern,
)
from .session import RedfishSession
from .snapshot_store import FileStore, MemoryStore

LOG_CONTAINERS = ("Systems", "Managers", "Chassis")
ACTION_METHODS = frozenset(("PATCH", "POST", "PUT", "DELETE"))


def _flush() -> None:
    sys.stdout.flush()


def open_session(config: CrawlConfig, quiet: bool = False) -> RedfishSession:
    """Create a session for the configured service and log in if needed.

    Raises:
        AuthenticationError: If the login was refused.
    """
    session = RedfishSession.from_config(config, quiet=quiet)
    if config.username and not config.token:
        try:
            session.login(config.username, config.password)
        except RedfishGrabberError:
            session.close()
            raise
    return session


def make_store(config: CrawlConfig) -> MemoryStore:
    """FileStore when an output folder is configured, MemoryStore otherwise."""
    if config.output_folder:
        return FileStore(config.output_folder)
    return MemoryStore()


def _finish_store(store: Any, quiet: bool) -> None:
    if isinstance(store, FileStore):
        index = store.write_index()
        if not quiet:
            print(f"[SAVED] {store.saved_count} snapshot(s), index at {index}")
            _flush()


def collect_inventory(
    config: CrawlConfig,
    session: Optional[RedfishSession] = None,
    store: Optional[Any] = None,
    cancel_event: Optional[threading.Event] = None,
    quiet: bool = False,
) -> CrawlResult:
    """Snapshot every resource reachable from config.root_path in scope.

    Args:
        config: Crawl configuration.
        session: Open session to reuse; one is opened (and closed) if omitted.
        store: Snapshot store; derived from config.output_folder if omitted.
        cancel_event: Set from another thread to stop the crawl.
        quiet: Suppress console output.

    Returns:
        The crawl result.
    """
    config.validate()
    store = store if store is not None else make_store(config)

    owned = session is None
    session = session or open_session(config, quiet=quiet)
    try:
        crawler = Crawler(config, session, store=store, cancel_event=cancel_event, quiet=quiet)
        result = crawler.crawl()
    finally:
        if owned:
            session.logout()
            session.close()

    _finish_store(store, quiet)
    return result


@dataclass
class LogCollection:
    """Log services found on a service and the entries read from them."""

    services: list[str] = field(default_factory=list)
    entries: list[dict] = field(default_factory=list)
    crawls: list[CrawlResult] = field(default_factory=list)

    @property
    def failures(self) -> list[CrawlFailure]:
        return [failure for crawl in self.crawls for failure in crawl.failures]

    @property
    def cancelled(self) -> bool:
        return any(crawl.cancelled for crawl in self.crawls)

    @property
    def ok(self) -> bool:
        return all(crawl.ok for crawl in self.crawls)


def collect_logs(
    config: CrawlConfig,
    session: Optional[RedfishSession] = None,
    store: Optional[Any] = None,
    cancel_event: Optional[threading.Event] = None,
    quiet: bool = False,
    containers: tuple[str, ...] = LOG_CONTAINERS,
) -> LogCollection:
    """Read every log entry from the log services of a Redfish service.

    Runs narrowed crawls instead of crawling the whole service:

    1. Read the service root alone to find the container collections.
    2. For each container (Systems, Managers, Chassis) crawl one hop deep to
       find its members and their LogServices links.
    3. Crawl each LogServices collection as its own sub-tree, which reaches
       every log service, its Entries collection and the entries.

    Args:
        config: Crawl configuration; root_path and filter_pattern are unused.
        session: Open session to reuse; one is opened (and closed) if omitted.
        store: Snapshot store; derived from config.output_folder if omitted.
        cancel_event: Set from another thread to stop collecting.
        quiet: Suppress console output.
        containers: Collections under the service root that may own logs.

    Returns:
        The log collection.
    """
    config.validate()
    store = store if store is not None else make_store(config)
    cancel_event = cancel_event or threading.Event()
    collection = LogCollection()

    owned = session is None
    session = session or open_session(config, quiet=quiet)
    try:
        crawler = Crawler(config, session, store=store, cancel_event=cancel_event, quiet=quiet)

        service_root = crawler.crawl(SERVICE_ROOT, SERVICE_ROOT, max_depth=0)
        collection.crawls.append(service_root)
        root_snapshot = service_root.snapshots.get(SERVICE_ROOT, {})

        for container in containers:
            if cancel_event.is_set():
                break
            container_root = _link_of(root_snapshot, container, config.base_uri)
            if not container_root:
                continue
            member_pattern = f"{container_root}/*"
            result = crawler.crawl(container_root, member_pattern, max_depth=1)
            collection.crawls.append(result)
            for path in sorted(result.snapshots):
                if not matches_exactly(path, member_pattern, config.base_uri):
                    continue
                service_link = _link_of(result.snapshots[path], "LogServices", config.base_uri)
                if service_link:
                    collection.services.append(service_link)

        for services_root in collection.services:
            if cancel_event.is_set():
                break
            result = crawler.crawl(services_root, services_root)
            collection.crawls.append(result)
            entry_pattern = f"{services_root}/*/Entries/*"
            for path in sorted(result.snapshots):
                if matches_exactly(path, entry_pattern, config.base_uri):
                    collection.entries.append(result.snapshots[path])
    finally:
        if owned:
            session.logout()
            session.close()

    if not quiet:
        print(f"[LOGS] {len(collection.services)} log service collection(s), "
              f"{len(collection.entries)} entr{'y' if len(collection.entries) == 1 else 'ies'}")
        _flush()
    _finish_store(store, quiet)
    return collection


def _link_of(snapshot: dict, name: str, base_uri: str) -> Optional[str]:
    """Return snapshot[name]["@odata.id"] if present."""
    value = snapshot.get(name)
    if isinstance(value, dict) and isinstance(value.get("@odata.id"), str):
        return normalize_path(value["@odata.id"], base_uri)
    return None


@dataclass
class ActionResult:
    """Outcome of one write or delete against one resource."""

    path: str
    method: str
    status: Optional[int]
    ok: bool
    message: str = ""


def find_targets(
    config: CrawlConfig,
    pattern: str,
    method: Optional[str] = None,
    session: Optional[RedfishSession] = None,
    cancel_event: Optional[threading.Event] = None,
    quiet: bool = False,
) -> list[str]:
    """Find the resources a write or delete should be applied to.

    The crawl starts at the literal prefix of the pattern (everything before
    the first glob segment) and follows links only as many hops as the
    pattern has remaining segments. A resource is a target when it matches
    the pattern segment for segment and, if the service advertised its
    methods, supports the requested one. Each target is returned as the
    link the service advertised for it, trailing slash included, so writes
    go to the same URL the resource was read from.

    Example:
        "/redfish/v1/AccountService/Accounts/*/" crawls from
        "/redfish/v1/AccountService/Accounts" one hop deep and returns
        "/redfish/v1/AccountService/Accounts/1", ".../2", ...

    Args:
        config: Crawl configuration.
        pattern: Filter pattern naming the targets.
        method: HTTP method about to be issued, used to drop resources that
            do not advertise it.
        session: Open session to reuse; one is opened (and closed) if omitted.
        cancel_event: Set from another thread to stop the crawl.
        quiet: Suppress console output.

    Returns:
        Target links, sorted by resource path.
    """
    validate_pattern(pattern, config.base_uri)
    root = literal_prefix(pattern, config.base_uri)
    root_parts = path_segments(root)
    if not root_parts:
        raise ConfigurationError(
            f"Target pattern '{pattern}' needs a literal prefix such as {SERVICE_ROOT}/..."
        )
    pattern_parts = path_segments(pattern, config.base_uri)
    depth = len(pattern_parts) - len(root_parts)
    # Scope the crawl by the first glob segment only; deeper segments are
    # reached through it and checked once the crawl is done
    crawl_pattern = "/" + "/".join(pattern_parts[: len(root_parts) + 1])

    owned = session is None
    session = session or open_session(config, quiet=quiet)
    try:
        crawler = Crawler(config, session, cancel_event=cancel_event, quiet=quiet)
        result = crawler.crawl(root, crawl_pattern, max_depth=depth)
    finally:
        if owned:
            session.logout()
            session.close()

    targets = []
    for path in sorted(result.snapshots):
        if not matches_exactly(path, pattern, config.base_uri):
            continue
        supported = result.snapshots[path].get(SUPPORTED_METHODS_KEY) or []
        if method and supported and method.upper() not in supported:
            if not quiet:
                print(f"  [SKIP] {path} does not support {method.upper()}")
            continue
        targets.append(result.links.get(path, path))
    return targets


def run_action(
    session: RedfishSession,
    targets: list[str],
    method: str,
    body: Any = None,
    dry_run: bool = False,
    quiet: bool = False,
) -> list[ActionResult]:
    """Issue one write or delete per target.

    A failure on one target does not stop the others.

    Args:
        session: Open session.
        targets: Resource paths, usually from find_targets().
        method: PATCH, POST, PUT or DELETE.
        body: JSON-serializable request body.
        dry_run: Only report what would be sent.
        quiet: Suppress console output.

    Returns:
        One ActionResult per target, in target order.

    Raises:
        ConfigurationError: If the method is not a write or delete.
    """
    method = method.upper()
    if method not in ACTION_METHODS:
        raise ConfigurationError(f"Unsupported action method '{method}', use one of {sorted(ACTION_METHODS)}")
    if method == "DELETE" and body is not None:
        raise ConfigurationError("DELETE does not take a request body")

    results = []
    for path in targets:
        if dry_run:
            if not quiet:
                print(f"[ACTION] (dry run) {method} {path}")
            results.append(ActionResult(path, method, None, True, "dry run"))
            continue

        try:
            response = session.fetch(path, method=method, body=body)
            results.append(ActionResult(path, method, response.status, True))
            if not quiet:
                print(f"[ACTION] {method} {path} -> {response.status}")
        except FetchError as e:
            results.append(ActionResult(path, method, e.status, False, str(e)))
            if not quiet:
                print(f"[ACTION] FAILED {method} {path}: {e}")
        _flush()
    return results


def config_for_host(template: CrawlConfig, host: str) -> CrawlConfig:
    """Copy a template configuration for one host of a batch run.

    Each host writes into its own sub-folder of the template output folder.
    """
    config = dataclasses.replace(template, base_uri=host)
    if template.output_folder:
        host_dir = re.sub(r"[^A-Za-z0-9._-]", "_", config.base_uri.split("://", 1)[1])
        config.output_folder = os.path.join(template.output_folder, host_dir)
    return config


def crawl_targets(
    hosts: list[str],
    template: CrawlConfig,
    collector: Callable[..., Any] = collect_inventory,
    workers: int = 4,
    cancel_event: Optional[threading.Event] = None,
    quiet: bool = False,
) -> dict[str, Any]:
    """Run one collector per host in parallel.

    Crawls share no state: each host gets its own configuration, session,
    visited set and store. Workers always run quiet; only the per-host
    [BATCH] lines are printed. Ctrl-C sets the cancel event, every worker
    stops before its next visit, and the outcomes are still gathered.

    Args:
        hosts: Host names or base URIs.
        template: Configuration shared by all hosts.
        collector: collect_inventory or collect_logs.
        workers: Thread pool size.
        cancel_event: Set to stop every running crawl between visits.
        quiet: Suppress the per-host console lines.

    Returns:
        Host -> collector result, or the exception that stopped it.
    """
    if workers < 1:
        raise ConfigurationError(f"Workers must be at least 1, got {workers}")
    cancel_event = cancel_event or threading.Event()
    configs = {host: config_for_host(template, host) for host in hosts}
    outcomes: dict[str, Any] = {}

    with ThreadPoolExecutor(max_workers=workers) as pool:
        future_map = {
            pool.submit(collector, config, cancel_event=cancel_event, quiet=True): host
            for host, config in configs.items()
        }
        try:
            _gather(future_map, outcomes, quiet)
        except KeyboardInterrupt:
            cancel_event.set()
            if not quiet:
                print("\n[CANCEL] Interrupted, waiting for running crawls to stop...")
                _flush()
            pending = {future: host for future, host in future_map.items() if host not in outcomes}
            _gather(pending, outcomes, quiet)

    return outcomes


def _gather(future_map: dict, outcomes: dict[str, Any], quiet: bool) -> None:
    for future in as_completed(future_map):
        host = future_map[future]
        try:
            outcomes[host] = future.result()
        except Exception as e:
            outcomes[host] = e
        if not quiet:
            print(f"[BATCH] {host}: {_describe(outcomes[host])}")
            _flush()


def _describe(outcome: Any) -> str:
    if isinstance(outcome, Exception):
        return f"error: {outcome}"
    if outcome.cancelled:
        return "cancelled"
    return "ok" if outcome.ok else f"{len(outcome.failures)} failure(s)"
