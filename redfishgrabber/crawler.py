"""Core crawl engine - link traversal, deduplication, failure capture."""

import re
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config import CrawlConfig
from .errors import CrawlFailure, DecodeError, FetchError
from .links import extract_links
from .path_filter import is_in_scope, normalize_path, validate_path, validate_pattern
from .snapshot_store import MemoryStore, SnapshotStore

SUPPORTED_METHODS_KEY = "SupportedHTTPMethods"
ALLOW_HEADER = "Allow"


def _flush() -> None:
    """Flush stdout so output appears immediately in piped/buffered contexts."""
    sys.stdout.flush()


def parse_allow_header(value: Optional[str]) -> list[str]:
    """Split an Allow header ("GET, PATCH,HEAD") into a list of methods."""
    if not value:
        return []
    return [method for method in re.split(r",\s*", value.strip()) if method]


@dataclass
class CrawlResult:
    """Everything one crawl invocation produced."""

    root_path: str
    filter_pattern: str
    snapshots: dict[str, dict] = field(default_factory=dict)
    failures: list[CrawlFailure] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)  # In visit order
    links: dict[str, str] = field(default_factory=dict)  # Key -> link as advertised
    skipped_out_of_scope: int = 0
    skipped_visited: int = 0
    cancelled: bool = False
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled


class Crawler:
    """Generic hypermedia crawler for Redfish services.

    Starts from a root resource and discovers everything else by following
    @odata.id / href links. Each distinct in-scope resource is fetched at
    most once per crawl and handed to the snapshot store, augmented with the
    HTTP methods the service advertises for it.

    Traversal is depth-first in link encounter order, driven by an explicit
    stack so deeply nested services cannot exhaust the interpreter's
    recursion limit. With a depth limit the crawl goes breadth-first
    instead, so every resource is claimed at its shortest hop count and a
    cross link can never hide a resource that is within reach.

    A failed or undecodable resource is recorded as a CrawlFailure and its
    branch ends there; the rest of the crawl carries on. Ctrl-C sets the
    cancel event and ends the crawl like any other cancellation.
    """

    def __init__(
        self,
        config: CrawlConfig,
        session: Any,
        store: Optional[SnapshotStore] = None,
        cancel_event: Optional[threading.Event] = None,
        quiet: bool = False,
    ):
        self.config = config
        self.session = session
        self.store = store if store is not None else MemoryStore()
        self.cancel_event = cancel_event or threading.Event()
        self.quiet = quiet
        self.visited: set[str] = set()
        self._visited_lock = threading.Lock()
        self._fetch_count: int = 0

    def _print(self, message: str, verbose_only: bool = False) -> None:
        if self.quiet or (verbose_only and not self.config.verbose):
            return
        print(message)
        _flush()

    def cancel(self) -> None:
        """Ask a running crawl to stop before its next visit."""
        self.cancel_event.set()

    def crawl(
        self,
        root_path: Optional[str] = None,
        filter_pattern: Optional[str] = None,
        max_depth: Optional[int] = None,
    ) -> CrawlResult:
        """Run one crawl, starting cold.

        Args:
            root_path: Entry point, defaults to config.root_path. Always visited.
            filter_pattern: Scope pattern, defaults to config.filter_pattern.
            max_depth: Link hops to follow from the root, defaults to
                config.max_depth (None = unlimited).

        Returns:
            The crawl result with snapshots, failures and visit order.

        Raises:
            ConfigurationError: If the root path or pattern is malformed.
        """
        base_uri = self.config.base_uri
        root = root_path or self.config.root_path
        pattern = filter_pattern or self.config.filter_pattern
        if max_depth is None:
            max_depth = self.config.max_depth

        validate_path(root, base_uri)
        validate_pattern(pattern, base_uri)

        with self._visited_lock:
            self.visited = set()
        self._fetch_count = 0
        result = CrawlResult(root_path=normalize_path(root, base_uri), filter_pattern=pattern)

        self._print_banner(root, pattern, max_depth)

        breadth_first = max_depth is not None
        pending: deque[tuple[str, int]] = deque([(root, 0)])
        try:
            while pending:
                if self.cancel_event.is_set():
                    self._print(f"\n[CANCEL] Crawl cancelled with {len(pending)} pending link(s).")
                    result.cancelled = True
                    break

                limit = self.config.max_resources
                if limit > 0 and len(result.visited) >= limit:
                    self._print(f"\n[LIMIT] Reached max resources limit ({limit}). Stopping.")
                    result.truncated = True
                    break

                path, depth = pending.popleft() if breadth_first else pending.pop()
                links = self._visit(path, root, pattern, result)
                if max_depth is not None and depth >= max_depth:
                    continue
                if breadth_first:
                    pending.extend((link, depth + 1) for link in links)
                else:
                    # Pushed in reverse so they pop in encounter order
                    pending.extend((link, depth + 1) for link in reversed(links))
        except KeyboardInterrupt:
            self.cancel_event.set()
            self._print("\n\n[INTERRUPTED] Crawl stopped by user.")
            result.cancelled = True

        self._print_summary(result)
        return result

    def _claim(self, key: str) -> bool:
        """Atomically mark a path visited. False if it already was."""
        with self._visited_lock:
            if key in self.visited:
                return False
            self.visited.add(key)
            return True

    def _visit(self, path: str, root: str, pattern: str, result: CrawlResult) -> list[str]:
        """Visit one resource and return the links found in it.

        Args:
            path: Link as discovered (absolute or relative).
            root: Root path of the crawl, exempt from the filter.
            pattern: Filter pattern.
            result: Crawl result being filled in.

        Returns:
            Links to visit next; empty when the branch ends here.
        """
        base_uri = self.config.base_uri
        key = normalize_path(path, base_uri)

        if key in self.visited:
            result.skipped_visited += 1
            return []

        if not is_in_scope(path, pattern, root, base_uri):
            result.skipped_out_of_scope += 1
            self._print(f"  [OUT-OF-SCOPE] {key}", verbose_only=True)
            return []

        # Marked before the fetch so a failing resource is never retried
        if not self._claim(key):
            result.skipped_visited += 1
            return []
        result.visited.append(key)
        result.links[key] = path

        if self._fetch_count and self.config.delay > 0:
            time.sleep(self.config.delay)
        self._fetch_count += 1

        self._print(f"[FETCH] {key}")
        try:
            snapshot = self._fetch_snapshot(path)
        except (FetchError, DecodeError) as e:
            failure = CrawlFailure.from_error(key, e)
            result.failures.append(failure)
            self._print(f"  [FAIL] {failure.kind}: {failure.cause}")
            if self.config.record_failures:
                self.store.put(key, failure.as_snapshot())
            return []

        result.snapshots[key] = snapshot
        self.store.put(key, snapshot)

        links = extract_links(snapshot)
        self._print(f"  [LINKS] {len(links)} link(s)", verbose_only=True)
        return links

    def _fetch_snapshot(self, path: str) -> dict:
        """Fetch and decode one resource, attaching its supported methods.

        Raises:
            FetchError: If the transport failed or the status was not 2xx.
            DecodeError: If the body is not a JSON object.
        """
        response = self.session.fetch(path)
        document = response.json()
        if not isinstance(document, dict):
            raise DecodeError(
                f"Expected a JSON object, got {type(document).__name__}",
                status=response.status,
            )
        document[SUPPORTED_METHODS_KEY] = parse_allow_header(_header(response.headers, ALLOW_HEADER))
        return document

    def _print_banner(self, root: str, pattern: str, max_depth: Optional[int]) -> None:
        self._print("=" * 70)
        self._print("  RedfishGrabber - Starting crawl")
        self._print(f"  Service: {self.config.base_uri}")
        self._print(f"  Root:    {root}")
        self._print(f"  Filter:  {pattern}")
        if max_depth is not None:
            self._print(f"  Depth:   {max_depth}")
        if self.config.max_resources > 0:
            self._print(f"  Max resources: {self.config.max_resources}")
        self._print("=" * 70)

    def _print_summary(self, result: CrawlResult) -> None:
        """Print a crawl summary after completion."""
        self._print("")
        self._print("=" * 70)
        self._print("  Crawl Complete" if not result.cancelled else "  Crawl Cancelled")
        self._print(f"  Resources saved:   {len(result.snapshots)}")
        self._print(f"  Resources visited: {len(result.visited)}")
        self._print(f"  Resources failed:  {len(result.failures)}")
        self._print(f"  Out of scope:      {result.skipped_out_of_scope}", verbose_only=True)
        self._print("=" * 70)

        if result.failures:
            self._print("")
            self._print("  Failed resources:")
            for failure in result.failures:
                self._print(f"    [{failure.kind}] {failure.path}: {failure.cause}")
            self._print("")


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that also works on plain dicts."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, item in headers.items():
        if key.lower() == lowered:
            return item
    return None
