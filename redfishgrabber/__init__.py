"""RedfishGrabber - hypermedia crawler for Redfish/Swordfish services."""

from .collectors import collect_inventory, collect_logs, crawl_targets, find_targets, run_action
from .config import CrawlConfig
from .crawler import Crawler, CrawlResult
from .errors import (
    AuthenticationError,
    ConfigurationError,
    CrawlFailure,
    DecodeError,
    FetchError,
    RedfishGrabberError,
)
from .links import extract_links
from .path_filter import is_in_scope, matches_pattern, normalize_path
from .session import RedfishSession
from .snapshot_store import FileStore, MemoryStore

__version__ = "1.0.0"
__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "CrawlConfig",
    "CrawlFailure",
    "CrawlResult",
    "Crawler",
    "DecodeError",
    "FetchError",
    "FileStore",
    "MemoryStore",
    "RedfishGrabberError",
    "RedfishSession",
    "collect_inventory",
    "collect_logs",
    "crawl_targets",
    "extract_links",
    "find_targets",
    "is_in_scope",
    "matches_pattern",
    "normalize_path",
    "run_action",
]
