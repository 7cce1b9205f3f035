"""Resource path normalization and glob-style scope checking."""

import re
from fnmatch import fnmatchcase
from typing import Optional
from urllib.parse import urlparse

from .errors import ConfigurationError

SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
GLOB_CHARS = ("*", "?", "[")
MATCH_ALL = "*"


def normalize_base_uri(base_uri: str) -> str:
    """Turn a host name or URL into a scheme + host base URI.

    Examples:
        "10.0.0.5"              -> "https://10.0.0.5"
        "https://bmc.example/"  -> "https://bmc.example"

    Args:
        base_uri: Host, host:port or full URL of the service.

    Returns:
        Base URI without path or trailing slash.

    Raises:
        ConfigurationError: If no usable host can be found.
    """
    base_uri = (base_uri or "").strip()
    if not base_uri:
        raise ConfigurationError("Base URI is empty")

    if not SCHEME_PATTERN.match(base_uri):
        base_uri = f"https://{base_uri}"

    parsed = urlparse(base_uri)
    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError(f"Unsupported scheme in base URI: {base_uri}")
    if not parsed.netloc:
        raise ConfigurationError(f"No host in base URI: {base_uri}")

    return f"{parsed.scheme}://{parsed.netloc}"


def relative_path(path: str, base_uri: Optional[str] = None) -> str:
    """Return the base-relative form of a resource path.

    A path under the base URI loses that prefix. Anything else only loses its
    scheme, so links to other hosts still compare segment by segment
    ("https://other/redfish/v1" -> "other/redfish/v1").

    Args:
        path: Absolute URL or relative resource path.
        base_uri: Base URI of the crawl.

    Returns:
        Relative form of the path.
    """
    path = path.strip()
    if base_uri and path.startswith(base_uri):
        remaining = path[len(base_uri):]
        # "https://10.0.0.1" must not claim "https://10.0.0.10/..."
        if not remaining or remaining.startswith("/"):
            return remaining or "/"
    return SCHEME_PATTERN.sub("", path, count=1)


def normalize_path(path: str, base_uri: Optional[str] = None) -> str:
    """Normalize a resource path into the key used for deduplication.

    Two paths denote the same resource when their normalized forms are equal:
    doubled separators are collapsed and the trailing slash is dropped.

    Examples:
        "https://bmc/redfish/v1/Systems/1/"  -> "/redfish/v1/Systems/1"
        "/redfish/v1//Systems"               -> "/redfish/v1/Systems"

    Args:
        path: Absolute URL or relative resource path.
        base_uri: Base URI of the crawl.

    Returns:
        Normalized relative path.
    """
    rel = relative_path(path, base_uri)
    # Drop query and fragment, they never identify a different resource here
    rel = rel.split("#", 1)[0].split("?", 1)[0]
    rel = re.sub(r"/{2,}", "/", rel)
    if len(rel) > 1:
        rel = rel.rstrip("/")
    return rel or "/"


def absolute_url(path: str, base_uri: str) -> str:
    """Resolve a resource path against the base URI for fetching.

    The path keeps its own trailing slash; some services only answer on the
    exact form they advertise.

    Args:
        path: Absolute URL or relative resource path.
        base_uri: Base URI of the crawl.

    Returns:
        Absolute URL.
    """
    path = path.strip()
    if SCHEME_PATTERN.match(path):
        scheme, _, rest = path.partition("://")
        host, _, tail = rest.partition("/")
        return f"{scheme}://{host}/{re.sub(r'/{2,}', '/', tail).lstrip('/')}"
    return f"{base_uri.rstrip('/')}/{re.sub(r'/{2,}', '/', path).lstrip('/')}"


def path_segments(path: str, base_uri: Optional[str] = None) -> list[str]:
    """Split the relative form of a path into its non-empty segments."""
    return [segment for segment in relative_path(path, base_uri).split("/") if segment]


def segment_matches(pattern_segment: str, segment: str) -> bool:
    """Check one path segment against one pattern segment.

    "*" matches any whole segment, other globs match partially
    ("Account*" matches "AccountService").
    """
    if pattern_segment == MATCH_ALL:
        return True
    return fnmatchcase(segment, pattern_segment)


def matches_pattern(path: str, pattern: str, base_uri: Optional[str] = None) -> bool:
    """Check if a path falls within a filter pattern.

    Segments are compared position by position. Empty segments from trailing
    or doubled slashes are skipped. A path longer than the pattern only has
    the overlapping prefix checked, so "/a/*" matches "/a/b/c/d". A path
    shorter than the pattern is rejected.

    Examples:
        pattern "/redfish/v1/AccountService/Accounts/*/"
            "/redfish/v1/AccountService/Accounts/1/"  -> True
            "/redfish/v1/SessionService/"              -> False
            "/redfish/v1/AccountService"               -> False

    Args:
        path: Candidate resource path.
        pattern: Filter pattern.
        base_uri: Base URI of the crawl.

    Returns:
        True if the path is in scope.
    """
    pattern_parts = path_segments(pattern, base_uri)
    if pattern_parts == [MATCH_ALL]:
        return True

    path_parts = path_segments(path, base_uri)
    if len(path_parts) < len(pattern_parts):
        return False

    for pattern_segment, segment in zip(pattern_parts, path_parts):
        if not segment_matches(pattern_segment, segment):
            return False
    return True


def matches_exactly(path: str, pattern: str, base_uri: Optional[str] = None) -> bool:
    """Like matches_pattern, but the segment counts must be equal too."""
    pattern_parts = path_segments(pattern, base_uri)
    if pattern_parts == [MATCH_ALL]:
        return True
    if len(path_segments(path, base_uri)) != len(pattern_parts):
        return False
    return matches_pattern(path, pattern, base_uri)


def is_in_scope(path: str, pattern: str, root_path: str, base_uri: Optional[str] = None) -> bool:
    """Check if a resource belongs to the current crawl.

    The root path is always in scope, so a crawl can start under a pattern
    that would reject its own entry point.

    Args:
        path: Candidate resource path.
        pattern: Filter pattern.
        root_path: Entry point of the crawl.
        base_uri: Base URI of the crawl.

    Returns:
        True if the path should be visited.
    """
    if normalize_path(path, base_uri) == normalize_path(root_path, base_uri):
        return True
    return matches_pattern(path, pattern, base_uri)


def literal_prefix(pattern: str, base_uri: Optional[str] = None) -> str:
    """Return the leading segments of a pattern that contain no glob.

    Example:
        "/redfish/v1/Systems/*/Bios" -> "/redfish/v1/Systems"
    """
    prefix = []
    for segment in path_segments(pattern, base_uri):
        if any(char in segment for char in GLOB_CHARS):
            break
        prefix.append(segment)
    return "/" + "/".join(prefix)


def _check_host(value: str, base_uri: str, what: str) -> None:
    if not SCHEME_PATTERN.match(value.strip()):
        return
    value_root = normalize_base_uri(value.strip())
    if value_root != base_uri:
        raise ConfigurationError(
            f"{what} '{value}' points at {value_root}, not at the base URI {base_uri}"
        )


def validate_path(path: str, base_uri: str) -> None:
    """Reject a root path that cannot be crawled.

    Raises:
        ConfigurationError: If the path is empty or on a different host.
    """
    if not path or not path.strip():
        raise ConfigurationError("Root path is empty")
    if any(char.isspace() for char in path.strip()):
        raise ConfigurationError(f"Root path contains whitespace: '{path}'")
    _check_host(path, base_uri, "Root path")


def validate_pattern(pattern: str, base_uri: str) -> None:
    """Reject a malformed filter pattern before the crawl starts.

    Raises:
        ConfigurationError: If the pattern is empty, contains whitespace,
            a fragment or a ".." segment, or names another host.
    """
    if not isinstance(pattern, str) or not pattern.strip():
        raise ConfigurationError("Filter pattern is empty")
    pattern = pattern.strip()
    if any(char.isspace() for char in pattern):
        raise ConfigurationError(f"Filter pattern contains whitespace: '{pattern}'")
    if "#" in pattern:
        raise ConfigurationError(f"Filter pattern cannot contain a fragment: '{pattern}'")
    if ".." in pattern.split("/"):
        raise ConfigurationError(f"Filter pattern cannot contain '..': '{pattern}'")
    if pattern.count("[") != pattern.count("]"):
        raise ConfigurationError(f"Unbalanced brackets in filter pattern: '{pattern}'")
    _check_host(pattern, base_uri, "Filter pattern")
