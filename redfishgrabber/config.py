"""Configuration dataclass for RedfishGrabber."""

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError
from .path_filter import normalize_base_uri, validate_path, validate_pattern

SERVICE_ROOT = "/redfish/v1"


@dataclass
class CrawlConfig:
    """Configuration for a crawl session against one Redfish service."""

    base_uri: str
    root_path: str = SERVICE_ROOT
    filter_pattern: str = "*"
    output_folder: Optional[str] = None  # None = keep snapshots in memory only
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None  # Pre-existing X-Auth-Token, skips login
    verify_tls: bool = False  # BMCs mostly ship self-signed certificates
    timeout: int = 30
    retries: int = 3
    delay: float = 0.0  # Seconds to wait between fetches
    max_resources: int = 0  # 0 = unlimited
    max_depth: Optional[int] = None  # Link hops from the root, None = unlimited
    record_failures: bool = True
    verbose: bool = False
    user_agent: str = "RedfishGrabber/1.0"

    def __post_init__(self) -> None:
        self.base_uri = normalize_base_uri(self.base_uri)

    def validate(self) -> None:
        """Fail fast on misconfiguration, before any request is sent.

        Raises:
            ConfigurationError: If any setting is unusable.
        """
        validate_path(self.root_path, self.base_uri)
        validate_pattern(self.filter_pattern, self.base_uri)

        if self.timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {self.timeout}")
        if self.retries < 1:
            raise ConfigurationError(f"Retries must be at least 1, got {self.retries}")
        if self.delay < 0:
            raise ConfigurationError(f"Delay cannot be negative, got {self.delay}")
        if self.max_resources < 0:
            raise ConfigurationError(f"max_resources cannot be negative, got {self.max_resources}")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError(f"max_depth cannot be negative, got {self.max_depth}")
        if bool(self.username) != bool(self.password):
            raise ConfigurationError("Username and password must be given together")
