"""Exception hierarchy and per-resource failure records."""

from dataclasses import dataclass
from typing import Optional

FETCH_FAILED = "fetch-failed"
DECODE_FAILED = "decode-failed"


class RedfishGrabberError(Exception):
    """Base class for all RedfishGrabber errors."""


class ConfigurationError(RedfishGrabberError, ValueError):
    """Caller misconfiguration, raised before any request is sent."""


class AuthenticationError(RedfishGrabberError):
    """The service refused to open a session."""


class FetchError(RedfishGrabberError):
    """Transport or protocol failure for one request.

    Covers connection errors, timeouts, TLS failures and non-2xx responses.
    """

    kind = FETCH_FAILED

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DecodeError(RedfishGrabberError):
    """Response body is not a usable JSON document."""

    kind = DECODE_FAILED

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class CrawlFailure:
    """A resource that could not be fetched or decoded during a crawl."""

    path: str
    kind: str
    cause: str
    status: Optional[int] = None

    @classmethod
    def from_error(cls, path: str, error: "FetchError | DecodeError") -> "CrawlFailure":
        return cls(path=path, kind=error.kind, cause=str(error), status=error.status)

    def as_snapshot(self) -> dict:
        """Error snapshot handed to the store in place of a resource body.

        Carries no resource fields, so nothing in it is ever followed as a link.
        """
        return {
            "Error": {
                "Kind": self.kind,
                "Message": self.cause,
                "Status": self.status,
            },
        }
