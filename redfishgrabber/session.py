"""Redfish session context and HTTP transport with retry logic."""

import json
import sys
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests
import urllib3

from .config import SERVICE_ROOT, CrawlConfig
from .errors import AuthenticationError, DecodeError, FetchError
from .path_filter import absolute_url, normalize_base_uri

SESSIONS_PATH = f"{SERVICE_ROOT}/SessionService/Sessions"
TOKEN_HEADER = "X-Auth-Token"

# Statuses worth another attempt, everything else fails immediately
RETRY_STATUSES = frozenset((429, 500, 502, 503, 504))

# Other methods are retried only when the request never reached the service
# or the service refused it unprocessed
IDEMPOTENT_METHODS = frozenset(("GET", "HEAD", "OPTIONS", "PUT", "DELETE"))
UNPROCESSED_STATUSES = frozenset((429, 503))


def _flush() -> None:
    """Flush stdout so output appears immediately in piped/buffered contexts."""
    sys.stdout.flush()


@dataclass
class FetchResponse:
    """Status, headers and raw body of one HTTP exchange."""

    status: int
    headers: Mapping[str, str]
    body: bytes

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            DecodeError: If the body is empty or not valid JSON.
        """
        if not self.body:
            raise DecodeError("Empty response body", status=self.status)
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON: {e}", status=self.status) from e


class RedfishSession:
    """Explicit connection context for one Redfish service.

    Holds the base URI, bearer token and HTTP session that every request
    needs, so nothing about the target lives in module globals and several
    sessions can run side by side.

    Usable as a context manager; leaving the block logs out and closes the
    underlying connection pool.
    """

    def __init__(
        self,
        base_uri: str,
        token: Optional[str] = None,
        verify_tls: bool = False,
        timeout: int = 30,
        retries: int = 3,
        backoff: float = 1.0,
        user_agent: str = "RedfishGrabber/1.0",
        quiet: bool = False,
    ):
        self.base_uri = normalize_base_uri(base_uri)
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff = backoff
        self.quiet = quiet
        self.session_uri: Optional[str] = None

        self.http = requests.Session()
        self.http.verify = verify_tls
        self.http.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json",
            "OData-Version": "4.0",
        })
        if token:
            self.http.headers[TOKEN_HEADER] = token

        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_config(cls, config: CrawlConfig, quiet: bool = False) -> "RedfishSession":
        """Build a session from a crawl configuration (no login yet)."""
        return cls(
            config.base_uri,
            token=config.token,
            verify_tls=config.verify_tls,
            timeout=config.timeout,
            retries=config.retries,
            user_agent=config.user_agent,
            quiet=quiet,
        )

    @property
    def token(self) -> Optional[str]:
        return self.http.headers.get(TOKEN_HEADER)

    def __enter__(self) -> "RedfishSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logout()
        self.close()

    def _print(self, message: str) -> None:
        if not self.quiet:
            print(message)
            _flush()

    def fetch(self, path: str, method: str = "GET", body: Any = None) -> FetchResponse:
        """Send one request with retry logic and exponential backoff.

        Connection errors, timeouts, 429 and 5xx responses are retried.
        TLS failures and other 4xx responses fail at once. POST and PATCH
        are only retried after a connect timeout, a 429 or a 503, because
        any other failure may hide a write the service already applied.

        Args:
            path: Resource path relative to the base URI, or an absolute URL.
            method: HTTP method.
            body: Optional JSON-serializable request body.

        Returns:
            The successful (2xx) response.

        Raises:
            FetchError: If the request ultimately failed.
        """
        url = absolute_url(path, self.base_uri)
        backoff = self.backoff
        idempotent = method.upper() in IDEMPOTENT_METHODS

        for attempt in range(1, self.retries + 1):
            try:
                response = self.http.request(
                    method,
                    url,
                    json=body,
                    timeout=self.timeout,
                    allow_redirects=True,
                )
                response.raise_for_status()
                return FetchResponse(response.status_code, response.headers, response.content)

            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                retryable = idempotent or status in UNPROCESSED_STATUSES
                if status in RETRY_STATUSES and retryable and attempt < self.retries:
                    wait = backoff * 5 if status == 429 else backoff
                    self._print(f"  [HTTP {status}] Retry {attempt}/{self.retries} in {wait:.0f}s: {url}")
                    time.sleep(wait)
                    backoff *= 2
                    continue
                raise FetchError(f"HTTP {status} for {method} {url}", status=status) from e

            except requests.exceptions.SSLError as e:
                raise FetchError(f"TLS failure for {url}: {e}") from e

            except requests.exceptions.ConnectTimeout as e:
                if attempt < self.retries:
                    self._print(f"  [TIMEOUT] Connect timeout. Retry {attempt}/{self.retries} in {backoff:.0f}s...")
                    time.sleep(backoff)
                    backoff *= 2
                    continue
                raise FetchError(f"Connect timeout after {self.retries} attempts: {url}") from e

            except requests.exceptions.ConnectionError as e:
                if not idempotent:
                    raise FetchError(f"Connection error during {method} {url}, not retried: {e}") from e
                if attempt < self.retries:
                    self._print(f"  [CONN] Connection error. Retry {attempt}/{self.retries} in {backoff:.0f}s...")
                    time.sleep(backoff)
                    backoff *= 2
                    continue
                raise FetchError(f"Connection error after {self.retries} attempts: {url}") from e

            except requests.exceptions.Timeout as e:
                if not idempotent:
                    raise FetchError(f"Timeout during {method} {url}, not retried: {e}") from e
                if attempt < self.retries:
                    self._print(f"  [TIMEOUT] Retry {attempt}/{self.retries} in {backoff:.0f}s...")
                    time.sleep(backoff)
                    backoff *= 2
                    continue
                raise FetchError(f"Timeout after {self.retries} attempts: {url}") from e

            except requests.exceptions.RequestException as e:
                raise FetchError(str(e)) from e

        raise FetchError(f"No response after {self.retries} attempts: {url}")

    def get_json(self, path: str) -> tuple[Any, Mapping[str, str]]:
        """GET a resource and decode its body.

        Raises:
            FetchError: If the request failed.
            DecodeError: If the body is not valid JSON.
        """
        response = self.fetch(path)
        return response.json(), response.headers

    def login(self, username: str, password: str) -> None:
        """Open a Redfish session and use its token for every later request.

        Services that answer without an X-Auth-Token get HTTP basic
        authentication instead.

        Raises:
            AuthenticationError: If the service refused the credentials.
        """
        self._print(f"[AUTH] Opening session on {self.base_uri} as {username}")
        try:
            response = self.fetch(
                SESSIONS_PATH,
                method="POST",
                body={"UserName": username, "Password": password},
            )
        except FetchError as e:
            raise AuthenticationError(f"Login to {self.base_uri} failed: {e}") from e

        token = response.headers.get(TOKEN_HEADER)
        if token:
            self.http.headers[TOKEN_HEADER] = token
            self.session_uri = response.headers.get("Location")
            self._print("[AUTH] Session token acquired.")
        else:
            self.http.auth = (username, password)
            self._print("[AUTH] No session token returned; using basic authentication.")

    def logout(self) -> None:
        """Delete the session opened by login(), if any."""
        if not self.session_uri:
            return
        try:
            self.fetch(self.session_uri, method="DELETE")
            self._print("[AUTH] Session closed.")
        except FetchError as e:
            self._print(f"[AUTH] WARNING: Could not delete session {self.session_uri}: {e}")
        finally:
            self.session_uri = None
            self.http.headers.pop(TOKEN_HEADER, None)

    def close(self) -> None:
        self.http.close()
