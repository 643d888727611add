"""
HTTP transport for remote pack sources.

HttpFetcher wraps httpx with the behaviour every remote source needs:
- Bounded timeouts on every request
- A small fixed number of retries on transient failures (408, 429, 5xx
  and transport errors); other 4xx responses are returned immediately
- A cap on response size
- Non-success responses surfaced as SourceFetchError carrying the status

The retry count here is independent of the per-pack retry loop in
StarterPackManager.
"""

import logging
import time
from typing import Any

import httpx

from packwright.config import DEFAULT_TIMEOUT
from packwright.errors import SourceFetchError


logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})
DEFAULT_RETRIES = 2
DEFAULT_MAX_BYTES = 50 * 1024 * 1024
USER_AGENT = "packwright"


class HttpFetcher:
    """
    Synchronous HTTP GET with timeouts and bounded retries.

    Attributes:
        timeout: Per-request timeout in seconds
        retries: Extra attempts after a transient failure
        headers: Headers sent with every request
        max_bytes: Responses larger than this are rejected

    Example:
        >>> fetcher = HttpFetcher(timeout=10)
        >>> data = fetcher.get_json("https://example.com/index.json")
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        headers: dict[str, str] | None = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backoff_seconds: float = 0.25,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.retries = max(0, retries)
        self.headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self.max_bytes = max_bytes
        self.backoff_seconds = backoff_seconds
        self._transport = transport

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers=self.headers,
            follow_redirects=True,
            transport=self._transport,
        )

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> httpx.Response:
        """
        GET a URL, retrying transient failures.

        Args:
            url: Absolute URL
            headers: Extra headers for this request
            timeout: Override the fetcher's timeout
            retries: Override the fetcher's retry count

        Returns:
            The 2xx response

        Raises:
            SourceFetchError: On non-2xx status, oversize body or transport
                failure after retries are exhausted
        """
        attempts = 1 + (self.retries if retries is None else max(0, retries))
        last_error: SourceFetchError | None = None

        with self._client(timeout or self.timeout) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = client.get(url, headers=headers)
                except httpx.HTTPError as e:
                    last_error = SourceFetchError(url=url, message=f"Request to {url} failed: {e}")
                    logger.debug("Attempt %d/%d for %s failed: %s", attempt, attempts, url, e)
                else:
                    status = response.status_code
                    if 200 <= status < 300:
                        if len(response.content) > self.max_bytes:
                            raise SourceFetchError(
                                url=url,
                                status_code=status,
                                message=f"Response from {url} exceeds {self.max_bytes} bytes",
                            )
                        return response
                    last_error = SourceFetchError(url=url, status_code=status)
                    if status not in RETRYABLE_STATUS:
                        raise last_error
                    logger.debug("Attempt %d/%d for %s returned %d", attempt, attempts, url, status)

                if attempt < attempts and self.backoff_seconds > 0:
                    time.sleep(self.backoff_seconds)

        assert last_error is not None
        raise last_error

    def get_bytes(self, url: str, **kwargs: Any) -> bytes:
        return self.get(url, **kwargs).content

    def get_json(self, url: str, **kwargs: Any) -> Any:
        """
        GET a URL and decode its JSON body.

        Raises:
            SourceFetchError: On fetch failure or an undecodable body
        """
        response = self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(
                url=url,
                status_code=response.status_code,
                message=f"Invalid JSON from {url}: {e}",
            ) from e
