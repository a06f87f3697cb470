"""Shared JSON-over-HTTP client for bank and fiscal connectors.

Handles session lifecycle, timeouts, status-code mapping and retries with
exponential backoff. Provider clients build URLs and headers and decide
per call whether a request may be retried.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

from core.errors import UpstreamRejected, UpstreamUnavailable
from core.observability.logging import get_logger

logger = get_logger(__name__)


class RequestOutcomeUnknown(UpstreamUnavailable):
    """Transport failed after the request may have been sent.

    Timeouts, dropped connections and broken responses land here; a refused
    connection does not (nothing was sent).
    """

    kind = "UpstreamUnavailable"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


def summarize_body(text: str) -> str:
    """Pull a human-readable message out of an error body."""
    if not text:
        return ""
    try:
        data = json.loads(text)
    except ValueError:
        return text.strip()[:200]
    if isinstance(data, dict):
        for key in ("message", "detail", "error", "errorMessage"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value[:200]
    return text.strip()[:200]


def raise_for_status(source: str, status: int, text: str) -> None:
    """Map an HTTP error status to the pipeline error kinds.

    Raises:
        UpstreamUnavailable: 429 and 5xx
        UpstreamRejected: any other 4xx
    """
    if status < 400:
        return

    summary = summarize_body(text)
    if status in (401, 403):
        message = f"{source} rejected the credentials ({status})"
    elif status == 404:
        message = f"{source} resource not found"
    elif status == 429:
        message = f"{source} rate limit exceeded"
    elif status >= 500:
        message = f"{source} is unavailable ({status})"
    else:
        message = f"{source} rejected the request ({status})"
    if summary and status < 500:
        message = f"{message}: {summary}"

    if status == 429 or status >= 500:
        raise UpstreamUnavailable(message, source=source, status_code=status, upstream_body=text)
    raise UpstreamRejected(message, source=source, status_code=status, upstream_body=text)


class ApiHttpClient:
    """HTTP client with retries for one upstream API.

    Usage:
        async with ApiHttpClient("privatbank", base_url) as client:
            data = await client.request("GET", "/statements/transactions", params=...)
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        timeout_seconds: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_config = retry_config or RetryConfig()
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "ApiHttpClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Open the HTTP session if not injected."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def disconnect(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Dict[str, Any]:
        """Make a request with automatic retries.

        Args:
            method: HTTP method
            path: Path relative to base_url (or a full URL)
            headers: Request headers
            params: Query parameters
            data: JSON body
            retry: If False, the request is sent at most once

        Returns:
            Response JSON (empty dict for empty bodies)

        Raises:
            UpstreamRejected: 4xx
            UpstreamUnavailable: 5xx/429 after retries, refused connection
            RequestOutcomeUnknown: Timeout or broken connection after sending
        """
        if self._session is None:
            await self.connect()

        url = self.build_url(path)
        retry_config = self.retry_config
        max_attempts = retry_config.max_retries + 1 if retry else 1
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        for attempt in range(max_attempts):
            is_last = attempt == max_attempts - 1
            try:
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=data,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        if not response_text:
                            return {}
                        try:
                            return json.loads(response_text)
                        except ValueError:
                            raise RequestOutcomeUnknown(
                                f"{self.source} returned a non-JSON response",
                                source=self.source,
                                status_code=response.status,
                                upstream_body=response_text,
                            )

                    if response.status in retry_config.retry_on_status and not is_last:
                        if response.status == 429:
                            delay = float(response.headers.get("Retry-After", retry_config.get_delay(attempt)))
                        else:
                            delay = retry_config.get_delay(attempt)
                        logger.warning(
                            f"{self.source} answered {response.status}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    raise_for_status(self.source, response.status, response_text)

            except aiohttp.ClientConnectorError as e:
                # Connection never established; nothing was sent
                if not is_last:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(f"{self.source} connection failed: {e}, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                raise UpstreamUnavailable(
                    f"{self.source} is unreachable",
                    source=self.source,
                ) from e

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                if not is_last:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"{self.source} request failed with {type(e).__name__}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise RequestOutcomeUnknown(
                    f"{self.source} request failed: {type(e).__name__}",
                    source=self.source,
                ) from e

        raise UpstreamUnavailable(f"{self.source} request failed", source=self.source)
