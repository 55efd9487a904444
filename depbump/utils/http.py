"""
HTTP client utilities for depbump.

This module provides an asynchronous HTTP client with retry logic,
``Retry-After`` aware throttling, concurrency control and registry-aware
error mapping. Tests pass an ``httpx.MockTransport`` through
``transport`` instead of patching the network.
"""

from __future__ import annotations

import httpx
import random
import asyncio
from typing import Any, Dict, Mapping, Optional, cast

from depbump.utils.logger import get_logger
from depbump.__version__ import __version__
from depbump.exceptions import NetworkError, RegistryError
from depbump.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

#: Cap on a server-requested ``Retry-After`` delay, in seconds.
_MAX_RETRY_AFTER = 60.0


def _retry_after(response: httpx.Response) -> float:
    """Parse ``Retry-After`` seconds; HTTP-date values fall back to 1s."""
    value = response.headers.get("Retry-After", "1")
    try:
        return min(max(float(value), 0.0), _MAX_RETRY_AFTER)
    except ValueError:
        return 1.0


class HTTPClient:
    """Asynchronous HTTP client with retries and concurrency control.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Retries after the first attempt for timeouts,
            connection errors and 5xx responses.
        max_concurrency: Maximum number of requests in flight.
        verify_ssl: Whether to verify TLS certificates.
        user_agent: Custom User-Agent header value.
        headers: Extra headers sent with every request (auth tokens).
        transport: Custom httpx transport, mainly for tests.

    Example:
        >>> async with HTTPClient() as client:
        ...     data = await client.get_json("https://registry.npmjs.org/express")
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_concurrency: int = DEFAULT_CONCURRENCY,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_concurrency = max_concurrency
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.headers: Dict[str, str] = dict(headers or {})

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_429_retries: int = 5

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> None:
        """Initialize the underlying httpx client if needed."""
        if self._client is not None:
            return

        options: Dict[str, Any] = {
            "timeout": httpx.Timeout(self.timeout),
            "follow_redirects": True,
            "headers": {"User-Agent": self.user_agent, **self.headers},
        }
        if self._transport is not None:
            options["transport"] = self._transport
        else:
            options["http2"] = True
            options["verify"] = self.verify_ssl

        self._client = httpx.AsyncClient(**options)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with retry and backoff logic.

        Raises:
            RegistryError: The resource does not exist (404).
            NetworkError: Any other client error, or retries exhausted.
        """
        await self._ensure_client()
        assert self._client is not None

        last_exc: Optional[Exception] = None
        retry_429_count = 0
        attempt = 0

        while attempt <= self.max_retries:
            try:
                async with self._semaphore:
                    response = await self._client.request(method, url, **kwargs)

                if response.status_code == 429:
                    retry_429_count += 1
                    if retry_429_count > self._max_429_retries:
                        raise NetworkError(
                            f"Rate limit exceeded after {self._max_429_retries} retries",
                            url=url,
                            status_code=429,
                        )
                    delay = _retry_after(response)
                    logger.warning(
                        "Rate limited (429), retrying after %.0fs (%d/%d)",
                        delay,
                        retry_429_count,
                        self._max_429_retries,
                    )
                    await asyncio.sleep(delay)
                    # 429s have their own budget
                    continue

                if response.status_code == 404:
                    raise RegistryError(
                        f"Not found: {url}",
                        url=url,
                        status_code=404,
                    )

                response.raise_for_status()
                return response

            except httpx.TimeoutException as exc:
                last_exc = exc
                logger.warning(
                    "Request timeout (%d/%d): %s",
                    attempt + 1,
                    self.max_retries + 1,
                    url,
                )

            except httpx.TransportError as exc:
                last_exc = exc
                logger.warning(
                    "Network error (%d/%d): %s",
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                )

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if 400 <= status < 500:
                    raise NetworkError(
                        f"HTTP {status} error for {url}",
                        url=url,
                        status_code=status,
                        response_body=exc.response.text,
                    ) from exc
                last_exc = exc
                logger.warning(
                    "HTTP %d error (%d/%d): %s",
                    status,
                    attempt + 1,
                    self.max_retries + 1,
                    url,
                )

            if attempt < self.max_retries:
                delay = (2**attempt) * 0.5 + random.uniform(0.0, 0.3)
                logger.debug("Retrying in %.2fs", delay)
                await asyncio.sleep(delay)
            attempt += 1

        raise NetworkError(
            f"Request failed after {self.max_retries + 1} attempts: {url}",
            url=url,
        ) from last_exc

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Perform a GET request with retry logic."""
        return await self._request_with_retry("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Fetch a URL and decode the body as a JSON object.

        Raises:
            NetworkError: The body is not a JSON object.
        """
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, dict):
            raise NetworkError(
                f"Expected JSON object from {url}",
                url=url,
                response_body=response.text,
            )

        return cast(Dict[str, Any], data)
