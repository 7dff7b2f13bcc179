"""Asynchronous HTTP client helper.

This module provides a wrapper around the ``httpx`` asynchronous client used
by the tag resolver and the fetch scheduler.  It centralises headers,
connection pooling and timeouts, and exposes :meth:`AsyncHTTPClient.get_json`
which either returns decoded JSON or raises a :class:`FetchFailure`.

Requests are never retried.  Non-2xx responses are reported the same way
as transport errors.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx


class FetchFailure(Exception):
    """Base class for failures of a single outbound request."""

    def __init__(self, message: str, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class TransportFailure(FetchFailure):
    """Connection, DNS or protocol level failure."""


class TimeoutFailure(FetchFailure):
    """The request did not complete within its timeout."""


class StatusFailure(FetchFailure):
    """The server answered with a non-success status code."""

    def __init__(self, message: str, url: str = "", status_code: int = 0) -> None:
        super().__init__(message, url)
        self.status_code = status_code


class ParseFailure(FetchFailure):
    """The response body was not valid JSON."""


class AsyncHTTPClient:
    """A pooled async HTTP client with a fixed per-request timeout."""

    DEFAULT_USER_AGENT = "BooruSearch/1.0"

    def __init__(
        self,
        timeout: float = 5.0,
        user_agent: Optional[str] = None,
        max_connections: int = 200,
        max_keepalive_connections: int = 50,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the HTTP client.

        Parameters
        ----------
        timeout : float
            Default request timeout in seconds.
        user_agent : str, optional
            ``User-Agent`` header sent with every request.
        max_connections : int
            Size of the shared connection pool.
        max_keepalive_connections : int
            Idle connections kept open for reuse.
        transport : httpx.AsyncBaseTransport, optional
            Custom transport, mainly for tests.
        """
        self._timeout = timeout
        self._user_agent = user_agent or self.DEFAULT_USER_AGENT
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logging.getLogger(self.__class__.__name__)
        self._request_count = 0
        self._failure_count = 0
        self._total_request_time = 0.0

    async def __aenter__(self) -> "AsyncHTTPClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def open(self) -> None:
        if self.is_open:
            return
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers={"User-Agent": self._user_agent, "Accept": "application/json"},
            follow_redirects=True,
            limits=self._limits,
            transport=self._transport,
        )
        self.logger.debug("HTTP client initialized (timeout=%.1fs)", self._timeout)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            if self._request_count > 0:
                self.logger.debug(
                    "HTTP client closed (requests=%d, failures=%d, avg_time=%.2fms)",
                    self._request_count,
                    self._failure_count,
                    self._total_request_time / self._request_count * 1000,
                )

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """GET ``url`` and decode the JSON body.

        Parameters
        ----------
        url : str
            The URL to request.
        params : dict, optional
            Query parameters.
        timeout : float, optional
            Per-request timeout override in seconds.  It bounds the whole
            request, body included.

        Returns
        -------
        Any
            The decoded JSON document.

        Raises
        ------
        RuntimeError
            If the client has not been opened.
        TimeoutFailure, TransportFailure, StatusFailure, ParseFailure
            On any failure; the request is never retried.
        """
        if self._client is None:
            raise RuntimeError("AsyncHTTPClient must be opened before use")

        effective_timeout = timeout if timeout is not None else self._timeout
        start_time = time.monotonic()
        self._request_count += 1
        try:
            # httpx timeouts apply per phase; this caps the whole request.
            async with asyncio.timeout(effective_timeout):
                response = await self._client.get(url, params=params, timeout=effective_timeout)
        except TimeoutError as exc:
            self._failure_count += 1
            raise TimeoutFailure(f"timed out after {effective_timeout}s", url) from exc
        except httpx.TimeoutException as exc:
            self._failure_count += 1
            raise TimeoutFailure(f"timed out: {exc}", url) from exc
        except httpx.HTTPError as exc:
            self._failure_count += 1
            raise TransportFailure(f"request error: {exc}", url) from exc
        finally:
            self._total_request_time += time.monotonic() - start_time

        self.logger.debug(
            "GET %s -> %d (%.2fms)",
            url[:100],
            response.status_code,
            (time.monotonic() - start_time) * 1000,
        )

        if not response.is_success:
            self._failure_count += 1
            raise StatusFailure(
                f"HTTP {response.status_code}", url, status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            self._failure_count += 1
            raise ParseFailure(f"invalid JSON: {exc}", url) from exc

    @property
    def stats(self) -> Dict[str, Any]:
        """Request count, failure count and timing statistics."""
        return {
            "request_count": self._request_count,
            "failure_count": self._failure_count,
            "total_time_ms": self._total_request_time * 1000,
            "avg_time_ms": (
                (self._total_request_time / self._request_count * 1000)
                if self._request_count > 0
                else 0
            ),
        }
