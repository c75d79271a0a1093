"""Probe interface and the httpx-backed production probe."""

from __future__ import annotations

import abc
import time

import httpx

from healthwatch.core.config import HealthCheckEndpoint
from healthwatch.core.types import ProbeResult
from healthwatch.probes.exceptions import ProbeError, ProbeTimeoutError


class Probe(abc.ABC):
    """Issues one request against an endpoint and reports status + latency."""

    @abc.abstractmethod
    async def probe(self, endpoint: HealthCheckEndpoint) -> ProbeResult:
        """Perform a single attempt.

        Raises:
            ProbeError: the target could not be reached.
        """

    async def close(self) -> None:
        """Release resources (HTTP clients, etc.)."""


class HttpProbe(Probe):
    """Probes HTTP endpoints with a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._http = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._http

    async def probe(self, endpoint: HealthCheckEndpoint) -> ProbeResult:
        client = self._get_client()
        started = time.perf_counter()
        try:
            resp = await client.request(
                endpoint.method,
                endpoint.url,
                headers=endpoint.headers or None,
                content=endpoint.body,
                timeout=httpx.Timeout(endpoint.timeout_secs),
            )
        except httpx.TimeoutException as exc:
            raise ProbeTimeoutError(
                f"{endpoint.name}: timed out after {endpoint.timeout_secs}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProbeError(f"{endpoint.name}: {exc}") from exc

        latency_ms = (time.perf_counter() - started) * 1000.0
        return ProbeResult(status_code=resp.status_code, latency_ms=latency_ms)

    async def close(self) -> None:
        if self._http is not None and self._owns_client and not self._http.is_closed:
            await self._http.aclose()
        self._http = None
