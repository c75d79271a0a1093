"""Tests for healthwatch/probes/base.py — HttpProbe over an httpx mock transport."""

from __future__ import annotations

import httpx
import pytest

from healthwatch.core.config import HealthCheckEndpoint
from healthwatch.probes.base import HttpProbe
from healthwatch.probes.exceptions import ProbeError, ProbeTimeoutError


def _endpoint(**kw: object) -> HealthCheckEndpoint:
    defaults: dict[str, object] = {"name": "Homepage", "url": "https://example.com/health"}
    defaults.update(kw)
    return HealthCheckEndpoint(**defaults)  # type: ignore[arg-type]


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpProbe:
    @pytest.mark.asyncio
    async def test_reports_status_and_latency(self) -> None:
        probe = HttpProbe(_client(lambda req: httpx.Response(204)))
        result = await probe.probe(_endpoint())
        assert result.status_code == 204
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_sends_method_headers_and_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        probe = HttpProbe(_client(handler))
        await probe.probe(_endpoint(method="POST", headers={"X-Probe": "1"}, body='{"ping":1}'))

        assert seen[0].method == "POST"
        assert seen[0].headers["X-Probe"] == "1"
        assert seen[0].content == b'{"ping":1}'

    @pytest.mark.asyncio
    async def test_error_status_is_a_response_not_an_error(self) -> None:
        probe = HttpProbe(_client(lambda req: httpx.Response(503)))
        result = await probe.probe(_endpoint())
        assert result.status_code == 503

    @pytest.mark.asyncio
    async def test_connect_error_raises_probe_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        probe = HttpProbe(_client(handler))
        with pytest.raises(ProbeError, match="refused"):
            await probe.probe(_endpoint())

    @pytest.mark.asyncio
    async def test_timeout_raises_probe_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        probe = HttpProbe(_client(handler))
        with pytest.raises(ProbeTimeoutError):
            await probe.probe(_endpoint())

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        client = _client(lambda req: httpx.Response(200))
        probe = HttpProbe(client)
        await probe.close()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_owned_client(self) -> None:
        probe = HttpProbe()
        client = probe._get_client()
        await probe.close()
        assert client.is_closed
