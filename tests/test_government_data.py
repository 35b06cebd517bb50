"""
Tests for the government data service

Tests cover:
- Query parameters and authorization over an httpx MockTransport
- 24 hour response cache and its expiry
- Stale cached data served when the API fails
- Timeouts and unknown API names
"""

import asyncio

import httpx
import pytest

from sevak.error_handling import GovernmentDataError
from sevak.government_data import GovernmentDataConfig, GovernmentDataService

from tests.fixtures.fakes import FakeClock

BENEFICIARY_URL = "https://api.example.gov.in/pm-kisan/beneficiary"
STATUS = {"beneficiary_id": "UP123", "installments_paid": 14}


def make_service(handler, clock=None, **config):
    config.setdefault("endpoints", {"pm_kisan_status": BENEFICIARY_URL})
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GovernmentDataService(GovernmentDataConfig(**config), http_client=client, clock=clock or FakeClock())


class ScriptedHandler:
    """MockTransport handler replaying a list of responses"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TestQuery:
    """Test API calls"""

    @pytest.mark.asyncio
    async def test_query_sends_params_and_key(self):
        handler = ScriptedHandler(httpx.Response(200, json=STATUS))
        service = make_service(handler, api_key="gov-key")

        data = await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})

        assert data == STATUS
        request = handler.requests[0]
        assert str(request.url) == f"{BENEFICIARY_URL}?beneficiary_id=UP123"
        assert request.headers["Authorization"] == "Bearer gov-key"
        await service.close()

    @pytest.mark.asyncio
    async def test_unknown_api_raises(self):
        service = make_service(ScriptedHandler())

        with pytest.raises(GovernmentDataError, match="not found"):
            await service.query("ration_allocation", {"state": "UP"})

        assert service.stats['failures'] == 1

    @pytest.mark.asyncio
    async def test_http_error_without_cache_raises(self):
        service = make_service(ScriptedHandler(httpx.Response(503)))

        with pytest.raises(GovernmentDataError, match="503"):
            await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})

    @pytest.mark.asyncio
    async def test_slow_api_times_out(self):
        async def slow_handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=STATUS)

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
        service = GovernmentDataService(
            GovernmentDataConfig(endpoints={"pm_kisan_status": BENEFICIARY_URL}, timeout=0.01),
            http_client=client
        )

        with pytest.raises(GovernmentDataError, match="pm_kisan_status"):
            await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})


class TestCache:
    """Test caching and stale fallback"""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_call(self):
        clock = FakeClock()
        handler = ScriptedHandler(httpx.Response(200, json=STATUS))
        service = make_service(handler, clock)

        await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})
        clock.advance(23 * 3600)
        data = await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})

        assert data == STATUS
        assert len(handler.requests) == 1
        assert service.stats['cache_hits'] == 1

    @pytest.mark.asyncio
    async def test_params_are_part_of_the_key(self):
        handler = ScriptedHandler(httpx.Response(200, json=STATUS), httpx.Response(200, json={"beneficiary_id": "UP999"}))
        service = make_service(handler)

        await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})
        data = await service.query("pm_kisan_status", {"beneficiary_id": "UP999"})

        assert data == {"beneficiary_id": "UP999"}
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_is_refreshed(self):
        clock = FakeClock()
        updated = {**STATUS, "installments_paid": 15}
        handler = ScriptedHandler(httpx.Response(200, json=STATUS), httpx.Response(200, json=updated))
        service = make_service(handler, clock)

        await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})
        clock.advance(24 * 3600)
        data = await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})

        assert data == updated
        assert len(handler.requests) == 2
        assert service.stats['cache_hits'] == 0

    @pytest.mark.asyncio
    async def test_stale_data_served_on_error(self):
        """An expired entry is still better than no answer"""
        clock = FakeClock()
        handler = ScriptedHandler(
            httpx.Response(200, json=STATUS),
            httpx.ConnectError("connection refused")
        )
        service = make_service(handler, clock)

        await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})
        clock.advance(72 * 3600)
        data = await service.query("pm_kisan_status", {"beneficiary_id": "UP123"})

        assert data == STATUS
        assert service.stats['stale_served'] == 1
        assert service.stats['failures'] == 1
        assert service.get_stats()['cached_items'] == 1
