"""
Government Data Service

Queries government scheme data APIs (eligibility lists, beneficiary status,
ration allocations) over httpx. Features include:
- One configured base URL per API name
- A timeout on every call
- Responses cached for 24 hours per API name and parameters
- The last good response served when the API fails, however old it is
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from .error_handling import GovernmentDataError, describe_error, with_timeout

logger = logging.getLogger(__name__)


@dataclass
class GovernmentDataConfig:
    """Endpoints and cache policy for government data APIs"""
    endpoints: Dict[str, str] = field(default_factory=dict)  # API name -> base URL
    api_key: Optional[str] = None
    timeout: float = 2.0
    cache_ttl_seconds: float = 86400.0
    max_connections: int = 10


class GovernmentDataService:
    """Cached, timeout-guarded client for government data APIs"""

    def __init__(
        self,
        config: Optional[GovernmentDataConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config or GovernmentDataConfig()
        self.http_client = http_client or httpx.AsyncClient(
            limits=httpx.Limits(max_connections=self.config.max_connections)
        )
        self._clock = clock
        self._cache: Dict[str, Tuple[Any, float]] = {}

        self.stats = {
            'requests': 0,
            'cache_hits': 0,
            'stale_served': 0,
            'failures': 0
        }

    @staticmethod
    def cache_key(api_name: str, params: Dict[str, Any]) -> str:
        return f"{api_name}:{json.dumps(params, sort_keys=True, default=str)}"

    async def query(self, api_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Return the API's JSON response for these parameters.

        A cached response younger than cache_ttl_seconds is returned without a
        call. When the call fails a cached response of any age is returned
        instead; with nothing cached GovernmentDataError is raised.
        """
        params = params or {}
        key = self.cache_key(api_name, params)
        cached = self._cache.get(key)

        if cached is not None and self._clock() - cached[1] < self.config.cache_ttl_seconds:
            self.stats['cache_hits'] += 1
            return cached[0]

        self.stats['requests'] += 1
        try:
            data = await with_timeout(
                lambda: self._fetch(api_name, params),
                self.config.timeout,
                f"government_api.{api_name}"
            )
        except Exception as e:
            self.stats['failures'] += 1
            logger.error(f"Government API error for {api_name}: {describe_error(e)}")

            if cached is not None:
                self.stats['stale_served'] += 1
                age_hours = (self._clock() - cached[1]) / 3600
                logger.info(f"Returning stale {api_name} data ({age_hours:.1f}h old)")
                return cached[0]

            if isinstance(e, GovernmentDataError):
                raise
            raise GovernmentDataError(f"{api_name} query failed: {e}", original_exception=e) from e

        self._cache[key] = (data, self._clock())
        return data

    async def _fetch(self, api_name: str, params: Dict[str, Any]) -> Any:
        base_url = self.config.endpoints.get(api_name)
        if not base_url:
            raise GovernmentDataError(f"API configuration not found: {api_name}")

        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        response = await self.http_client.get(base_url, params=params, headers=headers)
        if response.status_code >= 400:
            raise GovernmentDataError(
                f"{api_name} request failed ({response.status_code}): {response.reason_phrase}"
            )
        return response.json()

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'cached_items': len(self._cache)}

    async def close(self):
        await self.http_client.aclose()


def create_government_data_service(config: Optional[GovernmentDataConfig] = None) -> GovernmentDataService:
    """Factory function to create GovernmentDataService"""
    return GovernmentDataService(config)
