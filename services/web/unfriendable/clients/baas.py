"""
Backend-as-a-service facade.

One shared httpx.AsyncClient (opened in the app lifespan) backs the query
and auth interfaces; realtime connections are opened per live view.

  baas_client.rest(token)      → RestClient acting as the signed-in user
  baas_client.auth             → AuthClient
  baas_client.realtime(token)  → RealtimeClient (not yet connected)
"""
import logging
from typing import Optional

import httpx

from unfriendable.clients.auth_client import AuthClient
from unfriendable.clients.realtime_client import RealtimeClient
from unfriendable.clients.rest_client import RestClient
from unfriendable.config import settings

logger = logging.getLogger(__name__)


class BaasClient:
    def __init__(self, http: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = settings.baas_url
        self._http = http

    async def start(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, timeout=settings.baas_timeout
            )
            logger.info("BaaS client ready → %s", self.base_url)

    async def stop(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("BaaS client not started; call start() at startup")
        return self._http

    @property
    def auth(self) -> AuthClient:
        return AuthClient(self.http, settings.baas_anon_key)

    def rest(self, access_token: Optional[str] = None) -> RestClient:
        return RestClient(self.http, settings.baas_anon_key, access_token)

    def realtime(self, access_token: Optional[str] = None) -> RealtimeClient:
        return RealtimeClient(
            settings.baas_realtime_url, settings.baas_anon_key, access_token
        )


# Singleton instance shared across requests
baas_client = BaasClient()
