"""HTTP heartbeat probe.

Tries an ordered list of cheap endpoints and reports the server reachable
as soon as one of them answers. Any response below 500 counts as reachable
(a 404 from the static host still proves the network path works).
"""

import logging
from typing import Dict, List, Optional, Sequence

import httpx

from netkeeper.core.errors.network import HttpStatusError

logger = logging.getLogger(__name__)


class HttpHeartbeat:
    """Heartbeat probe that walks an endpoint fallback list with httpx.

    Example:
        probe = HttpHeartbeat(["https://pos.example.com/favicon.ico"])
        await probe()  # raises if every endpoint fails
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        method: str = "HEAD",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not endpoints:
            raise ValueError("HttpHeartbeat requires at least one endpoint")
        self.endpoints: List[str] = list(endpoints)
        self.method = method.upper()
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self.failed_endpoints: Dict[str, int] = {}
        self.last_successful_endpoint: Optional[str] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Cache-Control": "no-cache"},
                follow_redirects=False,
            )
        return self._client

    async def __call__(self) -> None:
        client = self._get_client()
        last_error: Optional[BaseException] = None

        for endpoint in self.endpoints:
            try:
                response = await client.request(self.method, endpoint, timeout=self.timeout)
                if response.status_code >= 500:
                    raise HttpStatusError(
                        response.status_code,
                        headers=dict(response.headers),
                        url=endpoint,
                    )
            except (httpx.HTTPError, HttpStatusError) as e:
                last_error = e
                self.failed_endpoints[endpoint] = self.failed_endpoints.get(endpoint, 0) + 1
                logger.debug("Heartbeat endpoint %s failed: %s", endpoint, e)
                continue

            self.last_successful_endpoint = endpoint
            return

        if last_error is None:
            raise ValueError("HttpHeartbeat has no endpoints configured")
        raise last_error

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
