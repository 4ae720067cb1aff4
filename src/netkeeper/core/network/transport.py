"""HTTP transport for the resilient client.

``RequestDescriptor`` is the serializable description of a call; it is what
the offline queue stores and what replay turns back into a request.
``HttpTransport`` performs the call with httpx and raises ``HttpStatusError``
for any status >= 400 so the classifier can see the status and headers.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, Field, field_validator

from netkeeper.core.errors.network import HttpStatusError
from netkeeper.core.network.models import QueuedOperation

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
IDEMPOTENCY_HEADER = "Idempotency-Key"
MAX_ERROR_BODY = 2000


class RequestDescriptor(BaseModel):
    """Serializable description of an HTTP request."""

    method: str = Field(default="GET", description="HTTP method")
    url: str = Field(..., min_length=1, description="Absolute URL or path relative to the base URL")
    json_body: Optional[Any] = Field(None, description="JSON request body")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    idempotency_key: Optional[str] = Field(None, max_length=128, description="Idempotency key")

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def is_write(self) -> bool:
        return self.method in WRITE_METHODS

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RequestDescriptor":
        return cls.model_validate(payload)


class HttpTransport:
    """Sends ``RequestDescriptor`` objects with an ``httpx.AsyncClient``.

    Args:
        base_url: Prefix for relative descriptor URLs
        timeout: Request timeout in seconds
        headers: Headers sent with every request
        client: Pre-built client (tests pass one with ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._headers = dict(headers or {})
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers,
            )
        return self._client

    async def send(self, descriptor: RequestDescriptor) -> Any:
        """Perform the request.

        Returns:
            Decoded JSON body, the text body when it is not JSON, or None
            for empty responses

        Raises:
            HttpStatusError: For responses with status >= 400
            httpx.HTTPError: For transport failures
        """
        headers = dict(descriptor.headers)
        if descriptor.idempotency_key:
            headers.setdefault(IDEMPOTENCY_HEADER, descriptor.idempotency_key)

        response = await self._get_client().request(
            descriptor.method,
            descriptor.url,
            json=descriptor.json_body,
            headers=headers,
        )

        if response.status_code >= 400:
            raise HttpStatusError(
                response.status_code,
                headers=dict(response.headers),
                body=response.text[:MAX_ERROR_BODY],
                url=str(response.request.url),
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def operation(self, descriptor: RequestDescriptor) -> Callable[[], Awaitable[Any]]:
        """Zero-argument callable suitable for the retry executor."""

        async def _op() -> Any:
            return await self.send(descriptor)

        return _op

    async def replay(self, operation: QueuedOperation) -> Any:
        """Re-issue a queued operation."""
        descriptor = RequestDescriptor.from_payload(operation.payload_descriptor)
        logger.debug("Replaying %s %s (operation %s)", descriptor.method, descriptor.url, operation.id)
        return await self.send(descriptor)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
