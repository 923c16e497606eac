"""
HTTP resolver.

Resolves batches through a JSON endpoint that answers
``GET {path}?ids=1,2,3`` with an object keyed by identifier.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from batchcache.config import BatcherConfig, get_config
from batchcache.resolver.interface import Resolver, ResolverFailure

logger = structlog.get_logger(__name__)


class HttpResolver(Resolver):
    """
    Batch resolver backed by an HTTP endpoint.

    The response body must be a JSON object such as
    ``{"1": {...}, "2": {...}}``; keys are converted back to integers.
    """

    def __init__(
        self,
        config: Optional[BatcherConfig] = None,
        base_url: Optional[str] = None,
        path: Optional[str] = None,
        ids_param: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP resolver.

        Args:
            config: Batcher configuration. Uses global config if not provided.
            base_url: Overrides ``config.resolver_url``
            path: Overrides ``config.resolver_path``
            ids_param: Overrides ``config.resolver_ids_param``
            transport: Custom httpx transport (used for testing)
        """
        self.config = config or get_config()
        self.base_url = base_url or self.config.resolver_url
        self.path = path if path is not None else self.config.resolver_path
        self.ids_param = ids_param or self.config.resolver_ids_param
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return

        if not self.base_url:
            raise ResolverFailure("Resolver URL not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=self.config.resolver_timeout_seconds,
            transport=self._transport,
        )
        logger.info("http_resolver_connected", base_url=self.base_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("http_resolver_disconnected")

    async def __aenter__(self) -> "HttpResolver":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def resolve(self, batch: List[int]) -> Dict[int, Any]:
        """Fetch values for a batch from the endpoint."""
        if not self._client:
            await self.connect()

        params = {self.ids_param: ",".join(str(i) for i in batch)}

        try:
            response = await self._client.get(self.path, params=params)
        except httpx.RequestError as e:
            logger.error("http_resolver_request_error", path=self.path, error=str(e))
            raise ResolverFailure(f"Resolver request failed: {e}", batch)

        if not response.is_success:
            logger.error(
                "http_resolver_request_failed",
                path=self.path,
                status=response.status_code,
                error=response.text,
            )
            raise ResolverFailure(f"Resolver API error ({response.status_code}): {response.text}", batch)

        try:
            data = response.json()
        except ValueError as e:
            raise ResolverFailure(f"Resolver returned invalid JSON: {e}", batch)

        return decode_results(data, batch)


def decode_results(data: Any, batch: List[int]) -> Dict[int, Any]:
    """
    Convert a decoded JSON object into an identifier-keyed mapping.

    Raises:
        ResolverFailure: If the payload is not an object or a key is not an integer
    """
    if not isinstance(data, dict):
        raise ResolverFailure(
            f"Resolver returned {type(data).__name__}, expected an object", batch
        )

    results = {}
    for key, value in data.items():
        try:
            results[int(key)] = value
        except (TypeError, ValueError):
            raise ResolverFailure(f"Resolver returned non-integer key {key!r}", batch)
    return results
