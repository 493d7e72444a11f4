"""GraphQL executor for running a finished query against an endpoint.

Handles HTTP communication, timeouts, and response parsing. GraphQL-level
errors are returned alongside data rather than raised.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from .errors import UpstreamError, UpstreamTimeoutError
from .schema import mask_url

logger = logging.getLogger(__name__)

RESPONSE_PARSE_TIMEOUT = 5.0


@dataclass
class ExecutionResult:
    """Decoded response of one request."""
    data: Any = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    elapsed_ms: float = 0.0


class GraphQLExecutor:
    """Executes GraphQL documents against an endpoint.

    Examples:
        executor = GraphQLExecutor("https://api.example.com/graphql")
        result = await executor.execute(query, {"id": "1"}, headers={"Authorization": "..."})
        await executor.close()
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the executor.

        Args:
            url: GraphQL endpoint URL
            timeout: Default request timeout in seconds
            transport: Optional httpx transport (used to fake the endpoint in tests)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        operation_name: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ExecutionResult:
        """Execute a raw GraphQL document.

        Args:
            query: GraphQL document text
            variables: Variable values, keyed without the ``$``
            operation_name: Operation to run when the document names one
            headers: Extra request headers
            timeout: Overrides the default timeout for this request

        Returns:
            The decoded data and errors

        Raises:
            UpstreamTimeoutError: If the endpoint does not answer in time
            UpstreamError: On transport failures, HTTP errors, or malformed responses
        """
        limit = timeout or self.timeout
        client = await self._get_client()

        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        if operation_name:
            payload["operationName"] = operation_name

        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                client.post(self.url, json=payload, headers=headers or {}, timeout=limit),
                timeout=limit,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise UpstreamTimeoutError(f"Query execution timed out after {limit} seconds") from None
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to {mask_url(self.url)} failed: {e}") from e
        elapsed_ms = (time.perf_counter() - started) * 1000

        if response.is_error:
            raise UpstreamError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(response.json), timeout=RESPONSE_PARSE_TIMEOUT
            )
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError("Response parsing timed out") from None
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON response: {e}") from e

        if not isinstance(result, dict):
            raise UpstreamError("Invalid response: expected a JSON object")

        logger.info("Executed query against %s in %.0fms", mask_url(self.url), elapsed_ms)
        return ExecutionResult(
            data=result.get("data"),
            errors=list(result.get("errors") or []),
            elapsed_ms=elapsed_ms,
        )
