"""Flow loader SDK for pulling flows from a cardflow server.

so that a worker can fetch the flow a session uses with one line of code
flow = loader.get("flow-123")
"""

from __future__ import annotations

import httpx

from cardflow.errors import CardflowError, FlowImportError
from cardflow.io import import_flow
from cardflow.models.flow import Flow


class FlowLoaderError(CardflowError):
    """Exception raised when flow loading fails."""
    pass


class FlowLoader:
    """Load exported flows from the server, caching by flow id."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: Base URL of the cardflow server
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._cache: dict[str, Flow] = {}

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def get(self, flow_id: str, refresh: bool = False) -> Flow:
        """Fetch a flow's export document and parse it.

        The returned flow is a draft; validate it before running.
        """
        if not refresh and flow_id in self._cache:
            return self._cache[flow_id]

        url = f"{self.base_url}/api/flows/{flow_id}/export"
        try:
            with self._client() as client:
                response = client.get(url)

                if response.status_code == 404:
                    raise FlowLoaderError(f"Flow not found: {flow_id}")

                response.raise_for_status()
                flow = import_flow(response.content)
        except httpx.RequestError as e:
            raise FlowLoaderError(
                f"Failed to connect to server at {self.base_url}: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            raise FlowLoaderError(f"Server error loading flow {flow_id}: {e}") from e
        except FlowImportError as e:
            raise FlowLoaderError(f"Server returned an invalid flow {flow_id}: {e}") from e

        self._cache[flow_id] = flow
        return flow

    def clear_cache(self) -> None:
        self._cache.clear()

    def preload(self, flow_ids: list[str]) -> None:
        for flow_id in flow_ids:
            self.get(flow_id)
