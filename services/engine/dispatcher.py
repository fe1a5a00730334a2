"""
Outbound HTTP dispatch to external workers and system edge receivers.
"""

from typing import Any, Dict, Optional

import httpx

from core.errors import ExternalDispatchError
from core.logging_config import get_logger

logger = get_logger(__name__)


class WorkerDispatcher:
    """Fire-and-forget POSTs; the worker reports back via the callback URL."""

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def callback_url(self, run_id: str, node_id: str) -> str:
        return f"{self.base_url}/callback/{run_id}/{node_id}"

    def build_payload(self, run_id: str, node_id: str, config: Dict[str, Any], input: Any) -> Dict[str, Any]:
        return {
            "run_id": run_id,
            "node_id": node_id,
            "config": config,
            "input": input,
            "callback_url": self.callback_url(run_id, node_id),
        }

    async def dispatch(self, url: Optional[str], payload: Dict[str, Any]) -> int:
        """
        POST ``payload`` to ``url`` and return the status code.

        Raises ExternalDispatchError for a missing or invalid URL, a timeout,
        a network error or a non-2xx response.
        """
        if not url or not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ExternalDispatchError(f"Invalid worker URL: {url!r}")

        try:
            response = await self.client.post(url, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ExternalDispatchError(f"Worker request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ExternalDispatchError(f"Worker request failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise ExternalDispatchError(
                f"Worker responded with status {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug(f"Dispatched to {url}: {response.status_code}")
        return response.status_code

    async def aclose(self):
        await self.client.aclose()
