from typing import Any, Dict, Optional

import httpx

from agent.errors import ArgumentError, ExecutionError
from core.config import settings
from core.logger import logger


class SearchClient:
    """Google Custom Search JSON API."""

    def __init__(self, api_key: Optional[str] = None, engine_id: Optional[str] = None,
                 max_results: Optional[int] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.GOOGLE_API_KEY
        self.engine_id = engine_id or settings.GOOGLE_SEARCH_ENGINE_ID
        self.max_results = max_results or settings.SEARCH_MAX_RESULTS
        self.timeout = timeout or settings.SEARCH_TIMEOUT
        self.transport = transport

    async def search(self, query: str) -> Dict[str, Any]:
        if not self.api_key or not self.engine_id:
            raise ExecutionError("Google Search API key and Search Engine ID are required")

        params = {"key": self.api_key, "cx": self.engine_id, "q": query}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(settings.SEARCH_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExecutionError(f"Google Search API error: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExecutionError(f"Google Search request failed: {e}") from e

        results = [
            {"title": item.get("title"), "link": item.get("link"), "snippet": item.get("snippet")}
            for item in data.get("items", [])[:self.max_results]
        ]
        logger.info(f"Found {len(results)} search results", extra={"query": query})
        return {"query": query, "results": results}


class ProxyClient:
    """POSTs JSON to a path on the configured proxy host (AIPipe by default)."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.PROXY_BASE_URL).rstrip("/")
        self.token = token or settings.PROXY_TOKEN or settings.API_KEY
        self.timeout = timeout or settings.PROXY_TIMEOUT
        self.transport = transport

    async def call(self, endpoint: str, data: Dict[str, Any]) -> Any:
        # only paths on the proxy host; "//host" or "@host" would leave it
        if not endpoint.startswith("/") or endpoint.startswith("//"):
            raise ArgumentError(f"Endpoint must be a path starting with '/': {endpoint!r}")

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}{endpoint}", json=data, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExecutionError(f"Proxy API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExecutionError(f"Proxy request failed: {e}") from e

        logger.info(f"Proxy call completed to {endpoint}")
        try:
            return response.json()
        except ValueError:
            return response.text
