"""Native ``web.fetch`` tool — HTTP GET restricted to allowlisted URL prefixes."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from orion.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 100_000


class WebFetcher:
    """Fetch allowlisted URLs with a shared :class:`httpx.AsyncClient`.

    Pass *client* to inject a preconfigured client (e.g. with a mock
    transport); otherwise one is created lazily and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._registry = registry
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=False)
        return self._client

    async def fetch(self, args: dict[str, Any]) -> dict[str, Any]:
        url = args.get("url")
        if not url:
            return {"ok": False, "error": "Missing url"}
        url = str(url)
        if not self._registry.is_url_allowed(url):
            return {"ok": False, "error": f"URL not allowed: {url}"}

        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as exc:
            logger.info("web.fetch failed for %s: %s", url, exc)
            return {"ok": False, "error": f"Request failed: {exc}"}

        if response.is_error:
            return {"ok": False, "error": f"HTTP {response.status_code}"}

        text = response.text
        return {
            "ok": True,
            "data": {
                "url": url,
                "status": response.status_code,
                "content_type": response.headers.get("content-type"),
                "text": text[:MAX_BODY_CHARS],
                "truncated": len(text) > MAX_BODY_CHARS,
            },
        }

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
