"""SerpApi.com client for live Google organic results."""

import asyncio
import logging
import os
from typing import Any, Optional

import httpx

from serp_intel.utils.helpers import extract_domain

logger = logging.getLogger(__name__)

SERPAPI_BASE_URL = "https://serpapi.com/search"
API_KEY_ENV_VARS = ("SERPAPI_API_KEY", "SERP_API_KEY")
DEFAULT_LOCATION = "United States"
DEFAULT_RESULT_DEPTH = 20
DEFAULT_TIMEOUT = 30.0


class SerpApiError(Exception):
    """A provider call did not yield usable organic results."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class SerpApiNotConfiguredError(SerpApiError):
    """No API key is available, so no call can be made."""


def api_key_from_env() -> str:
    """Return the first non-empty provider key from the environment."""
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name, "")
        if value:
            return value
    return ""


def parse_organic_results(payload: Any) -> list[dict[str, Any]]:
    """Normalise the ``organic_results`` block of a SerpApi response.

    Each entry becomes ``{position, title, link, snippet, domain}``. Missing
    positions fall back to the 1-based list index; entries without a link
    are dropped.

    Raises:
        SerpApiError: if the payload is not a JSON object or the results
            block is not a list.
    """
    if not isinstance(payload, dict):
        raise SerpApiError("Malformed SerpApi response: expected a JSON object")
    if payload.get("error"):
        raise SerpApiError(f"SerpApi error: {payload['error']}")
    raw = payload.get("organic_results") or []
    if not isinstance(raw, list):
        raise SerpApiError("Malformed SerpApi response: organic_results is not a list")

    results: list[dict[str, Any]] = []
    for idx, item in enumerate(raw, 1):
        if not isinstance(item, dict):
            continue
        link = item.get("link") or ""
        if not link:
            continue
        try:
            position = int(item.get("position") or idx)
        except (TypeError, ValueError):
            position = idx
        results.append({
            "position": position,
            "title": item.get("title") or "",
            "link": link,
            "snippet": item.get("snippet") or "",
            "domain": extract_domain(item.get("domain") or link) or "",
        })
    return results


class SerpApiClient:
    """Async client for the SerpApi Google engine.

    Usage::

        async with SerpApiClient() as client:
            organic = await client.search("plumber orlando", "Orlando, Florida")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        result_depth: int = DEFAULT_RESULT_DEPTH,
        google_domain: str = "google.com",
        gl: str = "us",
        hl: str = "en",
        base_url: str = SERPAPI_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else api_key_from_env()
        self._timeout = timeout
        self._result_depth = result_depth
        self._google_domain = google_domain
        self._gl = gl
        self._hl = hl
        self._base_url = base_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self._api_key:
            logger.warning("SERPAPI_API_KEY not set; SERP lookups are disabled.")

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def result_depth(self) -> int:
        return self._result_depth

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def _build_params(self, keyword: str, location: str) -> dict[str, str]:
        return {
            "api_key": self._api_key,
            "engine": "google",
            "q": keyword,
            "location": location,
            "google_domain": self._google_domain,
            "gl": self._gl,
            "hl": self._hl,
            "num": str(self._result_depth),
        }

    async def search(
        self,
        keyword: str,
        location: str = DEFAULT_LOCATION,
    ) -> list[dict[str, Any]]:
        """Fetch the top organic results for a keyword.

        Returns:
            Normalised organic results in rank order.

        Raises:
            SerpApiNotConfiguredError: no API key.
            SerpApiError: timeout, transport failure, non-2xx status or a
                malformed body.
        """
        if not self._api_key:
            raise SerpApiNotConfiguredError("SERPAPI_API_KEY not configured")

        client = self._get_client()
        # httpx limits each phase separately; the whole call gets one deadline.
        try:
            response = await asyncio.wait_for(
                client.get(self._base_url, params=self._build_params(keyword, location)),
                timeout=self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise SerpApiError(
                f"SerpApi timed out after {self._timeout}s", retryable=True
            ) from exc
        except httpx.HTTPError as exc:
            raise SerpApiError(f"SerpApi transport error: {exc}", retryable=True) from exc

        if response.status_code != 200:
            status = response.status_code
            raise SerpApiError(
                f"SerpApi returned {status}",
                status_code=status,
                retryable=status == 429 or status >= 500,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise SerpApiError("Malformed SerpApi response: body is not JSON") from exc

        results = parse_organic_results(payload)
        logger.debug("SerpApi %r (%s): %d organic results", keyword, location, len(results))
        return results

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
