"""
ActiveCampaign API Client

Thin async wrapper over the ActiveCampaign v3 REST API using httpx.

Features:
- Base URL normalisation (trailing /api/3 is optional in AC_API_URL)
- Api-Token header authentication
- limit/offset pagination helpers (first page reports the total count)
- Endpoint-specific response keys with a first-array fallback

Usage:
    async with ActiveCampaignClient() as client:
        first = await client.fetch_first_page("/contacts", limit=100)
        users = await client.fetch_metadata("/users")
"""

import logging
import re
from typing import Any, Optional

import httpx

from utils.config import settings
from utils.schemas import PageResult

logger = logging.getLogger(__name__)

# Checked in order; "/dealCustomFieldMeta" must win over "/deals"
RECORD_KEYS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("/dealCustomFieldMeta", ("dealCustomFieldMeta",)),
    ("/dealGroups", ("dealGroups",)),
    ("/dealStages", ("dealStages",)),
    ("/contacts", ("contacts",)),
    ("/deals", ("deals",)),
    ("/users", ("users",)),
    ("/fields", ("fields", "fieldOptions")),
)


class ActiveCampaignError(Exception):
    """Non-success response from the ActiveCampaign API."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"ActiveCampaign API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


def normalize_base_url(api_url: str) -> str:
    """Strip a trailing /api/3 and slashes, then append /api/3."""
    base = re.sub(r"/api/3/?$", "", api_url.strip()).rstrip("/")
    return f"{base}/api/3"


def extract_records(payload: dict[str, Any], endpoint: str) -> list[dict[str, Any]]:
    """Pick the record list out of a response body."""
    path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
    for prefix, keys in RECORD_KEYS:
        if path.startswith(prefix):
            for key in keys:
                if payload.get(key):
                    return list(payload[key])
            return []

    for value in payload.values():
        if isinstance(value, list):
            return list(value)

    return []


class ActiveCampaignClient:
    """Async ActiveCampaign API client."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            api_url: Account API URL, defaults to settings.AC_API_URL
            api_key: API token, defaults to settings.AC_API_KEY
            timeout: Request timeout in seconds, defaults to settings.API_TIMEOUT
            transport: Custom httpx transport (tests)

        Raises:
            ValueError: If URL or key is not configured
        """
        api_url = api_url or settings.AC_API_URL
        api_key = api_key or settings.AC_API_KEY
        if not api_url or not api_key:
            raise ValueError("Missing ActiveCampaign credentials: AC_API_URL and AC_API_KEY must be set")

        self.base_url = normalize_base_url(api_url)
        self.metadata_limit = settings.SYNC_METADATA_LIMIT
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Api-Token": api_key, "Content-Type": "application/json"},
            timeout=timeout or settings.API_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "ActiveCampaignClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        GET an endpoint and return the decoded JSON body.

        Raises:
            ActiveCampaignError: On a non-2xx response
            httpx.HTTPError: On transport failures
        """
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        query = {key: value for key, value in (params or {}).items() if value is not None}

        logger.debug("Requesting %s%s params=%s", self.base_url, path, query)

        response = await self._client.get(path, params=query)
        if not response.is_success:
            raise ActiveCampaignError(response.status_code, response.text)

        return response.json()

    async def fetch_first_page(
        self,
        endpoint: str,
        limit: int = 100,
        params: Optional[dict[str, Any]] = None,
    ) -> PageResult:
        """Fetch offset 0 and read the total from meta.total."""
        payload = await self.request(endpoint, {"limit": limit, "offset": 0, **(params or {})})
        records = extract_records(payload, endpoint)
        meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else None

        try:
            total = int(meta["total"]) if meta and meta.get("total") else len(records)
        except (TypeError, ValueError):
            total = len(records)

        return PageResult(records=records, total=total, meta=meta)

    async def fetch_page(
        self,
        endpoint: str,
        page: int,
        limit: int = 100,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Fetch a 1-indexed page."""
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")

        offset = (page - 1) * limit
        payload = await self.request(endpoint, {"limit": limit, "offset": offset, **(params or {})})
        return extract_records(payload, endpoint)

    async def fetch_metadata(self, endpoint: str) -> list[dict[str, Any]]:
        """Fetch a small reference collection in one call."""
        payload = await self.request(endpoint, {"limit": self.metadata_limit})
        return extract_records(payload, endpoint)
