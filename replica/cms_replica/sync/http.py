"""
HTTP delta-sync client for the delivery API.

Implements only the sync endpoint:
    GET /spaces/<space>/environments/<env>/sync?initial=true
    GET /spaces/<space>/environments/<env>/sync?sync_token=<token>

A response is paged. Each page carries nextPageUrl until the last one,
which carries nextSyncUrl holding the token for the next incremental sync.

Invariants:
    - sync() returns only after every page has been fetched
    - 429 responses are retried after the X-Contentful-RateLimit-Reset delay
    - Any other non-200 response raises SyncRequestError

How to change safely:
    - Test paging with multi-page fixtures before changing the loop
    - Keep retry policy here; the sync engine never retries
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..store.types import ItemKind, SyncItem, item_kind, sys_of
from .base import (
    SyncCollection,
    SyncConnectionError,
    SyncError,
    SyncQuery,
    SyncRequestError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_RESET_HEADER = "X-Contentful-RateLimit-Reset"


class SyncPage(BaseModel):
    """One page of a sync response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_url: Optional[str] = Field(default=None, alias="nextPageUrl")
    next_sync_url: Optional[str] = Field(default=None, alias="nextSyncUrl")


class HttpSyncClient:
    """Sync-only client for the delivery API, built on httpx.

    Attributes:
        space_id: Space to sync
        environment: Environment within the space
        base_url: API base URL

    Example:
        >>> client = HttpSyncClient(space_id="xxxxxx", access_token="...")
        >>> await client.connect()
        >>> collection = await client.sync(SyncQuery.initial_sync())
        >>> await client.close()
    """

    def __init__(
        self,
        space_id: str,
        access_token: str,
        environment: str = "master",
        base_url: str = "https://cdn.contentful.com",
        timeout_seconds: float = 30.0,
        max_rate_limit_wait_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            space_id: Space identifier
            access_token: Delivery API token
            environment: Environment identifier
            base_url: API base URL
            timeout_seconds: Per-request timeout
            max_rate_limit_wait_seconds: Cap on the wait after a 429
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.space_id = space_id
        self.environment = environment
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_rate_limit_wait_seconds = max_rate_limit_wait_seconds
        self._access_token = access_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def sync_path(self) -> str:
        return f"/spaces/{self.space_id}/environments/{self.environment}/sync"

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self.timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )
        logger.info(
            "Sync client connected",
            extra={"base_url": self.base_url, "space_id": self.space_id, "environment": self.environment},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def sync(self, query: SyncQuery) -> SyncCollection:
        """Fetch every page of a sync and group the items by kind.

        Args:
            query: Initial or continuation query

        Returns:
            SyncCollection with the token from the last page's nextSyncUrl

        Raises:
            SyncConnectionError: If not connected or the request fails in transport
            SyncRequestError: On a non-200, non-429 response
            SyncError: If a page cannot be parsed
        """
        if not self._client:
            raise SyncConnectionError("Not connected")

        params = {"initial": "true"} if query.initial else {"sync_token": query.next_sync_token}
        groups: Dict[ItemKind, List[SyncItem]] = {kind: [] for kind in ItemKind}

        page = await self._get_page(self.sync_path, params)
        pages = 1
        self._collect(groups, page)

        while page.next_page_url:
            page = await self._get_page(page.next_page_url)
            pages += 1
            self._collect(groups, page)

        token = self._token_from_url(page.next_sync_url)

        collection = SyncCollection(
            next_sync_token=token,
            entries=groups[ItemKind.ENTRY],
            assets=groups[ItemKind.ASSET],
            deleted_entries=groups[ItemKind.DELETED_ENTRY],
            deleted_assets=groups[ItemKind.DELETED_ASSET],
        )
        logger.debug(
            "Fetched sync response",
            extra={"initial": query.initial, "pages": pages, "items": len(collection)},
        )
        return collection

    async def _get_page(self, url: str, params: Optional[Dict[str, str]] = None) -> SyncPage:
        if self._client is None:
            raise SyncConnectionError("Not connected")

        while True:
            try:
                response = await self._client.get(url, params=params)
            except httpx.TransportError as e:
                raise SyncConnectionError(f"Sync request failed: {e}") from e

            if response.status_code == 429:
                reset = response.headers.get(RATE_LIMIT_RESET_HEADER)
                if reset is None:
                    raise SyncError(f"Rate-limited with no {RATE_LIMIT_RESET_HEADER} header")
                delay = min(float(reset), self.max_rate_limit_wait_seconds)
                logger.warning("Rate limited by sync API", extra={"retry_in_seconds": delay})
                await asyncio.sleep(delay)
                continue

            if response.status_code != 200:
                raise SyncRequestError(
                    response.status_code,
                    str(response.request.url).split("?", 1)[0],
                )

            try:
                return SyncPage.model_validate(response.json())
            except ValueError as e:
                raise SyncError(f"Invalid sync page: {e}") from e

    def _collect(self, groups: Dict[ItemKind, List[SyncItem]], page: SyncPage) -> None:
        for item in page.items:
            kind = item_kind(item)
            if kind is None:
                logger.warning(
                    "Skipping sync item of unknown type",
                    extra={"type": sys_of(item).get("type")},
                )
                continue
            groups[kind].append(item)

    @staticmethod
    def _token_from_url(url: Optional[str]) -> str:
        if not url:
            raise SyncError("Last sync page has no nextSyncUrl")
        tokens = parse_qs(urlparse(url).query).get("sync_token")
        if not tokens:
            raise SyncError("nextSyncUrl carries no sync_token")
        return tokens[0]
