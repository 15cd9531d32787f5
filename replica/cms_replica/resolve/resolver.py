"""
Link resolution for the CMS replica.

Entries reference other entries and assets through link placeholders:
    {"sys": {"type": "Link", "linkType": "Entry", "id": "abc"}}

The LinkResolver wraps a ContentStore and replaces placeholders with the
linked entities, recursively, down to a requested depth.

Invariants:
    - Each distinct link is fetched at most once per top-level resolve
    - Two links to the same target resolve to the same object
    - Cycles terminate: a link seen before reuses the memoized object,
      even if that object is still being resolved
    - Below the requested depth, placeholders are left untouched
    - Above it, a link to a missing or deleted target becomes None, both
      in single-valued fields and in list slots, so list positions hold

How to change safely:
    - Keep the memo scoped to one top-level call; sharing it across calls
      would leak objects between results
    - MAX_INCLUDE_DEPTH is a safety bound, not a business rule
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from ..errors import MaxDepthExceeded
from ..store.base import ContentStore
from ..store.types import Collection, Entity, is_link, sys_of

logger = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 10

Memo = Dict[Tuple[str, str], Optional[Entity]]


class LinkResolver:
    """Query surface that resolves links in returned entries.

    Implements the ContentStore protocol by delegating to an inner store.

    Example:
        >>> resolver = LinkResolver(store)
        >>> page = await resolver.get_entries({"content_type": "talk", "include": 2})
        >>> page.items[0]["fields"]["speaker"]["fields"]["name"]
        'Nate W'
    """

    def __init__(self, store: ContentStore, max_depth: int = MAX_INCLUDE_DEPTH) -> None:
        """Initialize the resolver.

        Args:
            store: Store to read entities from
            max_depth: Largest include depth accepted
        """
        self.store = store
        self.max_depth = max_depth

    async def get_entry(
        self,
        entry_id: str,
        locale: Optional[str] = None,
        include: int = 0,
    ) -> Optional[Entity]:
        """Get an entry with links resolved to include levels.

        Raises:
            MaxDepthExceeded: If include is above max_depth
        """
        depth = self._check_depth(include)
        entry = await self.store.get_entry(entry_id, locale=locale)
        if entry is None or not depth:
            return entry
        return await self.resolve_entry(entry, depth)

    async def get_asset(self, asset_id: str, locale: Optional[str] = None) -> Optional[Entity]:
        return await self.store.get_asset(asset_id, locale=locale)

    async def get_entries(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        """Query entries, resolving each item to query["include"] levels.

        Raises:
            MaxDepthExceeded: If include is above max_depth; raised before
                the store is queried
        """
        depth = self._check_depth((query or {}).get("include"))
        result = await self.store.get_entries(query)
        if not depth:
            return result

        for i, item in enumerate(result.items):
            result.items[i] = await self.resolve_entry(item, depth)
        return result

    async def get_assets(self, query: Optional[Dict[str, Any]] = None) -> Collection:
        return await self.store.get_assets(query)

    async def resolve_entry(
        self,
        entity: Entity,
        depth: int,
        memo: Optional[Memo] = None,
    ) -> Entity:
        """Replace link placeholders in entity's fields, in place.

        A link whose target is missing becomes None, in list fields too, so
        list positions are preserved.

        Args:
            entity: Denormalized entry (as returned by the store)
            depth: Levels of links to follow; <= 0 returns entity unchanged
            memo: Links already fetched during this top-level call

        Returns:
            entity, with links resolved
        """
        if depth <= 0:
            return entity
        if memo is None:
            memo = {}

        locale = sys_of(entity).get("locale")
        fields = entity.get("fields") or {}

        for name, value in list(fields.items()):
            if isinstance(value, list):
                resolved = []
                for element in value:
                    if not is_link(element):
                        resolved.append(element)
                        continue
                    resolved.append(await self._resolve_link(element, depth, memo, locale))
                fields[name] = resolved
            elif is_link(value):
                fields[name] = await self._resolve_link(value, depth, memo, locale)

        return entity

    async def _resolve_link(
        self,
        link: Dict[str, Any],
        depth: int,
        memo: Memo,
        locale: Optional[str],
    ) -> Optional[Entity]:
        link_type = link["sys"]["linkType"]
        key = (link_type, link["sys"]["id"])
        if key in memo:
            return memo[key]

        if link_type == "Entry":
            target = await self.store.get_entry(key[1], locale=locale)
        else:
            target = await self.store.get_asset(key[1], locale=locale)

        # Memoize before recursing so a cycle back to this id stops here
        memo[key] = target
        if target is None:
            logger.debug("Unresolvable link", extra={"link_type": link_type, "id": key[1]})
        elif link_type == "Entry":
            await self.resolve_entry(target, depth - 1, memo)

        return target

    def _check_depth(self, include: Any) -> int:
        depth = int(include or 0)
        if depth > self.max_depth:
            raise MaxDepthExceeded(depth, self.max_depth)
        return max(depth, 0)
