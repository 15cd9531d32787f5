"""
Sync item shapes and helpers.

Items are kept in their wire form (plain JSON-compatible dicts) so that
they round-trip through backups and can be returned unprojected for
locale="*" lookups.

Sync item (all-locales form, as returned by the sync API):
    {
        "sys": {"id": "abc", "type": "Entry", "createdAt": "...",
                "updatedAt": "...", "contentType": {"sys": {"id": "post", ...}}},
        "fields": {"title": {"en-US": "Hello", "de": "Hallo"}}
    }

Tombstone:
    {"sys": {"id": "abc", "type": "DeletedEntry", "updatedAt": "...", "deletedAt": "..."}}

Link placeholder:
    {"sys": {"type": "Link", "linkType": "Entry", "id": "abc"}}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SyncItem = Dict[str, Any]
Entity = Dict[str, Any]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


class ItemKind(Enum):
    """Discriminant carried in sys.type."""

    ENTRY = "Entry"
    ASSET = "Asset"
    DELETED_ENTRY = "DeletedEntry"
    DELETED_ASSET = "DeletedAsset"

    @property
    def is_entry_kind(self) -> bool:
        """Whether items of this kind live in the entries mapping."""
        return self in (ItemKind.ENTRY, ItemKind.DELETED_ENTRY)

    @property
    def is_tombstone(self) -> bool:
        return self in (ItemKind.DELETED_ENTRY, ItemKind.DELETED_ASSET)


@dataclass
class Collection:
    """A page of query results.

    Attributes:
        total: Number of matches before pagination
        skip: Number of matches skipped
        limit: Page size requested (0 means unbounded)
        items: Locale-projected entities in this page
    """

    total: int
    skip: int
    limit: int
    items: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "skip": self.skip,
            "limit": self.limit,
            "items": self.items,
        }


def sys_of(item: Any) -> Dict[str, Any]:
    """Return the sys block of an item, or an empty dict."""
    if isinstance(item, dict):
        sys = item.get("sys")
        if isinstance(sys, dict):
            return sys
    return {}


def item_kind(item: Any) -> Optional[ItemKind]:
    """Return the kind of a sync item, or None if sys.type is unknown."""
    try:
        return ItemKind(sys_of(item).get("type"))
    except ValueError:
        return None


def item_id(item: Any) -> Optional[str]:
    return sys_of(item).get("id")


def content_type_id(item: Any) -> Optional[str]:
    """Return the content type id of an entry, or None for assets and tombstones."""
    content_type = sys_of(item).get("contentType")
    return sys_of(content_type).get("id")


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp as sent by the sync API.

    Fractional seconds of any precision are accepted. Missing or
    unparseable values sort before every real timestamp.
    """
    if not value:
        return _EPOCH
    text = value
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only takes 3 or 6 fraction digits before Python 3.11
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable timestamp, treating as oldest", extra={"value": value})
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def updated_at(item: Any) -> datetime:
    """Recency of a sync item; tombstones without updatedAt use deletedAt."""
    sys = sys_of(item)
    return parse_timestamp(sys.get("updatedAt") or sys.get("deletedAt"))


def is_link(value: Any) -> bool:
    """Whether value is a link placeholder to an entry or asset."""
    sys = sys_of(value)
    return (
        sys.get("type") == "Link"
        and sys.get("linkType") in ("Entry", "Asset")
        and isinstance(sys.get("id"), str)
    )


def is_entry_link(value: Any) -> bool:
    return is_link(value) and sys_of(value)["linkType"] == "Entry"


def is_asset_link(value: Any) -> bool:
    return is_link(value) and sys_of(value)["linkType"] == "Asset"
