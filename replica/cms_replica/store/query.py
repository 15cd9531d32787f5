"""
Query filter engine.

Turns a flat dict of delivery-API style query parameters into predicates
over stored sync items.

Query keys:
    content_type            entries of this content type (assets never match)
    id                      shorthand for sys.id
    sys.<path>              a path under sys
    fields.<path> / <name>  a field, projected to one locale
    <key>[op]               op is one of eq, ne, in, gt, gte, lt, lte (default eq)

Reserved keys (skip, limit, locale, include) are pagination and rendering
options and never become filters.

Invariants:
    - Filters combine with logical AND
    - Parsing fails before any item is examined
    - Relational operators never raise on missing or incomparable values
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from ..errors import UnsupportedOperator
from .locale import ALL_LOCALES, project_value
from .types import SyncItem, content_type_id, item_kind, sys_of

logger = logging.getLogger(__name__)

Filter = Callable[[SyncItem], bool]
Selector = Callable[[SyncItem], Any]

RESERVED_KEYS = frozenset({"skip", "limit", "locale", "include"})
SYS_SHORTHANDS = frozenset({"id"})

_OPERATOR_SUFFIX = re.compile(r"\[(?P<op>\w+)\]$")


def parse_query(
    query: Optional[Dict[str, Any]],
    default_locale: str,
) -> List[Filter]:
    """Parse query parameters into a list of filters.

    Args:
        query: Query parameters; None or empty means no filters
        default_locale: Store default locale, used when the query has no
            locale and as the fallback for missing translations

    Returns:
        Filters; an item matches when every filter returns True

    Raises:
        UnsupportedOperator: If a key uses an unknown operator suffix
    """
    if not query:
        return []

    locale = query.get("locale")
    if not locale or locale == ALL_LOCALES:
        locale = default_locale

    filters: List[Filter] = []
    for key, expected in query.items():
        if key in RESERVED_KEYS:
            continue
        if key == "content_type":
            filters.append(_content_type_filter(expected))
            continue

        path, op = split_operator(key)
        build = OPERATORS.get(op)
        if build is None:
            raise UnsupportedOperator(op, key)

        filters.append(build(selector(path, locale, default_locale), expected))

    return filters


def matches(item: SyncItem, filters: List[Filter]) -> bool:
    """Whether item satisfies every filter."""
    return all(f(item) for f in filters)


def split_operator(key: str) -> tuple[str, str]:
    """Split "fields.slug[ne]" into ("fields.slug", "ne")."""
    match = _OPERATOR_SUFFIX.search(key)
    if match:
        return key[: match.start()], match.group("op")
    return key, "eq"


def normalize_path(path: str) -> str:
    """Qualify a bare key as a field path, and id as sys.id."""
    if path in SYS_SHORTHANDS:
        return "sys." + path
    if path.startswith("fields.") or path.startswith("sys."):
        return path
    return "fields." + path


def selector(path: str, locale: str, default_locale: str) -> Selector:
    """Build a function that extracts the value at path from an item.

    Items that already carry sys.locale are single-locale and return the raw
    value. Stored items are all-locales, so a per-locale dict is projected
    to locale with fallback to default_locale.
    """
    parts = normalize_path(path).split(".")

    def select(item: SyncItem) -> Any:
        if parts[0] != "fields" or sys_of(item).get("locale"):
            return _get_path(item, parts)
        value = _get_path(item, parts[:2])
        if isinstance(value, dict):
            _, value = project_value(value, locale, default_locale)
        return _get_path(value, parts[2:])

    return select


def _get_path(value: Any, parts: List[str]) -> Any:
    for part in parts:
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


def _content_type_filter(expected: Any) -> Filter:
    def check(item: SyncItem) -> bool:
        kind = item_kind(item)
        if kind is None or not kind.is_entry_kind:
            return False
        return content_type_id(item) == expected

    return check


def _as_list(expected: Any) -> List[Any]:
    if isinstance(expected, str):
        return [part.strip() for part in expected.split(",")]
    if isinstance(expected, (list, tuple, set, frozenset)):
        return list(expected)
    return [expected]


def eq_op(select: Selector, expected: Any) -> Filter:
    def check(item: SyncItem) -> bool:
        value = select(item)
        if isinstance(value, list):
            return expected in value
        return value == expected

    return check


def ne_op(select: Selector, expected: Any) -> Filter:
    def check(item: SyncItem) -> bool:
        value = select(item)
        if isinstance(value, list):
            return expected not in value
        return value != expected

    return check


def in_op(select: Selector, expected: Any) -> Filter:
    candidates = _as_list(expected)

    def check(item: SyncItem) -> bool:
        value = select(item)
        if isinstance(value, list):
            return any(v in candidates for v in value)
        return value in candidates

    return check


def _relational(compare: Callable[[Any, Any], bool]) -> Callable[[Selector, Any], Filter]:
    def build(select: Selector, expected: Any) -> Filter:
        def check(item: SyncItem) -> bool:
            value = select(item)
            if value is None:
                return False
            try:
                return compare(value, expected)
            except TypeError:
                # ISO-8601 strings compare lexically, numbers numerically;
                # mixed types never match
                return False

        return check

    return build


OPERATORS: Dict[str, Callable[[Selector, Any], Filter]] = {
    "eq": eq_op,
    "ne": ne_op,
    "in": in_op,
    "gt": _relational(lambda a, b: a > b),
    "gte": _relational(lambda a, b: a >= b),
    "lt": _relational(lambda a, b: a < b),
    "lte": _relational(lambda a, b: a <= b),
}
