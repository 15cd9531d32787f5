"""
Locale projection for sync items.

The sync API delivers every field as a map of locale code to value. Queries
want a single-locale view, so items are projected on read.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional, Tuple

from .types import Entity, SyncItem

ALL_LOCALES = "*"


def project_value(value: Any, locale: str, default_locale: str) -> Tuple[bool, Any]:
    """Pick the value of one field for a locale.

    Args:
        value: The stored field value, normally a per-locale dict
        locale: Requested locale
        default_locale: Fallback locale

    Returns:
        (found, value). found is False when neither locale has a value. A
        value that is not a per-locale dict passes through as found.
    """
    if not isinstance(value, dict):
        return True, value
    if locale in value:
        return True, value[locale]
    if default_locale in value:
        return True, value[default_locale]
    return False, None


def denormalize_for_locale(
    item: SyncItem,
    locale: Optional[str],
    default_locale: str,
) -> Entity:
    """Project a stored all-locales item to a single locale.

    Each field takes the requested locale's value, falling back to the
    default locale, and is omitted when neither exists. If no field had a
    value in the requested locale, the whole item is projected with the
    default locale instead. locale="*" returns the raw item.

    The result never shares mutable state with item.

    Args:
        item: Stored sync item (entry or asset)
        locale: Requested locale; None means default_locale
        default_locale: The store-wide default locale

    Returns:
        Denormalized entity with sys.locale set
    """
    if locale == ALL_LOCALES:
        return copy.deepcopy(item)

    locale = locale or default_locale
    fields, matched = _project_fields(item.get("fields") or {}, locale, default_locale)

    if not matched and locale != default_locale:
        locale = default_locale
        fields, _ = _project_fields(item.get("fields") or {}, locale, default_locale)

    entity: Entity = {key: copy.deepcopy(value) for key, value in item.items() if key != "fields"}
    entity["sys"] = dict(entity.get("sys") or {})
    entity["sys"]["locale"] = locale
    entity["fields"] = fields
    return entity


def _project_fields(
    fields: Dict[str, Any],
    locale: str,
    default_locale: str,
) -> Tuple[Dict[str, Any], bool]:
    projected: Dict[str, Any] = {}
    matched = False
    for name, value in fields.items():
        if isinstance(value, dict) and locale in value:
            matched = True
        found, picked = project_value(value, locale, default_locale)
        if found:
            projected[name] = copy.deepcopy(picked)
    return projected, matched
