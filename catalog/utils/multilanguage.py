"""
Helpers for multi-language values ({"En": ["..."], "Jp": ["..."]}).
"""

from typing import Dict, List, Optional

from django.conf import settings

DEFAULT_TITLE = "Untitled"


def resolve_multi_language(
    values: Optional[Dict[str, List[str]]],
    fallback: Optional[str] = DEFAULT_TITLE,
) -> Optional[str]:
    """
    Resolve a multi-language value to a single string.

    Order: PRIMARY_LANGUAGE, FALLBACK_PRIMARY_LANGUAGE, first non-empty
    value of any language, then ``fallback``.
    """
    if not values or not isinstance(values, dict):
        return fallback

    primary = getattr(settings, "PRIMARY_LANGUAGE", "En")
    if primary and values.get(primary):
        return values[primary][0]

    fallback_language = getattr(settings, "FALLBACK_PRIMARY_LANGUAGE", "En")
    if fallback_language and values.get(fallback_language):
        return values[fallback_language][0]

    for items in values.values():
        if items and items[0]:
            return items[0]

    return fallback


def resolve_multi_language_array(
    values: Optional[Dict[str, List[str]]],
) -> Optional[List[str]]:
    """Flatten every language's values, or None when there are none."""
    if not values or not isinstance(values, dict):
        return None

    flattened = [item for items in values.values() for item in (items or []) if item]
    return flattened or None


def unique(items: List[str]) -> List[str]:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result
