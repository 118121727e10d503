"""Mapping from a request's declared need to the resource categories that can serve it."""

from __future__ import annotations

REQUEST_TO_RESOURCE_CATEGORY: dict[str, tuple[str, ...]] = {
    "WATER": ("WATER",),
    "MEDICAL": ("MEDICAL", "OTHER"),
    "FOOD": ("OTHER",),
    "FUEL": ("TRANSPORT", "OTHER"),
    "PARKING": ("TRANSPORT", "OTHER"),
    "EQUIPMENT": ("OTHER",),
    "OTHER": ("OTHER",),
    "ELECTRICITY": ("ELECTRICITY",),
    "TRANSPORT": ("TRANSPORT",),
}


def normalize_category(category: str | None) -> str:
    return (category or "").strip().upper()


def compatible_categories(request_category: str) -> tuple[str, ...]:
    """Resource categories acceptable for ``request_category``; unknown categories only match themselves."""
    key = normalize_category(request_category)
    if not key:
        return tuple()
    return REQUEST_TO_RESOURCE_CATEGORY.get(key, (key,))


def is_compatible(request_category: str, resource_category: str) -> bool:
    return normalize_category(resource_category) in compatible_categories(request_category)
