from __future__ import annotations

import logging
from typing import Any, Dict

from upcycle_search.errors import InvalidSearchParameter
from upcycle_search.tools.categories import Category, parse_category_filter
from upcycle_search.tools.es_client import get_es_client
from upcycle_search.tools.geo import validate_center, validate_radius
from upcycle_search.tools.material_store import (
    NEARBY_RESULT_LIMIT,
    attach_providers,
    find_nearby,
)

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 10.0


def search_nearby(
    lat: Any,
    lng: Any,
    radius: Any = DEFAULT_RADIUS_KM,
    category: str | None = None,
    es_client=None,
) -> Dict[str, Any]:
    latitude, longitude = validate_center(lat, lng)
    search_radius = validate_radius(radius)
    try:
        category_filter = parse_category_filter(category)
    except ValueError:
        valid = ", ".join(c.value for c in Category)
        raise InvalidSearchParameter(
            "category", f"Invalid category. Must be one of: All, {valid}"
        ) from None

    logger.info(
        "Nearby search at [%s, %s] within %skm (category=%s)",
        latitude,
        longitude,
        search_radius,
        category_filter.value if category_filter else "All",
    )
    es = es_client if es_client else get_es_client()
    materials = find_nearby(
        es,
        latitude,
        longitude,
        search_radius,
        categories=[category_filter] if category_filter else None,
        limit=NEARBY_RESULT_LIMIT,
    )
    materials = attach_providers(es, materials)
    logger.info("Found %d materials within %skm", len(materials), search_radius)

    return {
        "materials": [m.to_response() for m in materials],
        "count": len(materials),
        "searchLocation": {
            "latitude": latitude,
            "longitude": longitude,
            "radius": search_radius,
        },
    }
