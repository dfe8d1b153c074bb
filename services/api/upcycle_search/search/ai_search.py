"""AI-weighted material search.

Validation runs first, then the caller's location is resolved (explicit
coordinates, else the stored profile location), then the query goes through
category inference. Any inference failure aborts the request with
:class:`InferenceFailedError`; otherwise candidates restricted to the
inferred categories are ranked and the top results returned along with the
category breakdown.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from upcycle_search.config import settings
from upcycle_search.errors import InvalidSearchParameter
from upcycle_search.models import ScoredMaterial
from upcycle_search.search.inference import (
    InferenceFailedError,
    InferenceResult,
    infer_categories,
)
from upcycle_search.search.ranking import rank_materials
from upcycle_search.tools.es_client import get_es_client
from upcycle_search.tools.geo import parse_optional_center, validate_radius
from upcycle_search.tools.material_store import (
    fetch_providers,
    find_all_nearby,
    find_available,
    find_user_location,
)

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 50.0
AI_RESULT_LIMIT = 50


def _resolve_center(
    es, latitude: Any, longitude: Any, user_email: Optional[str]
) -> Optional[Tuple[float, float]]:
    center = parse_optional_center(latitude, longitude)
    if center is not None or not user_email:
        return center

    stored = find_user_location(es, user_email)
    if stored is None:
        return None
    try:
        return parse_optional_center(*stored)
    except InvalidSearchParameter:
        logger.warning("Ignoring out-of-range stored location for %s", user_email)
        return None


def search_with_ai(
    query: Any,
    latitude: Any = None,
    longitude: Any = None,
    radius: Any = DEFAULT_RADIUS_KM,
    user_email: Optional[str] = None,
    es_client=None,
    infer: Callable[[str], InferenceResult] = infer_categories,
) -> Dict[str, Any]:
    if not isinstance(query, str) or not query.strip():
        raise InvalidSearchParameter("query", "Search query is required")
    radius_km = validate_radius(DEFAULT_RADIUS_KM if radius is None else radius)
    # Reject bad explicit coordinates before touching the store
    parse_optional_center(latitude, longitude)

    es = es_client if es_client else get_es_client()
    center = _resolve_center(es, latitude, longitude, user_email)

    result = infer(query)
    if not result.ok:
        raise InferenceFailedError(result.failure)  # type: ignore[arg-type]

    weights = result.weights
    categories = list(weights)
    logger.info(
        "AI search for %d categories (%s), location=%s",
        len(categories),
        ", ".join(c.value for c in categories),
        "yes" if center else "no",
    )

    candidates: List[ScoredMaterial]
    if center is not None:
        lat, lng = center
        # the whole in-radius set is ranked, not just the nearest slice
        candidates = find_all_nearby(es, lat, lng, radius_km, categories)
    else:
        records = find_available(es, categories, limit=settings.candidate_pool_size)
        candidates = [ScoredMaterial(material=r) for r in records]

    providers = fetch_providers(es, (c.material.provider_id for c in candidates))
    ranked = rank_materials(
        candidates,
        weights,
        center=center,
        radius_km=radius_km if center is not None else None,
        providers=providers,
    )[:AI_RESULT_LIMIT]

    if not ranked:
        logger.info("No available materials for inferred categories %s", categories)

    return {
        "query": query,
        "categories": [c.to_response() for c in result.categories],
        "materials": [m.to_response() for m in ranked],
        "count": len(ranked),
        "aiAnalysis": result.raw,
    }
