from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence, Tuple

from upcycle_search.models import ProviderSummary, ScoredMaterial
from upcycle_search.tools.categories import Category
from upcycle_search.tools.geo import distance_km

logger = logging.getLogger(__name__)

CATEGORY_WEIGHT = 0.5
DISTANCE_WEIGHT = 0.3
RATING_WEIGHT = 0.2
MAX_RATING = 5.0

# Without a location the distance slot is dropped, not redistributed.
NO_LOCATION_CEILING = CATEGORY_WEIGHT + RATING_WEIGHT


def distance_score(distance_m: float, max_distance_m: float) -> float:
    if max_distance_m <= 0:
        return 0.0
    return max(0.0, 1.0 - distance_m / max_distance_m)


def rating_score(provider: Optional[ProviderSummary]) -> float:
    if provider is None:
        return 0.0
    return provider.average_rating / MAX_RATING


def relevance_score(
    category_weight: float,
    rating: float,
    proximity: Optional[float] = None,
) -> float:
    score = CATEGORY_WEIGHT * category_weight + RATING_WEIGHT * rating
    if proximity is not None:
        score += DISTANCE_WEIGHT * proximity
    return score


def rank_materials(
    candidates: Sequence[ScoredMaterial],
    weights: Mapping[Category, float],
    *,
    center: Optional[Tuple[float, float]] = None,
    radius_km: Optional[float] = None,
    providers: Optional[Mapping[str, ProviderSummary]] = None,
) -> List[ScoredMaterial]:
    """Score and order candidates by blended relevance.

    With ``center`` (``(lat, lng)``) and a positive ``radius_km`` the score
    includes proximity and ties break on distance ascending. Without a
    centre the proximity term is omitted, the score tops out at 0.7 and the
    sort is by score alone, stable with respect to the input order.

    ``providers`` overrides the provider already attached to a candidate.
    Categories absent from ``weights`` score 0 on that component.
    """
    location_mode = center is not None and radius_km is not None and radius_km > 0
    max_distance_m = (radius_km or 0.0) * 1000

    scored: List[ScoredMaterial] = []
    for candidate in candidates:
        record = candidate.material
        provider = candidate.provider
        if providers is not None and record.provider_id:
            provider = providers.get(record.provider_id, provider)

        cat_weight = float(weights.get(record.category, 0.0))
        rating = rating_score(provider)
        dist_km = candidate.distance_km
        proximity: Optional[float] = None
        if location_mode:
            if dist_km is None:
                lat, lng = center  # type: ignore[misc]
                dist_km = distance_km(
                    lat, lng, record.location.latitude, record.location.longitude
                )
            proximity = distance_score(dist_km * 1000, max_distance_m)

        score = relevance_score(cat_weight, rating, proximity)
        scored.append(
            candidate.model_copy(
                update={
                    "provider": provider,
                    "distance_km": dist_km if location_mode else None,
                    "relevance_score": score,
                }
            )
        )

    if location_mode:
        scored.sort(key=lambda m: (-(m.relevance_score or 0.0), m.distance_km or 0.0))
    else:
        scored.sort(key=lambda m: -(m.relevance_score or 0.0))

    logger.debug(
        "Ranked %d materials (location=%s): %s",
        len(scored),
        location_mode,
        [(m.material.id, round(m.relevance_score or 0.0, 4)) for m in scored[:10]],
    )
    return scored


__all__ = [
    "CATEGORY_WEIGHT",
    "DISTANCE_WEIGHT",
    "NO_LOCATION_CEILING",
    "RATING_WEIGHT",
    "distance_score",
    "rank_materials",
    "rating_score",
    "relevance_score",
]
