"""Read-side queries against the material and user indices.

The spatial narrowing is done by an Elasticsearch ``geo_distance`` filter on
the ``location`` geo_point; distances are then recomputed with the haversine
helper so display, scoring and the radius boundary all agree on one number.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from upcycle_search.config import settings
from upcycle_search.models import (
    MaterialRecord,
    MaterialStatus,
    ProviderSummary,
    ScoredMaterial,
)
from upcycle_search.tools.categories import Category
from upcycle_search.tools.geo import EARTH_RADIUS_KM, distance_km

logger = logging.getLogger(__name__)

NEARBY_RESULT_LIMIT = 100
NEARBY_PAGE_SIZE = 1000
PIT_KEEP_ALIVE = "1m"
# absorbs float noise so a point exactly on the radius stays in
BOUNDARY_TOLERANCE_KM = 1e-6
# Elasticsearch measures arcs on its own mean radius and quantises geo_points
ES_EARTH_RADIUS_KM = 6371.0088
STORE_RADIUS_PAD_KM = 0.001


def store_radius_km(radius_km: float) -> float:
    """Radius sent to the ``geo_distance`` filter.

    Slightly wider than ``radius_km`` so that nothing the haversine check
    would keep is lost in the store; the haversine check has the final say.
    """
    return radius_km * ES_EARTH_RADIUS_KM / EARTH_RADIUS_KM + STORE_RADIUS_PAD_KM


def _available_filter(categories: Optional[Iterable[Category]]) -> List[Dict[str, Any]]:
    filters: List[Dict[str, Any]] = [
        {"term": {"status": MaterialStatus.AVAILABLE.value}}
    ]
    if categories is not None:
        names = sorted({Category(c).value for c in categories})
        filters.append({"terms": {"category": names}})
    return filters


def _records_from_hits(hits: Sequence[Dict[str, Any]]) -> List[MaterialRecord]:
    records: List[MaterialRecord] = []
    for hit in hits:
        try:
            records.append(MaterialRecord.from_hit(hit))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed material %s: %s",
                hit.get("_id"),
                exc.errors(include_url=False),
            )
    return records


def _nearby_request(
    lat: float,
    lng: float,
    radius_km: float,
    categories: Optional[Iterable[Category]],
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    center = {"lat": lat, "lon": lng}
    filters = _available_filter(categories)
    filters.append(
        {"geo_distance": {"distance": f"{store_radius_km(radius_km)}km", "location": center}}
    )
    sort = [
        {
            "_geo_distance": {
                "location": center,
                "order": "asc",
                "unit": "km",
                "distance_type": "arc",
            }
        }
    ]
    return {"bool": {"filter": filters}}, sort


def _within_radius(
    records: Sequence[MaterialRecord], lat: float, lng: float, radius_km: float
) -> List[ScoredMaterial]:
    within: List[Tuple[MaterialRecord, float]] = []
    for record in records:
        d = distance_km(lat, lng, record.location.latitude, record.location.longitude)
        if d > radius_km + BOUNDARY_TOLERANCE_KM:
            logger.debug(
                "Dropping material %s at %.6f km beyond radius %.3f km",
                record.id,
                d,
                radius_km,
            )
            continue
        within.append((record, d))

    within.sort(key=lambda pair: pair[1])
    return [ScoredMaterial(material=r, distance_km=d) for r, d in within]


def find_nearby(
    es,
    lat: float,
    lng: float,
    radius_km: float,
    categories: Optional[Iterable[Category]] = None,
    limit: int = NEARBY_RESULT_LIMIT,
) -> List[ScoredMaterial]:
    """The ``limit`` nearest available materials within ``radius_km`` of ``(lat, lng)``.

    ``categories=None`` means no category restriction; an empty iterable
    matches nothing. The radius boundary is inclusive.
    """
    query, sort = _nearby_request(lat, lng, radius_km, categories)
    res = es.search(
        index=settings.es_materials_index, query=query, sort=sort, size=limit
    )
    records = _records_from_hits(res["hits"]["hits"])
    return _within_radius(records, lat, lng, radius_km)[:limit]


def find_all_nearby(
    es,
    lat: float,
    lng: float,
    radius_km: float,
    categories: Optional[Iterable[Category]] = None,
    page_size: int = NEARBY_PAGE_SIZE,
) -> List[ScoredMaterial]:
    """Every available material within ``radius_km``, nearest first.

    Pages through a point-in-time with ``search_after`` so the result is not
    bounded by a single search's size.
    """
    query, sort = _nearby_request(lat, lng, radius_km, categories)
    pit_id = es.open_point_in_time(
        index=settings.es_materials_index, keep_alive=PIT_KEEP_ALIVE
    )["id"]
    hits: List[Dict[str, Any]] = []
    search_after = None
    try:
        while True:
            extra: Dict[str, Any] = {}
            if search_after is not None:
                extra["search_after"] = search_after
            res = es.search(
                query=query,
                sort=sort,
                size=page_size,
                pit={"id": pit_id, "keep_alive": PIT_KEEP_ALIVE},
                **extra,
            )
            pit_id = res.get("pit_id") or pit_id
            page = res["hits"]["hits"]
            hits.extend(page)
            if len(page) < page_size:
                break
            search_after = page[-1]["sort"]
    finally:
        es.close_point_in_time(id=pit_id)

    logger.debug("Fetched %d nearby hits in radius %.3f km", len(hits), radius_km)
    return _within_radius(_records_from_hits(hits), lat, lng, radius_km)


def find_available(
    es,
    categories: Optional[Iterable[Category]] = None,
    limit: int = NEARBY_RESULT_LIMIT,
) -> List[MaterialRecord]:
    """Available materials without any spatial restriction, newest first."""
    res = es.search(
        index=settings.es_materials_index,
        query={"bool": {"filter": _available_filter(categories)}},
        sort=[{"createdAt": {"order": "desc", "unmapped_type": "date"}}],
        size=limit,
    )
    return _records_from_hits(res["hits"]["hits"])


def fetch_providers(es, provider_ids: Iterable[Optional[str]]) -> Dict[str, ProviderSummary]:
    ids = sorted({pid for pid in provider_ids if pid})
    if not ids:
        return {}
    res = es.mget(index=settings.es_users_index, ids=ids)
    providers: Dict[str, ProviderSummary] = {}
    for doc in res.get("docs", []):
        if not doc.get("found"):
            logger.debug("Provider %s not found", doc.get("_id"))
            continue
        try:
            provider = ProviderSummary.from_doc(doc)
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed provider %s: %s", doc.get("_id"), exc)
            continue
        providers[provider.id] = provider
    return providers


def attach_providers(
    es, materials: Sequence[ScoredMaterial]
) -> List[ScoredMaterial]:
    providers = fetch_providers(es, (m.material.provider_id for m in materials))
    return [
        m.model_copy(update={"provider": providers.get(m.material.provider_id or "")})
        for m in materials
    ]


def find_user_location(es, email: str) -> Optional[Tuple[float, float]]:
    """Stored ``(lat, lng)`` of the user with ``email``, if there is a usable one."""
    res = es.search(
        index=settings.es_users_index,
        query={"term": {"email": email.strip().lower()}},
        size=1,
    )
    hits = res["hits"]["hits"]
    if not hits:
        logger.info("No user profile for %s", email)
        return None
    location = (hits[0].get("_source") or {}).get("location") or {}
    coords = location.get("coordinates") if isinstance(location, dict) else None
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        return None
    try:
        lng, lat = float(coords[0]), float(coords[1])
    except (TypeError, ValueError):
        logger.debug("Invalid stored location for %s", email)
        return None
    return lat, lng


__all__ = [
    "NEARBY_RESULT_LIMIT",
    "attach_providers",
    "fetch_providers",
    "find_all_nearby",
    "find_available",
    "find_nearby",
    "find_user_location",
    "store_radius_km",
]
