"""Value types shared by the store, inference and ranking layers."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from upcycle_search.tools.categories import Category
from upcycle_search.tools.geo import round_km


class MaterialStatus(str, Enum):
    AVAILABLE = "available"
    REQUESTED = "requested"
    PICKED = "picked"


class GeoPoint(BaseModel):
    """GeoJSON point; ``coordinates`` is ``(longitude, latitude)``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["Point"] = "Point"
    coordinates: Tuple[float, float]

    @field_validator("coordinates")
    @classmethod
    def _check_ranges(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        lng, lat = value
        if not -180 <= lng <= 180:
            raise ValueError(f"longitude out of range: {lng}")
        if not -90 <= lat <= 90:
            raise ValueError(f"latitude out of range: {lat}")
        return value

    @classmethod
    def from_lat_lng(cls, lat: float, lng: float) -> "GeoPoint":
        return cls(coordinates=(lng, lat))

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class MaterialRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    title: str = ""
    category: Category
    description: str = ""
    quantity: str = ""
    price: Optional[float] = None
    price_unit: Optional[str] = Field(default=None, alias="priceUnit")
    images: List[Dict[str, Any]] = Field(default_factory=list)
    provider_id: Optional[str] = Field(default=None, alias="providerId")
    location: GeoPoint
    status: MaterialStatus = MaterialStatus.AVAILABLE
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @classmethod
    def from_hit(cls, hit: Dict[str, Any]) -> "MaterialRecord":
        source = dict(hit.get("_source") or {})
        source["id"] = str(hit.get("_id") or source.get("id") or "")
        return cls.model_validate(source)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProviderSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    name: str = "Unknown"
    email: str = ""
    organization: str = ""
    average_rating: float = Field(default=0.0, alias="averageRating")
    total_reviews: int = Field(default=0, alias="totalReviews")

    @field_validator("average_rating", mode="before")
    @classmethod
    def _clamp_rating(cls, value: Any) -> float:
        if value is None:
            return 0.0
        return min(5.0, max(0.0, float(value)))

    @field_validator("total_reviews", mode="before")
    @classmethod
    def _clamp_reviews(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(value))

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "ProviderSummary":
        source = dict(doc.get("_source") or {})
        source["id"] = str(doc.get("_id") or source.get("id") or "")
        return cls.model_validate(source)

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class CategoryWeight(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Category
    weight: float = Field(ge=0.0, le=1.0)
    reason: str

    def to_response(self) -> Dict[str, Any]:
        return {"name": self.name.value, "weight": self.weight, "reason": self.reason}


class ScoredMaterial(BaseModel):
    """A search hit with its per-request annotations; never persisted."""

    model_config = ConfigDict(frozen=True)

    material: MaterialRecord
    provider: Optional[ProviderSummary] = None
    distance_km: Optional[float] = None
    relevance_score: Optional[float] = None

    def to_response(self) -> Dict[str, Any]:
        body = self.material.to_response()
        if self.provider is not None:
            body["provider"] = self.provider.to_response()
        if self.distance_km is not None:
            body["distance"] = round_km(self.distance_km)
        if self.relevance_score is not None:
            body["relevanceScore"] = self.relevance_score
        return body


__all__ = [
    "CategoryWeight",
    "GeoPoint",
    "MaterialRecord",
    "MaterialStatus",
    "ProviderSummary",
    "ScoredMaterial",
]
