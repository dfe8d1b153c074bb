"""Closed material taxonomy and the lookup that maps model labels onto it."""

from __future__ import annotations

from enum import Enum
from typing import Dict


class Category(str, Enum):
    CHEMICALS = "Chemicals"
    GLASSWARE = "Glassware"
    ELECTRONICS = "Electronics"
    METALS = "Metals"
    PLASTICS = "Plastics"
    BIO_MATERIALS = "Bio Materials"
    OTHER = "Other"


ALL_CATEGORIES_FILTER = "All"

# Near-synonyms a model tends to emit instead of the canonical label.
SYNONYMS: Dict[str, Category] = {
    "glass": Category.GLASSWARE,
    "rubber": Category.OTHER,
    "wire": Category.ELECTRONICS,
    "wires": Category.ELECTRONICS,
    "cable": Category.ELECTRONICS,
    "cables": Category.ELECTRONICS,
    "circuit": Category.ELECTRONICS,
    "circuits": Category.ELECTRONICS,
    "circuit board": Category.ELECTRONICS,
    "pcb": Category.ELECTRONICS,
    "sensor": Category.ELECTRONICS,
    "sensors": Category.ELECTRONICS,
    "electronic": Category.ELECTRONICS,
    "metal": Category.METALS,
    "steel": Category.METALS,
    "aluminum": Category.METALS,
    "aluminium": Category.METALS,
    "copper": Category.METALS,
    "plastic": Category.PLASTICS,
    "polymer": Category.PLASTICS,
    "polymers": Category.PLASTICS,
    "chemical": Category.CHEMICALS,
    "bio": Category.BIO_MATERIALS,
    "biomaterial": Category.BIO_MATERIALS,
    "biomaterials": Category.BIO_MATERIALS,
    "bio material": Category.BIO_MATERIALS,
}

_CANONICAL: Dict[str, Category] = {c.value.casefold(): c for c in Category}


def _key(name: str) -> str:
    return " ".join(name.split()).casefold()


def normalize_category(name: str) -> Category:
    """Map a free-form label onto the taxonomy.

    Canonical names map to themselves, known synonyms map through the table,
    everything else lands in ``Category.OTHER``. Matching ignores case and
    surrounding/repeated whitespace but is otherwise exact.
    """
    key = _key(name)
    if key in _CANONICAL:
        return _CANONICAL[key]
    return SYNONYMS.get(key, Category.OTHER)


def parse_category_filter(value: str | None) -> Category | None:
    """Parse the optional ``category`` filter of the nearby search.

    ``None``, blank and ``"All"`` mean no filter. Any other value must be an
    exact canonical name; raises ``ValueError`` otherwise.
    """
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned == ALL_CATEGORIES_FILTER:
        return None
    return Category(cleaned)


__all__ = [
    "ALL_CATEGORIES_FILTER",
    "Category",
    "SYNONYMS",
    "normalize_category",
    "parse_category_filter",
]
