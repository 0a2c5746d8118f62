"""Filtering, sorting and aggregation over property snapshots.

Everything here is pure: functions take a snapshot list and return new
lists or models, never touching storage.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from enum import Enum
from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from imobi.models import (
    Category,
    DashboardStats,
    Property,
    PropertyStatus,
    classify,
)

SortField = Literal[
    "code",
    "address",
    "neighborhood",
    "property_type",
    "value",
    "description",
    "note",
    "status",
    "form_status",
    "collected_by",
    "last_updated_at",
    "form_updated_at",
    "vacated_at",
    "released_at",
]
SortDirection = Literal["asc", "desc"]

DEFAULT_SORT_FIELD: Final[SortField] = "last_updated_at"
DEFAULT_SORT_DIRECTION: Final[SortDirection] = "desc"

# Filter values meaning "no restriction"
ALL_SENTINELS: Final = frozenset({"", "all", "todos"})

SEARCH_FIELDS: Final = ("code", "address", "neighborhood", "collected_by")


def _coerce_all(v: object) -> object:
    if v is None:
        return None
    if isinstance(v, str) and v.strip().lower() in ALL_SENTINELS:
        return None
    return v


class PropertyFilter(BaseModel):
    """Dashboard filter state.

    ``status`` and ``category`` of None mean "all"; the strings "Todos"
    and "All" are accepted for them too.
    """

    model_config = ConfigDict(frozen=True)

    search: str = ""
    status: PropertyStatus | None = None
    category: Category | None = None

    @field_validator("search", mode="before")
    @classmethod
    def coerce_search(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("status", "category", mode="before")
    @classmethod
    def coerce_all(cls, v: object) -> object:
        return _coerce_all(v)

    def matches_search(self, prop: Property) -> bool:
        term = self.search.lower()
        if not term:
            return True
        return any(term in str(getattr(prop, field)).lower() for field in SEARCH_FIELDS)

    def matches_status(self, prop: Property) -> bool:
        return self.status is None or prop.status == self.status

    def matches_category(self, prop: Property) -> bool:
        return self.category is None or classify(prop.property_type) == self.category

    def matches(self, prop: Property) -> bool:
        """Check a property against search, status and category together."""
        return (
            self.matches_search(prop) and self.matches_status(prop) and self.matches_category(prop)
        )


def filter_properties(
    properties: Iterable[Property], filters: PropertyFilter | None = None
) -> list[Property]:
    """Return the properties matching every active filter, order preserved."""
    if filters is None:
        return list(properties)
    return [p for p in properties if filters.matches(p)]


def _sort_key(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def sort_properties(
    properties: Iterable[Property],
    field: SortField = DEFAULT_SORT_FIELD,
    direction: SortDirection = DEFAULT_SORT_DIRECTION,
) -> list[Property]:
    """Stable sort by one field; records missing the field always go last.

    Args:
        properties: Snapshot to sort.
        field: Property attribute to sort by.
        direction: "asc" or "desc".

    Returns:
        A new sorted list.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"Invalid sort direction: {direction!r}")
    if field not in Property.model_fields:
        raise ValueError(f"Invalid sort field: {field!r}")

    defined: list[Property] = []
    missing: list[Property] = []
    for prop in properties:
        (missing if getattr(prop, field) is None else defined).append(prop)

    defined.sort(key=lambda p: _sort_key(getattr(p, field)), reverse=direction == "desc")
    return defined + missing


def toggle_sort(
    current_field: SortField,
    current_direction: SortDirection,
    clicked: SortField,
) -> tuple[SortField, SortDirection]:
    """Column-header click: flip the active column, start new columns descending."""
    if clicked == current_field:
        return clicked, "asc" if current_direction == "desc" else "desc"
    return clicked, "desc"


def query_properties(
    properties: Iterable[Property],
    filters: PropertyFilter | None = None,
    field: SortField = DEFAULT_SORT_FIELD,
    direction: SortDirection = DEFAULT_SORT_DIRECTION,
) -> list[Property]:
    """Filter then sort a snapshot, as the dashboard table shows it."""
    return sort_properties(filter_properties(properties, filters), field, direction)


_STATUS_FIELDS: Final[dict[PropertyStatus, str]] = {
    PropertyStatus.AVAILABLE: "available",
    PropertyStatus.IN_LEASING_PROCESS: "in_leasing_process",
    PropertyStatus.VACATING: "vacating",
    PropertyStatus.SUSPENDED: "suspended",
    PropertyStatus.LEASED: "leased",
}
assert set(_STATUS_FIELDS) == set(PropertyStatus)

_CATEGORY_FIELDS: Final[dict[Category, str]] = {
    Category.RESIDENTIAL: "residential",
    Category.COMMERCIAL: "commercial",
}


def compute_stats(properties: Iterable[Property]) -> DashboardStats:
    """Count totals per category and per status in a single pass."""
    counts: Counter[str] = Counter()
    for prop in properties:
        counts["total"] += 1
        category = classify(prop.property_type)
        if category is not None:
            counts[_CATEGORY_FIELDS[category]] += 1
        counts[_STATUS_FIELDS[prop.status]] += 1
    return DashboardStats(**counts)
