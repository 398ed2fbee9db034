"""Multi-dimensional PO filters and their URL representation.

Across dimensions filters combine with AND; within a multi-select dimension
an order passes when it matches any selected value.  The filter state is
shared through query parameters so a filtered control room can be linked.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Sequence

from app.date_utils import days_between
from app.po_control_room.health import health_of
from app.po_control_room.models import WorkOrderAggregate

EX_OVERDUE = "overdue"
EX_NEXT_7 = "next7"
EX_NEXT_14 = "next14"
EX_THIS_MONTH = "this_month"
EX_NO_DEADLINE = "no_deadline"

UPDATED_TODAY = "today"
UPDATED_NOT_TODAY = "no_today"


@dataclass(frozen=True)
class POFilters:
    buyers: tuple[str, ...] = ()
    po_numbers: tuple[str, ...] = ()
    styles: tuple[str, ...] = ()
    lines: tuple[str, ...] = ()
    units: tuple[str, ...] = ()
    floors: tuple[str, ...] = ()
    health: tuple[str, ...] = ()
    ex_factory: str | None = None
    updated: str | None = None

    def to_dict(self) -> dict:
        return {
            "buyers": list(self.buyers),
            "po_numbers": list(self.po_numbers),
            "styles": list(self.styles),
            "lines": list(self.lines),
            "units": list(self.units),
            "floors": list(self.floors),
            "health": list(self.health),
            "ex_factory": self.ex_factory,
            "updated": self.updated,
        }


EMPTY_FILTERS = POFilters()

MULTI_SELECT_FIELDS = (
    "buyers",
    "po_numbers",
    "styles",
    "lines",
    "units",
    "floors",
    "health",
)

# Filter field -> query parameter key.
PARAM_KEYS = {
    "buyers": "buyer",
    "po_numbers": "po",
    "styles": "style",
    "lines": "line",
    "units": "unit",
    "floors": "floor",
    "health": "health",
    "ex_factory": "ex",
    "updated": "updated",
}

HEALTH_LABELS = {
    "healthy": "Healthy",
    "watch": "Watch",
    "at_risk": "At Risk",
    "no_deadline": "No date",
    "deadline_passed": "Overdue",
    "completed": "Complete",
}

EX_FACTORY_OPTIONS = [
    {"value": EX_OVERDUE, "label": "Overdue"},
    {"value": EX_NEXT_7, "label": "Next 7 days"},
    {"value": EX_NEXT_14, "label": "Next 14 days"},
    {"value": EX_THIS_MONTH, "label": "This month"},
    {"value": EX_NO_DEADLINE, "label": "No deadline"},
]

UPDATED_OPTIONS = [
    {"value": UPDATED_TODAY, "label": "Updated today"},
    {"value": UPDATED_NOT_TODAY, "label": "No updates today"},
]


def count_active_filters(filters: POFilters) -> int:
    """Number of selected values; single-select fields count once each."""

    total = sum(len(getattr(filters, name)) for name in MULTI_SELECT_FIELDS)
    if filters.ex_factory:
        total += 1
    if filters.updated:
        total += 1
    return total


def derive_filter_options(
    orders: Iterable[WorkOrderAggregate], today: date | None = None
) -> dict[str, list[str]]:
    """Collect the sorted, distinct values present in ``orders``.

    Health statuses come from each order's annotation; when an order has not
    been annotated and ``today`` is given it is classified on the spot.
    """

    buyers: set[str] = set()
    po_numbers: set[str] = set()
    styles: set[str] = set()
    lines: set[str] = set()
    units: set[str] = set()
    floors: set[str] = set()
    health: set[str] = set()

    for po in orders:
        if po.buyer:
            buyers.add(po.buyer)
        if po.po_number:
            po_numbers.add(po.po_number)
        if po.style:
            styles.add(po.style)
        lines.update(po.line_names)
        units.update(po.unit_names or ())
        floors.update(po.floor_names or ())
        if po.health is not None:
            health.add(po.health.status)
        elif today is not None:
            health.add(health_of(po, today).status)

    return {
        "buyers": sorted(buyers),
        "po_numbers": sorted(po_numbers),
        "styles": sorted(styles),
        "lines": sorted(lines),
        "units": sorted(units),
        "floors": sorted(floors),
        "health": sorted(health),
    }


def match_ex_factory(ex_factory: date | None, range_key: str, today: date) -> bool:
    if range_key == EX_NO_DEADLINE:
        return ex_factory is None
    if ex_factory is None:
        return False

    days_to_ex = days_between(ex_factory, today)
    if range_key == EX_OVERDUE:
        return days_to_ex < 0
    if range_key == EX_NEXT_7:
        return 0 <= days_to_ex <= 7
    if range_key == EX_NEXT_14:
        return 0 <= days_to_ex <= 14
    if range_key == EX_THIS_MONTH:
        return (ex_factory.year, ex_factory.month) == (today.year, today.month)
    return True


def match_updated(has_eod_today: bool, updated: str) -> bool:
    if updated == UPDATED_TODAY:
        return has_eod_today
    if updated == UPDATED_NOT_TODAY:
        return not has_eod_today
    return True


def _intersects(values: Iterable[str] | None, selected: Sequence[str]) -> bool:
    return any(value in selected for value in values or ())


def _matches(po: WorkOrderAggregate, filters: POFilters, today: date) -> bool:
    if filters.buyers and po.buyer not in filters.buyers:
        return False
    if filters.po_numbers and po.po_number not in filters.po_numbers:
        return False
    # A PO without a style is never selectable, so it never matches.
    if filters.styles and (not po.style or po.style not in filters.styles):
        return False
    if filters.lines and not _intersects(po.line_names, filters.lines):
        return False
    if filters.units and not _intersects(po.unit_names, filters.units):
        return False
    if filters.floors and not _intersects(po.floor_names, filters.floors):
        return False
    if filters.health and health_of(po, today).status not in filters.health:
        return False
    if filters.ex_factory is not None and not match_ex_factory(
        po.planned_ex_factory, filters.ex_factory, today
    ):
        return False
    if filters.updated is not None and not match_updated(
        po.has_eod_today, filters.updated
    ):
        return False
    return True


def apply_filters(
    orders: Sequence[WorkOrderAggregate], filters: POFilters, today: date
) -> Sequence[WorkOrderAggregate]:
    """Return the orders passing every active filter dimension.

    When no filter is active the input sequence itself is returned.
    """

    if count_active_filters(filters) == 0:
        return orders
    return [po for po in orders if _matches(po, filters, today)]


def filters_to_params(filters: POFilters) -> dict[str, str]:
    """Serialise ``filters`` into query parameters, omitting empty fields."""

    params: dict[str, str] = {}
    for name in MULTI_SELECT_FIELDS:
        values = getattr(filters, name)
        if values:
            params[PARAM_KEYS[name]] = ",".join(values)
    if filters.ex_factory:
        params[PARAM_KEYS["ex_factory"]] = filters.ex_factory
    if filters.updated:
        params[PARAM_KEYS["updated"]] = filters.updated
    return params


def filters_from_params(params: Mapping[str, str] | None) -> POFilters:
    """Rebuild filter state from query parameters.

    Absent or blank keys produce empty tuples and ``None`` single-selects.
    """

    params = params or {}

    def raw(key: str) -> str:
        value = params.get(key)
        if value is None:
            return ""
        return str(value)

    def split(key: str) -> tuple[str, ...]:
        return tuple(part for part in raw(key).split(",") if part)

    def single(key: str) -> str | None:
        return raw(key) or None

    values = {name: split(PARAM_KEYS[name]) for name in MULTI_SELECT_FIELDS}
    return POFilters(
        ex_factory=single(PARAM_KEYS["ex_factory"]),
        updated=single(PARAM_KEYS["updated"]),
        **values,
    )


def toggle_array_item(values: Sequence[str], item: str) -> tuple[str, ...]:
    """Return ``values`` without ``item`` if present, otherwise with it appended."""

    if item in values:
        return tuple(value for value in values if value != item)
    return (*values, item)
