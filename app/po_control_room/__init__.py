"""PO control room: health classification, filters and supervisor summaries."""

from app.po_control_room.aggregate import annotate, build_control_room_orders
from app.po_control_room.filters import (
    EMPTY_FILTERS,
    POFilters,
    apply_filters,
    count_active_filters,
    derive_filter_options,
    filters_from_params,
    filters_to_params,
    toggle_array_item,
)
from app.po_control_room.health import classify
from app.po_control_room.models import HealthReason, WorkOrderAggregate

__all__ = [
    "EMPTY_FILTERS",
    "HealthReason",
    "POFilters",
    "WorkOrderAggregate",
    "annotate",
    "apply_filters",
    "build_control_room_orders",
    "classify",
    "count_active_filters",
    "derive_filter_options",
    "filters_from_params",
    "filters_to_params",
    "toggle_array_item",
]
