"""Control-room KPIs, view tabs, search and needs-action cards."""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from typing import Iterable, Sequence

from app.date_utils import days_between
from app.po_control_room.health import health_of, reject_rate
from app.po_control_room.models import HEALTH_AT_RISK, HEALTH_HEALTHY, WorkOrderAggregate
from app.po_control_room.state import CLUSTER_META, CLUSTER_ORDER, WORKFLOW_TABS, workflow_tab

VIEW_ALL = "all"
VIEW_AT_RISK = "at_risk"
VIEW_EX_FACTORY_SOON = "ex_factory_soon"
VIEW_NO_LINE = "no_line"
VIEW_UPDATED_TODAY = "updated_today"
VIEW_ON_TARGET = "on_target"

VIEW_TABS = (
    VIEW_ALL,
    VIEW_AT_RISK,
    VIEW_EX_FACTORY_SOON,
    VIEW_NO_LINE,
    VIEW_UPDATED_TODAY,
    VIEW_ON_TARGET,
)

EX_FACTORY_SOON_DAYS = 14
NEEDS_ACTION_DAYS = 7
NEEDS_ACTION_PROGRESS = 80
QUALITY_SPIKE_RATE = 3


def compute_kpis(orders: Iterable[WorkOrderAggregate]) -> dict[str, int]:
    kpis = {
        "active_orders": 0,
        "total_qty": 0,
        "sewing_output": 0,
        "finished_output": 0,
        "total_extras": 0,
    }
    for po in orders:
        kpis["active_orders"] += 1
        kpis["total_qty"] += po.order_qty
        kpis["sewing_output"] += po.sewing_output
        kpis["finished_output"] += po.finished_output
        kpis["total_extras"] += max(po.finished_output - po.order_qty, 0)
    return kpis


def _ex_factory_within(po: WorkOrderAggregate, today: date, days: int) -> bool:
    if po.planned_ex_factory is None:
        return False
    return days_between(po.planned_ex_factory, today) <= days


def _in_view(po: WorkOrderAggregate, view: str, today: date) -> bool:
    if view == VIEW_AT_RISK:
        return health_of(po, today).status == HEALTH_AT_RISK
    if view == VIEW_EX_FACTORY_SOON:
        return _ex_factory_within(po, today, EX_FACTORY_SOON_DAYS)
    if view == VIEW_NO_LINE:
        return not po.has_line
    if view == VIEW_UPDATED_TODAY:
        return po.has_eod_today
    if view == VIEW_ON_TARGET:
        return health_of(po, today).status == HEALTH_HEALTHY and po.progress_pct > 0
    return True


def filter_by_view_tab(
    orders: Sequence[WorkOrderAggregate], view: str | None, today: date
) -> Sequence[WorkOrderAggregate]:
    if not view or view == VIEW_ALL or view not in VIEW_TABS:
        return orders
    return [po for po in orders if _in_view(po, view, today)]


def tab_counts(orders: Sequence[WorkOrderAggregate], today: date) -> dict[str, int]:
    counts = {view: 0 for view in VIEW_TABS}
    counts[VIEW_ALL] = len(orders)
    for po in orders:
        for view in VIEW_TABS[1:]:
            if _in_view(po, view, today):
                counts[view] += 1
    return counts


def search_orders(
    orders: Sequence[WorkOrderAggregate], term: str | None
) -> Sequence[WorkOrderAggregate]:
    """Case-insensitive substring search over PO number, buyer and style."""

    query = (term or "").strip().casefold()
    if not query:
        return orders
    return [
        po
        for po in orders
        if query in (po.po_number or "").casefold()
        or query in (po.buyer or "").casefold()
        or query in (po.style or "").casefold()
    ]


def filter_by_workflow_tab(
    orders: Sequence[WorkOrderAggregate], tab: str | None
) -> Sequence[WorkOrderAggregate]:
    if not tab or tab not in WORKFLOW_TABS:
        return orders
    return [po for po in orders if workflow_tab(po) == tab]


def workflow_tab_counts(orders: Iterable[WorkOrderAggregate]) -> dict[str, int]:
    counts = {tab: 0 for tab in WORKFLOW_TABS}
    for po in orders:
        counts[workflow_tab(po)] += 1
    return counts


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count > 1 else ''}"


def needs_action_cards(orders: Iterable[WorkOrderAggregate], today: date) -> list[dict]:
    """Summarise the POs needing supervisor attention.

    Only cards with a non-zero count are returned, in fixed order.
    """

    no_eod = ex_factory_soon = no_line = quality_spike = 0
    for po in orders:
        if po.is_active and not po.has_eod_today:
            no_eod += 1
        if (
            _ex_factory_within(po, today, NEEDS_ACTION_DAYS)
            and po.progress_pct < NEEDS_ACTION_PROGRESS
        ):
            ex_factory_soon += 1
        if po.is_active and not po.has_line:
            no_line += 1
        if reject_rate(po.total_rejects, po.sewing_output) > QUALITY_SPIKE_RATE:
            quality_spike += 1

    cards: list[dict] = []
    if no_eod:
        cards.append(
            {
                "key": "no_eod",
                "title": "No EOD Today",
                "count": no_eod,
                "description": f"{_plural(no_eod, 'active PO')} with no submission today",
                "variant": "warning",
                "target_tab": VIEW_UPDATED_TODAY,
            }
        )
    if ex_factory_soon:
        cards.append(
            {
                "key": "ex_factory",
                "title": "Ex-Factory Soon",
                "count": ex_factory_soon,
                "description": f"{_plural(ex_factory_soon, 'PO')} due within 7 days, behind schedule",
                "variant": "destructive",
                "target_tab": VIEW_EX_FACTORY_SOON,
            }
        )
    if no_line:
        cards.append(
            {
                "key": "no_line",
                "title": "No Line Assigned",
                "count": no_line,
                "description": f"{_plural(no_line, 'active PO')} without a production line",
                "variant": "warning",
                "target_tab": VIEW_NO_LINE,
            }
        )
    if quality_spike:
        cards.append(
            {
                "key": "quality",
                "title": "Quality Spike",
                "count": quality_spike,
                "description": f"{_plural(quality_spike, 'PO')} with reject rate > 3%",
                "variant": "destructive",
                "target_tab": VIEW_AT_RISK,
            }
        )
    return cards


def group_by_cluster(orders: Iterable[WorkOrderAggregate]) -> "OrderedDict[str, list[WorkOrderAggregate]]":
    """Group running POs by cluster, most urgent cluster first.

    Empty clusters are left out; orders without a cluster are skipped.
    """

    buckets: dict[str, list[WorkOrderAggregate]] = {cluster: [] for cluster in CLUSTER_ORDER}
    for po in orders:
        if po.cluster in buckets:
            buckets[po.cluster].append(po)
    return OrderedDict(
        (cluster, buckets[cluster]) for cluster in CLUSTER_ORDER if buckets[cluster]
    )


def cluster_sections(orders: Iterable[WorkOrderAggregate]) -> list[dict]:
    return [
        {
            "cluster": cluster,
            **CLUSTER_META[cluster],
            "po_ids": [po.id for po in members],
        }
        for cluster, members in group_by_cluster(orders).items()
    ]
