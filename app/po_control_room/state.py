"""Lifecycle state, pace and display cluster for purchase orders."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping

from app.date_utils import coerce_date, days_between
from app.po_control_room.models import (
    HEALTH_AT_RISK,
    HEALTH_DEADLINE_PASSED,
    WorkOrderAggregate,
)

STATE_NOT_STARTED = "not_started"
STATE_PLANNED = "planned"
STATE_RUNNING = "running"
STATE_COMPLETED = "completed"

CLUSTER_DUE_SOON = "due_soon"
CLUSTER_BEHIND_PLAN = "behind_plan"
CLUSTER_ON_TRACK = "on_track"
CLUSTER_MISSING_UPDATES = "missing_updates"
CLUSTER_NO_DEADLINE = "no_deadline"

# Display order of the running-PO clusters, most urgent first.
CLUSTER_ORDER = (
    CLUSTER_DUE_SOON,
    CLUSTER_BEHIND_PLAN,
    CLUSTER_MISSING_UPDATES,
    CLUSTER_ON_TRACK,
    CLUSTER_NO_DEADLINE,
)

CLUSTER_META = {
    CLUSTER_DUE_SOON: {"label": "Due Soon", "description": "Ex-factory within 7 days"},
    CLUSTER_BEHIND_PLAN: {"label": "Behind Plan", "description": "Forecast behind deadline"},
    CLUSTER_MISSING_UPDATES: {"label": "Missing Updates", "description": "No EOD submitted today"},
    CLUSTER_ON_TRACK: {"label": "On Track", "description": "On schedule"},
    CLUSTER_NO_DEADLINE: {"label": "No Deadline", "description": "No deadline set"},
}

TAB_RUNNING = "running"
TAB_PLANNED = "planned"
TAB_NOT_STARTED = "not_started"
TAB_AT_RISK = "at_risk"
TAB_COMPLETED = "completed"

WORKFLOW_TABS = (TAB_RUNNING, TAB_PLANNED, TAB_NOT_STARTED, TAB_AT_RISK, TAB_COMPLETED)

DUE_SOON_DAYS = 7


def compute_workflow_state(
    *, has_any_actual: bool, has_target: bool, has_line: bool, remaining: int
) -> str:
    """Lifecycle state of a PO.

    Priority: nothing left to produce -> ``completed``; any sewing output ->
    ``running``; a line or target exists -> ``planned``; else ``not_started``.
    """

    if remaining <= 0:
        return STATE_COMPLETED
    if has_any_actual:
        return STATE_RUNNING
    if has_line or has_target:
        return STATE_PLANNED
    return STATE_NOT_STARTED


@dataclass(frozen=True)
class AvgPerDay:
    avg3d: float
    avg7d: float
    effective: float


def compute_avg_per_day(actuals: Iterable[Mapping], today: date) -> AvgPerDay:
    """Rolling average daily sewing output over 3 and 7 day windows.

    The sums are divided by the window length rather than the number of rows,
    so days without a submission count as zero output.  ``effective`` uses
    the 3-day figure when that window holds any data.
    """

    sum3 = sum7 = 0.0
    count3 = 0
    for actual in actuals:
        production_date = coerce_date(actual.get("production_date"))
        if production_date is None:
            continue
        days_ago = days_between(today, production_date)
        if 0 <= days_ago < 7:
            good = float(actual.get("good_today") or 0)
            sum7 += good
            if days_ago < 3:
                sum3 += good
                count3 += 1

    avg3d = sum3 / 3
    avg7d = sum7 / 7
    return AvgPerDay(avg3d=avg3d, avg7d=avg7d, effective=avg3d if count3 > 0 else avg7d)


def compute_needed_per_day(remaining: int, ex_factory: date | None, today: date) -> float:
    """Units per day required to finish by the ex-factory date."""

    if remaining <= 0:
        return 0.0
    if ex_factory is None:
        return remaining / 7
    days_left = days_between(ex_factory, today)
    return remaining / max(1, days_left)


def compute_forecast_finish(remaining: int, avg_per_day: float, today: date) -> date | None:
    """Projected completion date at the current pace, or ``None`` without pace."""

    if avg_per_day <= 0 or remaining <= 0:
        return None
    return today + timedelta(days=math.ceil(remaining / avg_per_day))


def compute_cluster(
    *,
    ex_factory: date | None,
    remaining: int,
    needed_per_day: float,
    avg_per_day: float,
    forecast_finish: date | None,
    has_eod_today: bool,
    today: date,
) -> str:
    """Assign a running PO to its display cluster (first match wins)."""

    if ex_factory is None:
        return CLUSTER_NO_DEADLINE

    if remaining > 0 and days_between(ex_factory, today) <= DUE_SOON_DAYS:
        return CLUSTER_DUE_SOON

    forecast_behind = forecast_finish is not None and forecast_finish > ex_factory
    pace_behind = avg_per_day > 0 and needed_per_day > avg_per_day
    if forecast_behind or pace_behind:
        return CLUSTER_BEHIND_PLAN

    if not has_eod_today:
        return CLUSTER_MISSING_UPDATES

    return CLUSTER_ON_TRACK


def workflow_tab(po: WorkOrderAggregate) -> str:
    """Bucket an annotated PO into one of the workflow tabs."""

    if po.workflow_state == STATE_COMPLETED:
        return TAB_COMPLETED
    if po.health is not None and po.health.status in (HEALTH_AT_RISK, HEALTH_DEADLINE_PASSED):
        return TAB_AT_RISK
    if po.workflow_state == STATE_RUNNING:
        return TAB_RUNNING
    if po.workflow_state == STATE_PLANNED:
        return TAB_PLANNED
    return TAB_NOT_STARTED
