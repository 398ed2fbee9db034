"""Schedule-risk classification for purchase orders."""

from __future__ import annotations

import math
from datetime import date

from app.date_utils import days_between
from app.po_control_room.models import (
    ACTIVE_PO_STATUSES,
    HEALTH_AT_RISK,
    HEALTH_COMPLETED,
    HEALTH_DEADLINE_PASSED,
    HEALTH_HEALTHY,
    HEALTH_NO_DEADLINE,
    HEALTH_WATCH,
    HealthReason,
    WorkOrderAggregate,
)

AT_RISK_DAYS = 7
AT_RISK_PROGRESS = 80
AT_RISK_REJECT_RATE = 5

WATCH_DAYS = 14
WATCH_PROGRESS = 60
BARELY_STARTED_DAYS = 30
BARELY_STARTED_PROGRESS = 10
WATCH_REJECT_RATE = 3
NO_EOD_PROGRESS = 80


def progress_pct(finished_output: float, order_qty: float) -> float:
    """Finished share of the order in percent, capped at 100."""

    if order_qty > 0:
        return min(finished_output / order_qty * 100, 100.0)
    return 0.0


def reject_rate(total_rejects: float, sewing_output: float) -> float:
    """Rejects per 100 good sewn units; zero when nothing was sewn."""

    if sewing_output > 0:
        return total_rejects / sewing_output * 100
    return 0.0


def is_active_status(status: str | None) -> bool:
    return status in ACTIVE_PO_STATUSES


def round_pct(value: float) -> int:
    """Round half away from zero, the way percentages are shown to users."""

    return int(math.floor(value + 0.5))


def _plural_days(days: int) -> str:
    return f"{days} day{'' if days == 1 else 's'}"


def days_to_ex_factory(po: WorkOrderAggregate, today: date) -> int | None:
    if po.planned_ex_factory is None:
        return None
    return days_between(po.planned_ex_factory, today)


def classify(po: WorkOrderAggregate, today: date) -> HealthReason:
    """Classify ``po`` into a health status with ordered reasons.

    Rules are evaluated in priority order: a fulfilled order is always
    ``completed``; an unfinished order past its ex-factory date is always
    ``deadline_passed``.  Otherwise at-risk signals are collected first and
    watch signals are only considered when none fired.  Thresholds compare
    the unrounded percentages; reason strings show them rounded.
    """

    pct = po.progress_pct
    days = days_to_ex_factory(po, today)

    if pct >= 100:
        return HealthReason(HEALTH_COMPLETED, ["Order fulfilled"])

    if days is not None and days < 0:
        overdue = abs(days)
        return HealthReason(
            HEALTH_DEADLINE_PASSED,
            [f"Deadline passed {_plural_days(overdue)} ago, {round_pct(pct)}% done"],
        )

    reasons: list[str] = []
    status = HEALTH_HEALTHY
    rate = reject_rate(po.total_rejects, po.sewing_output)
    active = is_active_status(po.status)

    if days is not None and days <= AT_RISK_DAYS and pct < AT_RISK_PROGRESS:
        reasons.append(
            f"Ex-factory in {_plural_days(days)}, only {round_pct(pct)}% done"
        )
        status = HEALTH_AT_RISK
    if active and not po.has_line:
        reasons.append("No line assigned")
        status = HEALTH_AT_RISK
    if rate > AT_RISK_REJECT_RATE:
        reasons.append(f"Reject rate {rate:.1f}%")
        status = HEALTH_AT_RISK

    if status != HEALTH_AT_RISK:
        if days is not None and days <= WATCH_DAYS and pct < WATCH_PROGRESS:
            reasons.append(
                f"Ex-factory in {_plural_days(days)}, only {round_pct(pct)}% done"
            )
            status = HEALTH_WATCH
        if (
            days is not None
            and days <= BARELY_STARTED_DAYS
            and pct < BARELY_STARTED_PROGRESS
        ):
            reasons.append(
                f"Ex-factory in {_plural_days(days)}, barely started ({round_pct(pct)}% done)"
            )
            status = HEALTH_WATCH
        if rate > WATCH_REJECT_RATE:
            reasons.append(f"Reject rate {rate:.1f}%")
            status = HEALTH_WATCH
        if active and not po.has_eod_today and days is not None and pct < NO_EOD_PROGRESS:
            reasons.append("No EOD submitted today")
            status = HEALTH_WATCH

    if not reasons and days is None:
        return HealthReason(HEALTH_NO_DEADLINE, ["No deadline set"])

    if not reasons:
        reasons.append("On track")

    return HealthReason(status, reasons)


def health_of(po: WorkOrderAggregate, today: date) -> HealthReason:
    """Return the annotated health of ``po`` or classify it on demand."""

    if po.health is not None:
        return po.health
    return classify(po, today)
