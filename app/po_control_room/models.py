"""Record types shared by the PO control room computations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from app.date_utils import coerce_date, iso

HEALTH_HEALTHY = "healthy"
HEALTH_WATCH = "watch"
HEALTH_AT_RISK = "at_risk"
HEALTH_DEADLINE_PASSED = "deadline_passed"
HEALTH_NO_DEADLINE = "no_deadline"
HEALTH_COMPLETED = "completed"

HEALTH_STATUSES = (
    HEALTH_HEALTHY,
    HEALTH_WATCH,
    HEALTH_AT_RISK,
    HEALTH_DEADLINE_PASSED,
    HEALTH_NO_DEADLINE,
    HEALTH_COMPLETED,
)

ACTIVE_PO_STATUSES = frozenset({"not_started", "in_progress"})


@dataclass
class HealthReason:
    """Classification of a PO's schedule risk with its explanations."""

    status: str
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "reasons": list(self.reasons)}


# Alternate keys accepted by ``WorkOrderAggregate.from_mapping`` so payloads
# produced by the browser client (camelCase) load the same way as rows.
_AGGREGATE_ALIASES: dict[str, tuple[str, ...]] = {
    "sewing_output": ("sewing_output", "sewingOutput"),
    "finished_output": ("finished_output", "finishedOutput"),
    "extras_consumed": ("extras_consumed", "extrasConsumed"),
    "total_rejects": ("total_rejects", "totalRejects"),
    "total_rework": ("total_rework", "totalRework"),
    "has_eod_today": ("has_eod_today", "hasEodToday"),
    "unit_names": ("unit_names", "unitNames"),
    "floor_names": ("floor_names", "floorNames"),
}


@dataclass
class WorkOrderAggregate:
    """Per-PO snapshot of planning data and summed production counters.

    Instances are rebuilt on every fetch.  The trailing fields are derived
    annotations filled in by :mod:`app.po_control_room.aggregate`; they stay at
    their defaults for plain aggregates.
    """

    id: str
    po_number: str
    buyer: str
    style: str | None = None
    order_qty: int = 0
    status: str | None = None
    planned_ex_factory: date | None = None
    line_names: list[str] = field(default_factory=list)
    line_id: str | None = None
    unit_names: list[str] = field(default_factory=list)
    floor_names: list[str] = field(default_factory=list)
    item: str | None = None
    color: str | None = None
    sewing_output: int = 0
    finished_output: int = 0
    extras_consumed: int = 0
    total_rejects: int = 0
    total_rework: int = 0
    has_eod_today: bool = False

    health: HealthReason | None = None
    workflow_state: str | None = None
    cluster: str | None = None
    started: bool = False
    avg_per_day: float = 0.0
    needed_per_day: float = 0.0
    forecast_finish_date: date | None = None

    @property
    def progress_pct(self) -> float:
        if self.order_qty > 0:
            return min(self.finished_output / self.order_qty * 100, 100.0)
        return 0.0

    @property
    def remaining(self) -> int:
        return self.order_qty - self.finished_output

    @property
    def has_line(self) -> bool:
        return bool(self.line_names) or self.line_id is not None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_PO_STATUSES

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WorkOrderAggregate":
        """Build an aggregate from a row or JSON payload."""

        def pick(name: str, default=None):
            for key in _AGGREGATE_ALIASES.get(name, (name,)):
                if key in data and data[key] is not None:
                    return data[key]
            return default

        def number(name: str) -> int:
            try:
                return int(pick(name, 0) or 0)
            except (TypeError, ValueError):
                return 0

        return cls(
            id=str(pick("id", "")),
            po_number=str(pick("po_number", "")),
            buyer=str(pick("buyer", "")),
            style=pick("style"),
            order_qty=number("order_qty"),
            status=pick("status"),
            planned_ex_factory=coerce_date(pick("planned_ex_factory")),
            line_names=[str(name) for name in pick("line_names", []) or []],
            line_id=pick("line_id"),
            unit_names=[str(name) for name in pick("unit_names", []) or []],
            floor_names=[str(name) for name in pick("floor_names", []) or []],
            item=pick("item"),
            color=pick("color"),
            sewing_output=number("sewing_output"),
            finished_output=number("finished_output"),
            extras_consumed=number("extras_consumed"),
            total_rejects=number("total_rejects"),
            total_rework=number("total_rework"),
            has_eod_today=bool(pick("has_eod_today", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "buyer": self.buyer,
            "style": self.style,
            "item": self.item,
            "color": self.color,
            "order_qty": self.order_qty,
            "status": self.status,
            "planned_ex_factory": iso(self.planned_ex_factory),
            "line_names": list(self.line_names),
            "line_id": self.line_id,
            "unit_names": list(self.unit_names),
            "floor_names": list(self.floor_names),
            "sewing_output": self.sewing_output,
            "finished_output": self.finished_output,
            "extras_consumed": self.extras_consumed,
            "total_rejects": self.total_rejects,
            "total_rework": self.total_rework,
            "has_eod_today": self.has_eod_today,
            "progress_pct": self.progress_pct,
            "remaining": self.remaining,
            "health": self.health.to_dict() if self.health else None,
            "workflow_state": self.workflow_state,
            "cluster": self.cluster,
            "started": self.started,
            "avg_per_day": self.avg_per_day,
            "needed_per_day": self.needed_per_day,
            "forecast_finish_date": iso(self.forecast_finish_date),
        }
