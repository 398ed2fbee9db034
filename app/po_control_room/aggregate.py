"""Turn raw Supabase rows into annotated control-room orders."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Sequence

import pandas as pd

from app.date_utils import coerce_date
from app.po_control_room.health import classify
from app.po_control_room.models import WorkOrderAggregate
from app.po_control_room.state import (
    STATE_RUNNING,
    compute_avg_per_day,
    compute_cluster,
    compute_forecast_finish,
    compute_needed_per_day,
    compute_workflow_state,
)


def _sum_by_work_order(rows: Sequence[dict], columns: Sequence[str]) -> dict[str, dict[str, int]]:
    """Sum ``columns`` per ``work_order_id``; missing or invalid values count as 0."""

    if not rows:
        return {}
    frame = pd.DataFrame(list(rows))
    if "work_order_id" not in frame.columns:
        return {}
    frame = frame[frame["work_order_id"].notna()]
    if frame.empty:
        return {}
    for column in columns:
        if column not in frame.columns:
            frame[column] = 0
        frame[column] = pd.to_numeric(frame[column], errors="coerce").fillna(0)
    grouped = frame.groupby(frame["work_order_id"].astype(str))[list(columns)].sum()
    return {
        work_order_id: {column: int(values[column]) for column in columns}
        for work_order_id, values in grouped.to_dict(orient="index").items()
    }


def _line_label(line: dict | None) -> str | None:
    if not line:
        return None
    return line.get("name") or line.get("line_id") or None


class _LineDirectory:
    """Resolve line ids to display names and their unit/floor names."""

    def __init__(self, lines: Iterable[dict], units: Iterable[dict], floors: Iterable[dict]):
        self._lines = {str(row.get("id")): row for row in lines or [] if row.get("id") is not None}
        self._units = {str(row.get("id")): row.get("name") for row in units or []}
        self._floors = {str(row.get("id")): row.get("name") for row in floors or []}

    def label(self, line_id) -> str | None:
        if line_id is None:
            return None
        return _line_label(self._lines.get(str(line_id)))

    def unit_name(self, line_id) -> str | None:
        line = self._lines.get(str(line_id)) if line_id is not None else None
        if not line or line.get("unit_id") is None:
            return None
        return self._units.get(str(line["unit_id"]))

    def floor_name(self, line_id) -> str | None:
        line = self._lines.get(str(line_id)) if line_id is not None else None
        if not line or line.get("floor_id") is None:
            return None
        return self._floors.get(str(line["floor_id"]))


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def build_control_room_orders(
    work_orders: Sequence[dict],
    *,
    today: date,
    sewing_actuals: Sequence[dict] = (),
    finishing_logs: Sequence[dict] = (),
    extras_ledger: Sequence[dict] = (),
    line_assignments: Sequence[dict] = (),
    sewing_targets: Sequence[dict] = (),
    lines: Sequence[dict] = (),
    units: Sequence[dict] = (),
    floors: Sequence[dict] = (),
) -> list[WorkOrderAggregate]:
    """Aggregate production rows per work order and annotate each order.

    Sewing good/reject/rework output is summed over every daily actual,
    finished output is ``poly + carton`` over finishing OUTPUT logs and the
    extras ledger is summed by quantity.  Each resulting aggregate is then
    classified and given its workflow state, pace figures and cluster.
    """

    sewing = _sum_by_work_order(sewing_actuals, ("good_today", "reject_today", "rework_today"))
    output_logs = [
        row for row in finishing_logs or [] if (row.get("log_type") or "OUTPUT") == "OUTPUT"
    ]
    finishing = _sum_by_work_order(output_logs, ("poly", "carton"))
    ledger = _sum_by_work_order(extras_ledger, ("quantity",))

    actuals_by_order: dict[str, list[dict]] = defaultdict(list)
    eod_today: set[str] = set()
    for row in sewing_actuals or []:
        work_order_id = row.get("work_order_id")
        if work_order_id is None:
            continue
        actuals_by_order[str(work_order_id)].append(row)
        if coerce_date(row.get("production_date")) == today:
            eod_today.add(str(work_order_id))

    targeted = {
        str(row["work_order_id"]) for row in sewing_targets or [] if row.get("work_order_id") is not None
    }

    directory = _LineDirectory(lines, units, floors)
    assigned: dict[str, list[tuple[str, object]]] = defaultdict(list)
    for row in line_assignments or []:
        work_order_id = row.get("work_order_id")
        if work_order_id is None:
            continue
        name = _line_label(row.get("lines")) or directory.label(row.get("line_id")) or "Unknown"
        assigned[str(work_order_id)].append((name, row.get("line_id")))

    orders: list[WorkOrderAggregate] = []
    for wo in work_orders or []:
        work_order_id = str(wo.get("id"))
        sewn = sewing.get(work_order_id, {})
        finished = finishing.get(work_order_id, {})

        line_entries = assigned.get(work_order_id, [])
        if not line_entries:
            direct = _line_label(wo.get("lines")) or directory.label(wo.get("line_id"))
            if direct:
                line_entries = [(direct, wo.get("line_id"))]

        po = WorkOrderAggregate(
            id=work_order_id,
            po_number=wo.get("po_number") or "",
            buyer=wo.get("buyer") or "",
            style=wo.get("style"),
            item=wo.get("item"),
            color=wo.get("color"),
            order_qty=int(wo.get("order_qty") or 0),
            status=wo.get("status"),
            planned_ex_factory=coerce_date(wo.get("planned_ex_factory")),
            line_names=[name for name, _ in line_entries],
            line_id=wo.get("line_id"),
            unit_names=_unique(directory.unit_name(line_id) for _, line_id in line_entries),
            floor_names=_unique(directory.floor_name(line_id) for _, line_id in line_entries),
            sewing_output=sewn.get("good_today", 0),
            total_rejects=sewn.get("reject_today", 0),
            total_rework=sewn.get("rework_today", 0),
            finished_output=finished.get("poly", 0) + finished.get("carton", 0),
            extras_consumed=ledger.get(work_order_id, {}).get("quantity", 0),
            has_eod_today=work_order_id in eod_today,
        )
        annotate(
            po,
            today,
            actuals=actuals_by_order.get(work_order_id, []),
            has_target=work_order_id in targeted,
        )
        orders.append(po)

    return orders


def annotate(
    po: WorkOrderAggregate,
    today: date,
    *,
    actuals: Sequence[dict] = (),
    has_target: bool = False,
) -> WorkOrderAggregate:
    """Fill the derived fields of ``po`` in place and return it."""

    po.health = classify(po, today)
    po.started = bool(actuals)
    po.workflow_state = compute_workflow_state(
        has_any_actual=po.started,
        has_target=has_target,
        has_line=po.has_line,
        remaining=po.remaining,
    )
    pace = compute_avg_per_day(actuals, today)
    po.avg_per_day = pace.effective
    po.needed_per_day = compute_needed_per_day(po.remaining, po.planned_ex_factory, today)
    po.forecast_finish_date = compute_forecast_finish(po.remaining, po.avg_per_day, today)
    if po.workflow_state == STATE_RUNNING:
        po.cluster = compute_cluster(
            ex_factory=po.planned_ex_factory,
            remaining=po.remaining,
            needed_per_day=po.needed_per_day,
            avg_per_day=po.avg_per_day,
            forecast_finish=po.forecast_finish_date,
            has_eod_today=po.has_eod_today,
            today=today,
        )
    else:
        po.cluster = None
    return po
