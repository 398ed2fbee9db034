"""Expanded-row data for a single PO: submissions, pipeline and quality."""

from __future__ import annotations

from typing import Sequence

from app.date_utils import iso
from app.po_control_room.health import reject_rate, round_pct
from app.po_control_room.models import WorkOrderAggregate

SUBMISSION_TYPE_ORDER = {
    "sewing_target": 0,
    "sewing_actual": 1,
    "cutting_actual": 2,
    "finishing_target": 3,
    "finishing_actual": 4,
}


def _line_name(row: dict) -> str:
    line = row.get("lines") or {}
    return line.get("name") or line.get("line_id") or "-"


def _number(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _fmt(value: float) -> str:
    return f"{int(round(value)):,}"


def _submission(row: dict, kind: str, headline: str) -> dict:
    return {
        "id": row.get("id"),
        "type": kind,
        "date": iso(row.get("production_date")) or "",
        "line_name": _line_name(row),
        "submitted_at": row.get("submitted_at"),
        "headline": headline,
        "raw": row,
    }


def build_submission_rows(
    *,
    sewing_targets: Sequence[dict] = (),
    sewing_actuals: Sequence[dict] = (),
    cutting_actuals: Sequence[dict] = (),
    finishing_logs: Sequence[dict] = (),
) -> list[dict]:
    """Flatten every submission type into one list, newest date first.

    Rows on the same date keep the production order: targets, sewing
    actuals, cutting, then finishing.
    """

    rows: list[dict] = []
    for target in sewing_targets or []:
        planned = target.get("target_total_planned")
        if planned is None:
            hours = target.get("hours_planned")
            planned = round(_number(target.get("per_hour_target")) * (_number(hours) if hours is not None else 8))
        rows.append(_submission(target, "sewing_target", f"Target {_fmt(_number(planned))}"))

    for actual in sewing_actuals or []:
        rows.append(
            _submission(actual, "sewing_actual", f"Output {_fmt(_number(actual.get('good_today')))}")
        )

    for cutting in cutting_actuals or []:
        rows.append(
            _submission(cutting, "cutting_actual", f"Cut {_fmt(_number(cutting.get('total_cutting')))}")
        )

    for log in finishing_logs or []:
        if log.get("log_type") == "TARGET":
            qty = _number(log.get("per_hour_target"))
            rows.append(_submission(log, "finishing_target", f"Fin. Target {_fmt(qty)}"))
        else:
            qty = _number(log.get("poly")) + _number(log.get("carton"))
            rows.append(_submission(log, "finishing_actual", f"Finished {_fmt(qty)}"))

    rows.sort(key=lambda row: SUBMISSION_TYPE_ORDER.get(row["type"], 9))
    rows.sort(key=lambda row: row["date"], reverse=True)
    return rows


def _latest(current: str | None, candidate) -> str | None:
    value = iso(candidate)
    if value and (current is None or value > current):
        return value
    return current


def build_pipeline(
    po: WorkOrderAggregate | None,
    *,
    storage_cards: Sequence[dict] = (),
    cutting_actuals: Sequence[dict] = (),
    sewing_actuals: Sequence[dict] = (),
    finishing_logs: Sequence[dict] = (),
) -> list[dict]:
    """Quantities reached at each production stage for ``po``."""

    order_qty = (po.order_qty if po else 0) or 1

    storage_qty = 0.0
    storage_date = None
    for card in storage_cards or []:
        for tx in card.get("storage_bin_card_transactions") or []:
            storage_qty += _number(tx.get("receive_qty"))
            storage_date = _latest(storage_date, tx.get("transaction_date"))

    # total_cutting is already cumulative, so the stage reached is the max.
    cutting_qty = 0.0
    cutting_date = None
    for cutting in cutting_actuals or []:
        cutting_qty = max(cutting_qty, _number(cutting.get("total_cutting")))
        cutting_date = _latest(cutting_date, cutting.get("production_date"))

    sewing_qty = float(po.sewing_output) if po else 0.0
    sewing_date = None
    for actual in sewing_actuals or []:
        sewing_date = _latest(sewing_date, actual.get("production_date"))

    finishing_qty = 0.0
    finishing_date = None
    for log in finishing_logs or []:
        if log.get("log_type") == "TARGET":
            continue
        finishing_qty += _number(log.get("poly")) + _number(log.get("carton"))
        finishing_date = _latest(finishing_date, log.get("production_date"))

    def stage(key: str, label: str, qty: float, last_date: str | None) -> dict:
        return {
            "stage": key,
            "label": label,
            "qty": int(qty),
            "pct": min(round_pct(qty / order_qty * 100), 100),
            "last_date": last_date,
        }

    return [
        stage("storage", "Storage", storage_qty, storage_date),
        stage("cutting", "Cutting", cutting_qty, cutting_date),
        stage("sewing", "Sewing", sewing_qty, sewing_date),
        stage("finishing", "Finishing", finishing_qty, finishing_date),
    ]


def build_quality(po: WorkOrderAggregate | None, pipeline: Sequence[dict]) -> dict:
    order_qty = (po.order_qty if po else 0) or 1
    total_output = po.sewing_output if po else 0
    total_rejects = po.total_rejects if po else 0
    total_rework = po.total_rework if po else 0
    finishing_qty = next(
        (stage["qty"] for stage in pipeline if stage["stage"] == "finishing"), 0
    )
    extras_total = max(finishing_qty - order_qty, 0)
    extras_consumed = po.extras_consumed if po else 0
    return {
        "total_output": total_output,
        "total_rejects": total_rejects,
        "total_rework": total_rework,
        "reject_rate": reject_rate(total_rejects, total_output),
        "rework_rate": total_rework / total_output * 100 if total_output > 0 else 0.0,
        "extras_total": extras_total,
        "extras_consumed": extras_consumed,
        "extras_available": max(extras_total - extras_consumed, 0),
    }


def build_po_detail(po: WorkOrderAggregate | None, sources: dict) -> dict:
    """Assemble the expanded-row payload from the fetched detail ``sources``."""

    submissions = build_submission_rows(
        sewing_targets=sources.get("sewing_targets", []),
        sewing_actuals=sources.get("sewing_actuals", []),
        cutting_actuals=sources.get("cutting_actuals", []),
        finishing_logs=sources.get("finishing_logs", []),
    )
    pipeline = build_pipeline(
        po,
        storage_cards=sources.get("storage_cards", []),
        cutting_actuals=sources.get("cutting_actuals", []),
        sewing_actuals=sources.get("sewing_actuals", []),
        finishing_logs=sources.get("finishing_logs", []),
    )
    return {
        "submissions": submissions,
        "pipeline": pipeline,
        "quality": build_quality(po, pipeline),
    }
