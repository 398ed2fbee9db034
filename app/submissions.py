"""Validation and record building for daily production submissions.

Line supervisors submit morning targets and end-of-day actuals for the
cutting, sewing and finishing sections.  Validators accept any
mapping (``request.form`` or a JSON body) and return ``(values, errors)``
where ``errors`` maps the form field to a message.  Builders turn
validated values plus PO/line context into the row inserted in Supabase.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Any, Mapping

MAX_DAILY_QTY = 100000
MAX_MANPOWER = 500
MIN_HOURS = 0.5
MAX_HOURS = 24
MAX_REMARKS = 1000
DEFAULT_PLANNED_HOURS = 8

FINISHING_PROCESSES = (
    "thread_cutting",
    "inside_check",
    "top_side_check",
    "buttoning",
    "iron",
    "get_up",
    "poly",
    "carton",
)
FINISHING_TARGET = "TARGET"
FINISHING_OUTPUT = "OUTPUT"


def _raw(form: Mapping[str, Any], key: str):
    value = form.get(key)
    if isinstance(value, str):
        value = value.strip()
    return value


def _required_text(form, key: str, errors: dict, message: str) -> str | None:
    value = _raw(form, key)
    if value in (None, ""):
        errors[key] = message
        return None
    return str(value)


def _integer(
    form,
    key: str,
    errors: dict,
    *,
    minimum: int = 0,
    maximum: int | None = None,
    required: bool = True,
    default: int | None = None,
) -> int | None:
    value = _raw(form, key)
    if value in (None, ""):
        if required:
            errors[key] = "This field is required"
        return default
    if isinstance(value, bool):
        errors[key] = "Must be a whole number"
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        errors[key] = "Must be a whole number"
        return None
    if isinstance(value, float) and value != number:
        errors[key] = "Must be a whole number"
        return None
    if number < minimum:
        errors[key] = "Cannot be negative" if minimum == 0 else f"Must be at least {minimum}"
        return None
    if maximum is not None and number > maximum:
        errors[key] = "Too high"
        return None
    return number


def _decimal(
    form,
    key: str,
    errors: dict,
    *,
    minimum: float,
    maximum: float,
    required: bool = False,
    default: float | None = None,
) -> float | None:
    value = _raw(form, key)
    if value in (None, ""):
        if required:
            errors[key] = "This field is required"
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors[key] = "Must be a number"
        return None
    if not math.isfinite(number):
        errors[key] = "Must be a number"
        return None
    if number < minimum or number > maximum:
        errors[key] = f"Must be between {minimum:g} and {maximum:g}"
        return None
    return number


def _remarks(form, errors: dict) -> str | None:
    value = _raw(form, "remarks")
    if not value:
        return None
    if len(str(value)) > MAX_REMARKS:
        errors["remarks"] = "Remarks too long"
        return None
    return str(value)


def _common(form, errors: dict) -> dict:
    return {
        "line_id": _required_text(form, "line_id", errors, "Line is required"),
        "work_order_id": _required_text(form, "work_order_id", errors, "PO is required"),
    }


def validate_sewing_actual(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    errors: dict[str, str] = {}
    values = _common(form, errors)
    for key in ("good_today", "reject_today", "rework_today"):
        values[key] = _integer(form, key, errors, maximum=MAX_DAILY_QTY)
    values["manpower_actual"] = _integer(
        form, "manpower_actual", errors, minimum=1, maximum=MAX_MANPOWER
    )
    values["hours_actual"] = _decimal(
        form, "hours_actual", errors, minimum=MIN_HOURS, maximum=MAX_HOURS
    )
    values["ot_hours_actual"] = _decimal(
        form, "ot_hours_actual", errors, minimum=0, maximum=MAX_HOURS, default=0.0
    )
    values["actual_stage_id"] = _required_text(
        form, "actual_stage_id", errors, "Stage is required"
    )
    values["actual_stage_progress"] = _integer(
        form, "actual_stage_progress", errors, maximum=100
    )
    values["remarks"] = _remarks(form, errors)
    return values, errors


def validate_sewing_target(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    errors: dict[str, str] = {}
    values = _common(form, errors)
    values["per_hour_target"] = _integer(
        form, "per_hour_target", errors, maximum=MAX_DAILY_QTY
    )
    values["manpower_planned"] = _integer(
        form, "manpower_planned", errors, minimum=1, maximum=MAX_MANPOWER
    )
    values["hours_planned"] = _decimal(
        form, "hours_planned", errors, minimum=MIN_HOURS, maximum=MAX_HOURS
    )
    values["ot_hours_planned"] = _decimal(
        form, "ot_hours_planned", errors, minimum=0, maximum=MAX_HOURS, default=0.0
    )
    values["planned_stage_id"] = _required_text(
        form, "planned_stage_id", errors, "Stage is required"
    )
    values["planned_stage_progress"] = _integer(
        form, "planned_stage_progress", errors, maximum=100
    )
    values["remarks"] = _remarks(form, errors)
    return values, errors


def validate_cutting_actual(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    errors: dict[str, str] = {}
    values = _common(form, errors)
    values["day_cutting"] = _integer(form, "day_cutting", errors)
    values["day_input"] = _integer(form, "day_input", errors)
    return values, errors


def validate_cutting_target(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    errors: dict[str, str] = {}
    values = _common(form, errors)
    for key in ("man_power", "marker_capacity", "lay_capacity", "cutting_capacity"):
        values[key] = _integer(form, key, errors, maximum=MAX_DAILY_QTY)
    values["under_qty"] = _integer(
        form, "under_qty", errors, maximum=MAX_DAILY_QTY, required=False, default=0
    )
    values["hours_planned"] = _decimal(
        form, "hours_planned", errors, minimum=MIN_HOURS, maximum=MAX_HOURS, required=True
    )
    values["ot_hours_planned"] = _decimal(
        form, "ot_hours_planned", errors, minimum=0, maximum=MAX_HOURS, default=0.0
    )
    values["ot_manpower_planned"] = _integer(
        form, "ot_manpower_planned", errors, maximum=MAX_MANPOWER, required=False, default=0
    )
    values["day_cutting"] = _integer(form, "day_cutting", errors, maximum=MAX_DAILY_QTY)
    values["day_input"] = _integer(form, "day_input", errors, maximum=MAX_DAILY_QTY)
    return values, errors


def _validate_finishing_log(
    form: Mapping[str, Any], *, manpower_key: str, hours_key: str, ot_suffix: str, empty_message: str
) -> tuple[dict, dict[str, str]]:
    errors: dict[str, str] = {}
    line_id = _raw(form, "line_id")
    values: dict[str, Any] = {
        "line_id": str(line_id) if line_id not in (None, "") else None,
        "work_order_id": _required_text(form, "work_order_id", errors, "PO is required"),
    }

    entered = False
    for key in FINISHING_PROCESSES:
        if _raw(form, key) not in (None, ""):
            entered = True
        values[key] = _integer(
            form, key, errors, maximum=MAX_DAILY_QTY, required=False, default=0
        )
    if not entered:
        errors["processes"] = empty_message

    values[manpower_key] = _integer(
        form, manpower_key, errors, minimum=1, maximum=MAX_MANPOWER, required=False
    )
    values[hours_key] = _decimal(
        form, hours_key, errors, minimum=MIN_HOURS, maximum=MAX_HOURS, required=True
    )
    values[f"ot_hours_{ot_suffix}"] = _decimal(
        form, f"ot_hours_{ot_suffix}", errors, minimum=0, maximum=MAX_HOURS, default=0.0
    )
    values[f"ot_manpower_{ot_suffix}"] = _integer(
        form,
        f"ot_manpower_{ot_suffix}",
        errors,
        maximum=MAX_MANPOWER,
        required=False,
        default=0,
    )
    values["remarks"] = _remarks(form, errors)
    return values, errors


def validate_finishing_target(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    """Validate the morning finishing target sheet for one PO.

    The line is optional; at least one process quantity must be entered.
    """

    return _validate_finishing_log(
        form,
        manpower_key="m_power_planned",
        hours_key="planned_hours",
        ot_suffix="planned",
        empty_message="Enter at least one target value",
    )


def validate_finishing_output(form: Mapping[str, Any]) -> tuple[dict, dict[str, str]]:
    return _validate_finishing_log(
        form,
        manpower_key="m_power_actual",
        hours_key="actual_hours",
        ot_suffix="actual",
        empty_message="Enter at least one output value",
    )


def _base_record(values: dict, *, factory_id: str, user_id: str, production_date: date) -> dict:
    return {
        "factory_id": factory_id,
        "production_date": production_date.isoformat(),
        "submitted_by": user_id,
        "line_id": values["line_id"],
        "work_order_id": values["work_order_id"],
    }


def build_sewing_target_record(
    values: dict, *, factory_id: str, user_id: str, production_date: date
) -> dict:
    hours = values.get("hours_planned")
    record = _base_record(
        values, factory_id=factory_id, user_id=user_id, production_date=production_date
    )
    record.update(
        {
            "per_hour_target": values["per_hour_target"],
            "manpower_planned": values["manpower_planned"],
            "hours_planned": hours,
            "ot_hours_planned": values.get("ot_hours_planned") or 0,
            "target_total_planned": round(
                values["per_hour_target"] * (hours if hours is not None else DEFAULT_PLANNED_HOURS)
            ),
            "planned_stage_id": values["planned_stage_id"],
            "planned_stage_progress": values["planned_stage_progress"],
            "remarks": values.get("remarks"),
        }
    )
    return record


def build_sewing_actual_record(
    values: dict,
    *,
    factory_id: str,
    user_id: str,
    production_date: date,
    work_order: Mapping[str, Any] | None = None,
    line: Mapping[str, Any] | None = None,
    previous_cumulative: int = 0,
) -> dict:
    """Return the ``sewing_actuals`` row for a validated end-of-day form.

    ``cumulative_good_total`` continues from the last earlier submission of
    the same line and PO.  ``actual_per_hour`` is only filled when working
    hours were given.
    """

    work_order = work_order or {}
    line = line or {}
    good = values["good_today"]
    hours = values.get("hours_actual")

    record = _base_record(
        values, factory_id=factory_id, user_id=user_id, production_date=production_date
    )
    record.update(
        {
            "unit_name": line.get("unit_name") or "",
            "floor_name": line.get("floor_name") or "",
            "buyer_name": work_order.get("buyer") or "",
            "style_code": work_order.get("style") or "",
            "item_name": work_order.get("item") or "",
            "order_qty": int(work_order.get("order_qty") or 0),
            "good_today": good,
            "reject_today": values["reject_today"],
            "rework_today": values["rework_today"],
            "cumulative_good_total": int(previous_cumulative or 0) + good,
            "manpower_actual": values["manpower_actual"],
            "hours_actual": hours,
            "actual_per_hour": round(good / hours, 2) if hours else None,
            "ot_hours_actual": values.get("ot_hours_actual") or 0,
            "actual_stage_id": values["actual_stage_id"],
            "actual_stage_progress": values["actual_stage_progress"],
            "remarks": values.get("remarks"),
        }
    )
    return record


def build_cutting_actual_record(
    values: dict,
    *,
    factory_id: str,
    user_id: str,
    production_date: date,
    work_order: Mapping[str, Any] | None = None,
    previous_totals: Mapping[str, int] | None = None,
    is_late: bool = False,
) -> dict:
    """Return the ``cutting_actuals`` row with running totals and balance.

    Totals add today's figures to every earlier day of the same line and
    PO; ``balance`` is what remains to be input against the order quantity.
    """

    work_order = work_order or {}
    previous_totals = previous_totals or {}
    order_qty = int(work_order.get("order_qty") or 0)
    total_cutting = int(previous_totals.get("day_cutting") or 0) + values["day_cutting"]
    total_input = int(previous_totals.get("day_input") or 0) + values["day_input"]

    record = _base_record(
        values, factory_id=factory_id, user_id=user_id, production_date=production_date
    )
    record.update(
        {
            "buyer": work_order.get("buyer") or "",
            "style": work_order.get("style") or "",
            "po_no": work_order.get("po_number") or "",
            "colour": work_order.get("color") or "",
            "order_qty": order_qty,
            "day_cutting": values["day_cutting"],
            "total_cutting": total_cutting,
            "day_input": values["day_input"],
            "total_input": total_input,
            "balance": order_qty - total_input,
            "is_late": bool(is_late),
        }
    )
    return record


def build_cutting_target_record(
    values: dict,
    *,
    factory_id: str,
    user_id: str,
    production_date: date,
    work_order: Mapping[str, Any] | None = None,
    is_late: bool = False,
) -> dict:
    """Return the ``cutting_targets`` row for a validated morning form.

    ``target_per_hour`` spreads the planned day's cutting over the planned
    hours, rounded to two decimals.
    """

    work_order = work_order or {}
    hours = values.get("hours_planned")

    record = _base_record(
        values, factory_id=factory_id, user_id=user_id, production_date=production_date
    )
    record.update(
        {
            "buyer": work_order.get("buyer") or "",
            "style": work_order.get("style") or "",
            "po_no": work_order.get("po_number") or "",
            "colour": work_order.get("color") or "",
            "order_qty": int(work_order.get("order_qty") or 0),
            "man_power": values["man_power"],
            "marker_capacity": values["marker_capacity"],
            "lay_capacity": values["lay_capacity"],
            "cutting_capacity": values["cutting_capacity"],
            "under_qty": values.get("under_qty") or 0,
            "hours_planned": hours,
            "target_per_hour": round(values["day_cutting"] / hours, 2) if hours else None,
            "ot_hours_planned": values.get("ot_hours_planned") or 0,
            "ot_manpower_planned": values.get("ot_manpower_planned") or 0,
            "day_cutting": values["day_cutting"],
            "day_input": values["day_input"],
            "is_late": bool(is_late),
        }
    )
    return record


def _finishing_record(
    values: dict, log_type: str, *, factory_id: str, user_id: str, production_date: date
) -> dict:
    record = _base_record(
        values, factory_id=factory_id, user_id=user_id, production_date=production_date
    )
    record["log_type"] = log_type
    for key in FINISHING_PROCESSES:
        record[key] = values.get(key) or 0
    record["remarks"] = values.get("remarks")
    return record


def build_finishing_target_record(
    values: dict, *, factory_id: str, user_id: str, production_date: date
) -> dict:
    record = _finishing_record(
        values,
        FINISHING_TARGET,
        factory_id=factory_id,
        user_id=user_id,
        production_date=production_date,
    )
    record.update(
        {
            "m_power_planned": values.get("m_power_planned"),
            "planned_hours": values["planned_hours"],
            "ot_hours_planned": values.get("ot_hours_planned") or 0,
            "ot_manpower_planned": values.get("ot_manpower_planned") or 0,
        }
    )
    return record


def build_finishing_output_record(
    values: dict, *, factory_id: str, user_id: str, production_date: date
) -> dict:
    """Return the ``finishing_daily_logs`` OUTPUT row.

    ``poly`` and ``carton`` on OUTPUT rows are what the control room counts
    as finished garments.
    """

    record = _finishing_record(
        values,
        FINISHING_OUTPUT,
        factory_id=factory_id,
        user_id=user_id,
        production_date=production_date,
    )
    record.update(
        {
            "m_power_actual": values.get("m_power_actual"),
            "actual_hours": values["actual_hours"],
            "ot_hours_actual": values.get("ot_hours_actual") or 0,
            "ot_manpower_actual": values.get("ot_manpower_actual") or 0,
        }
    )
    return record
