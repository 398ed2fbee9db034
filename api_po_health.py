from __future__ import annotations

from typing import Any, Dict, List

from fastapi import Body, FastAPI, HTTPException

from app.date_utils import coerce_date, factory_today
from app.po_control_room import (
    WorkOrderAggregate,
    apply_filters,
    classify,
    count_active_filters,
    derive_filter_options,
    filters_from_params,
    filters_to_params,
)


app = FastAPI(title="PO Health Classification API")


def _resolve_today(payload: Dict[str, Any]):
    raw = payload.get("today")
    if raw is None:
        return factory_today(payload.get("timezone"))
    today = coerce_date(raw)
    if today is None:
        raise HTTPException(status_code=422, detail=f"Invalid date for 'today': {raw!r}")
    return today


def _load_params(payload: Dict[str, Any]) -> Dict[str, str]:
    raw = payload.get("params") or {}
    if not isinstance(raw, dict):
        raise HTTPException(status_code=422, detail="'params' must be an object")

    params = {}
    for key, value in raw.items():
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            value = ",".join(value)
        if not isinstance(value, str):
            raise HTTPException(
                status_code=422,
                detail=f"Filter '{key}' must be a string or a list of strings",
            )
        params[key] = value
    return params


def _load_orders(payload: Dict[str, Any]) -> List[WorkOrderAggregate]:
    rows = payload.get("orders") or []
    if not isinstance(rows, list):
        raise HTTPException(status_code=422, detail="'orders' must be a list")
    return [WorkOrderAggregate.from_mapping(row) for row in rows if isinstance(row, dict)]


@app.post("/health")
def health_endpoint(
    payload: Dict[str, Any] = Body(..., examples=[{
        "today": "2025-03-10",
        "orders": [
            {
                "id": "wo-1",
                "po_number": "PO-1001",
                "buyer": "Acme",
                "order_qty": 1000,
                "status": "in_progress",
                "planned_ex_factory": "2025-03-15",
                "line_names": ["Line 1"],
                "sewing_output": 400,
                "finished_output": 300,
                "total_rejects": 10,
                "has_eod_today": True,
            }
        ],
    }])
):
    today = _resolve_today(payload)
    results = []
    for po in _load_orders(payload):
        health = classify(po, today)
        results.append({"id": po.id, "po_number": po.po_number, **health.to_dict()})
    return {"today": today.isoformat(), "results": results, "count": len(results)}


@app.post("/filter")
def filter_endpoint(payload: Dict[str, Any]):
    today = _resolve_today(payload)
    orders = _load_orders(payload)
    for po in orders:
        po.health = classify(po, today)

    filters = filters_from_params(_load_params(payload))
    matched = apply_filters(orders, filters, today)
    return {
        "orders": [po.to_dict() for po in matched],
        "count": len(matched),
        "options": derive_filter_options(orders, today),
        "active_filter_count": count_active_filters(filters),
        "params": filters_to_params(filters),
    }


# To run locally:
#   uvicorn api_po_health:app --reload --port 8080
