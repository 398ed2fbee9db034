import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.po_control_room.models import HealthReason, WorkOrderAggregate
from app.po_control_room.state import (
    compute_avg_per_day,
    compute_cluster,
    compute_forecast_finish,
    compute_needed_per_day,
    compute_workflow_state,
    workflow_tab,
)

TODAY = date(2025, 3, 10)


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"has_any_actual": True, "has_target": True, "has_line": True, "remaining": 0}, "completed"),
        ({"has_any_actual": True, "has_target": False, "has_line": False, "remaining": 5}, "running"),
        ({"has_any_actual": False, "has_target": True, "has_line": False, "remaining": 5}, "planned"),
        ({"has_any_actual": False, "has_target": False, "has_line": True, "remaining": 5}, "planned"),
        ({"has_any_actual": False, "has_target": False, "has_line": False, "remaining": 5}, "not_started"),
    ],
)
def test_compute_workflow_state(kwargs, expected):
    assert compute_workflow_state(**kwargs) == expected


def test_avg_per_day_prefers_three_day_window():
    actuals = [
        {"production_date": TODAY.isoformat(), "good_today": 90},
        {"production_date": (TODAY - timedelta(days=2)).isoformat(), "good_today": 60},
        {"production_date": (TODAY - timedelta(days=5)).isoformat(), "good_today": 70},
        {"production_date": (TODAY - timedelta(days=9)).isoformat(), "good_today": 500},
    ]

    pace = compute_avg_per_day(actuals, TODAY)

    assert pace.avg3d == pytest.approx(50.0)
    assert pace.avg7d == pytest.approx(220 / 7)
    assert pace.effective == pytest.approx(50.0)


def test_avg_per_day_falls_back_to_seven_day_window():
    actuals = [{"production_date": (TODAY - timedelta(days=4)).isoformat(), "good_today": 140}]

    pace = compute_avg_per_day(actuals, TODAY)

    assert pace.avg3d == 0
    assert pace.effective == pytest.approx(20.0)


def test_needed_per_day():
    assert compute_needed_per_day(0, TODAY, TODAY) == 0
    assert compute_needed_per_day(700, None, TODAY) == pytest.approx(100.0)
    assert compute_needed_per_day(500, TODAY + timedelta(days=5), TODAY) == pytest.approx(100.0)
    assert compute_needed_per_day(500, TODAY - timedelta(days=3), TODAY) == pytest.approx(500.0)


def test_forecast_finish_rounds_days_up():
    assert compute_forecast_finish(250, 100.0, TODAY) == TODAY + timedelta(days=3)
    assert compute_forecast_finish(250, 0, TODAY) is None
    assert compute_forecast_finish(0, 50.0, TODAY) is None


def _cluster(**overrides):
    values = {
        "ex_factory": TODAY + timedelta(days=30),
        "remaining": 300,
        "needed_per_day": 10.0,
        "avg_per_day": 50.0,
        "forecast_finish": TODAY + timedelta(days=6),
        "has_eod_today": True,
        "today": TODAY,
    }
    values.update(overrides)
    return compute_cluster(**values)


def test_cluster_rules_in_priority_order():
    assert _cluster(ex_factory=None) == "no_deadline"
    assert _cluster(ex_factory=TODAY + timedelta(days=7)) == "due_soon"
    assert _cluster(forecast_finish=TODAY + timedelta(days=31)) == "behind_plan"
    assert _cluster(needed_per_day=60.0) == "behind_plan"
    assert _cluster(has_eod_today=False) == "missing_updates"
    assert _cluster() == "on_track"


def test_workflow_tab_puts_risky_orders_in_at_risk():
    po = WorkOrderAggregate(id="1", po_number="PO-1", buyer="ROSS", order_qty=100)

    po.workflow_state = "running"
    po.health = HealthReason("at_risk", ["No line assigned"])
    assert workflow_tab(po) == "at_risk"

    po.health = HealthReason("healthy", ["On track"])
    assert workflow_tab(po) == "running"

    po.workflow_state = "completed"
    po.health = HealthReason("deadline_passed", [])
    assert workflow_tab(po) == "completed"
