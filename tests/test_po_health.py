import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.po_control_room.health import classify, progress_pct, reject_rate, round_pct
from app.po_control_room.models import WorkOrderAggregate

TODAY = date(2025, 3, 10)


def make_po(**overrides):
    values = {
        "id": "wo-1",
        "po_number": "PO-1",
        "buyer": "ROSS",
        "order_qty": 1000,
        "status": "in_progress",
        "planned_ex_factory": TODAY + timedelta(days=60),
        "line_names": ["L1"],
        "sewing_output": 500,
        "finished_output": 700,
        "has_eod_today": True,
    }
    values.update(overrides)
    return WorkOrderAggregate(**values)


def test_fulfilled_order_is_completed_regardless_of_deadline():
    po = make_po(
        finished_output=1000,
        planned_ex_factory=TODAY - timedelta(days=20),
        line_names=[],
        total_rejects=400,
    )

    health = classify(po, TODAY)

    assert health.status == "completed"
    assert health.reasons == ["Order fulfilled"]


def test_overshoot_counts_as_completed():
    po = make_po(finished_output=1250, planned_ex_factory=None)
    assert classify(po, TODAY).status == "completed"


def test_deadline_passed_reports_days_and_progress():
    po = make_po(planned_ex_factory=TODAY - timedelta(days=15), finished_output=200)

    health = classify(po, TODAY)

    assert health.status == "deadline_passed"
    assert health.reasons == ["Deadline passed 15 days ago, 20% done"]


def test_deadline_passed_singular_day_and_beats_at_risk_signals():
    po = make_po(
        planned_ex_factory=TODAY - timedelta(days=1),
        finished_output=0,
        line_names=[],
        total_rejects=100,
        sewing_output=100,
    )

    health = classify(po, TODAY)

    assert health.status == "deadline_passed"
    assert health.reasons == ["Deadline passed 1 day ago, 0% done"]


def test_at_risk_collects_every_firing_reason():
    po = make_po(
        planned_ex_factory=TODAY + timedelta(days=5),
        finished_output=300,
        line_names=[],
        sewing_output=100,
        total_rejects=6,
    )

    health = classify(po, TODAY)

    assert health.status == "at_risk"
    assert health.reasons == [
        "Ex-factory in 5 days, only 30% done",
        "No line assigned",
        "Reject rate 6.0%",
    ]


def test_at_risk_is_not_downgraded_by_watch_conditions():
    po = make_po(
        planned_ex_factory=TODAY + timedelta(days=10),
        finished_output=50,
        line_names=[],
        has_eod_today=False,
    )

    health = classify(po, TODAY)

    assert health.status == "at_risk"
    assert health.reasons == ["No line assigned"]


def test_line_id_alone_counts_as_assigned():
    po = make_po(line_names=[], line_id="line-9")
    assert "No line assigned" not in classify(po, TODAY).reasons


def test_inactive_order_without_line_is_not_flagged():
    po = make_po(status="on_hold", line_names=[])
    assert classify(po, TODAY).status == "healthy"


def test_watch_when_deadline_two_weeks_out_and_behind():
    po = make_po(planned_ex_factory=TODAY + timedelta(days=12), finished_output=500)

    health = classify(po, TODAY)

    assert health.status == "watch"
    assert health.reasons == ["Ex-factory in 12 days, only 50% done"]


def test_watch_for_barely_started_order():
    po = make_po(planned_ex_factory=TODAY + timedelta(days=25), finished_output=50)

    health = classify(po, TODAY)

    assert health.status == "watch"
    assert health.reasons == ["Ex-factory in 25 days, barely started (5% done)"]


def test_watch_for_moderate_reject_rate_and_missing_eod():
    po = make_po(
        planned_ex_factory=TODAY + timedelta(days=40),
        finished_output=500,
        sewing_output=1000,
        total_rejects=40,
        has_eod_today=False,
    )

    health = classify(po, TODAY)

    assert health.status == "watch"
    assert health.reasons == ["Reject rate 4.0%", "No EOD submitted today"]


def test_missing_eod_ignored_without_deadline():
    po = make_po(planned_ex_factory=None, has_eod_today=False)

    health = classify(po, TODAY)

    assert health.status == "no_deadline"
    assert health.reasons == ["No deadline set"]


def test_no_deadline_keeps_other_reasons():
    po = make_po(planned_ex_factory=None, sewing_output=100, total_rejects=4)

    health = classify(po, TODAY)

    assert health.status == "watch"
    assert health.reasons == ["Reject rate 4.0%"]


def test_healthy_order_is_on_track():
    health = classify(make_po(), TODAY)
    assert health.status == "healthy"
    assert health.reasons == ["On track"]


def test_zero_quantity_order_has_no_progress():
    po = make_po(order_qty=0, finished_output=0, planned_ex_factory=None)
    assert progress_pct(po.finished_output, po.order_qty) == 0
    assert classify(po, TODAY).status == "no_deadline"


@pytest.mark.parametrize(
    "rejects, output, expected",
    [(0, 0, 0.0), (5, 0, 0.0), (5, 100, 5.0), (1, 3, pytest.approx(33.333, rel=1e-3))],
)
def test_reject_rate(rejects, output, expected):
    assert reject_rate(rejects, output) == expected


def test_round_pct_rounds_half_up():
    assert round_pct(19.5) == 20
    assert round_pct(19.49) == 19
    assert round_pct(0) == 0
