import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.po_control_room.detail import build_po_detail, build_submission_rows
from app.po_control_room.models import WorkOrderAggregate


def _po():
    return WorkOrderAggregate(
        id="wo-1",
        po_number="PO-1",
        buyer="ROSS",
        order_qty=1000,
        sewing_output=800,
        finished_output=1050,
        total_rejects=40,
        total_rework=20,
        extras_consumed=30,
    )


def test_submission_rows_sorted_newest_first_by_type():
    rows = build_submission_rows(
        sewing_targets=[
            {"id": "t1", "production_date": "2025-03-09", "per_hour_target": 100, "hours_planned": 10, "lines": {"name": "Line 1"}},
            {"id": "t2", "production_date": "2025-03-10", "per_hour_target": 120, "hours_planned": None},
        ],
        sewing_actuals=[
            {"id": "a1", "production_date": "2025-03-10", "good_today": 1234, "lines": {"line_id": "L2"}},
        ],
        cutting_actuals=[{"id": "c1", "production_date": "2025-03-09", "total_cutting": 5000}],
        finishing_logs=[
            {"id": "f1", "production_date": "2025-03-10", "log_type": "OUTPUT", "poly": 10, "carton": 5},
            {"id": "f2", "production_date": "2025-03-08", "log_type": "TARGET", "per_hour_target": 50},
        ],
    )

    assert [row["id"] for row in rows] == ["t2", "a1", "f1", "t1", "c1", "f2"]
    headlines = {row["id"]: row["headline"] for row in rows}
    assert headlines == {
        "t1": "Target 1,000",
        "t2": "Target 960",
        "a1": "Output 1,234",
        "c1": "Cut 5,000",
        "f1": "Finished 15",
        "f2": "Fin. Target 50",
    }
    assert rows[1]["line_name"] == "L2"
    assert rows[0]["line_name"] == "-"


def test_detail_pipeline_and_quality():
    sources = {
        "storage_cards": [
            {
                "storage_bin_card_transactions": [
                    {"receive_qty": 600, "transaction_date": "2025-03-01"},
                    {"receive_qty": 600, "transaction_date": "2025-03-04"},
                ]
            }
        ],
        "cutting_actuals": [
            {"production_date": "2025-03-05", "total_cutting": 400},
            {"production_date": "2025-03-06", "total_cutting": 900},
        ],
        "sewing_actuals": [{"production_date": "2025-03-07", "good_today": 800}],
        "finishing_logs": [
            {"production_date": "2025-03-08", "log_type": "OUTPUT", "poly": 600, "carton": 450},
            {"production_date": "2025-03-09", "log_type": "TARGET", "per_hour_target": 100},
        ],
    }

    detail = build_po_detail(_po(), sources)

    pipeline = {stage["stage"]: stage for stage in detail["pipeline"]}
    assert pipeline["storage"]["qty"] == 1200
    assert pipeline["storage"]["pct"] == 100
    assert pipeline["storage"]["last_date"] == "2025-03-04"
    assert pipeline["cutting"]["qty"] == 900
    assert pipeline["cutting"]["pct"] == 90
    assert pipeline["sewing"]["qty"] == 800
    assert pipeline["sewing"]["last_date"] == "2025-03-07"
    assert pipeline["finishing"]["qty"] == 1050
    assert pipeline["finishing"]["last_date"] == "2025-03-08"

    quality = detail["quality"]
    assert quality["reject_rate"] == 5.0
    assert quality["rework_rate"] == 2.5
    assert quality["extras_total"] == 50
    assert quality["extras_available"] == 20
    assert len(detail["submissions"]) == 5


def test_detail_without_order_uses_safe_defaults():
    detail = build_po_detail(None, {})

    assert [stage["qty"] for stage in detail["pipeline"]] == [0, 0, 0, 0]
    assert detail["quality"]["reject_rate"] == 0.0
    assert detail["submissions"] == []
