import os
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import app as app_module
from app import create_app
from app.main import routes as routes_module
from config.supabase_schema import table_name
from supabase_fake import FakeSupabase

TODAY = date(2025, 3, 10)


@pytest.fixture
def submission_app(monkeypatch):
    fake_supabase = FakeSupabase()
    fake_supabase.tables.update(
        {
            table_name("work_orders"): [
                {
                    "id": "wo-1",
                    "factory_id": "factory-1",
                    "po_number": "PO-1",
                    "buyer": "ROSS",
                    "style": "ST-1",
                    "item": "Polo",
                    "color": "Navy",
                    "order_qty": 2000,
                }
            ],
            table_name("lines"): [
                {"id": "line-1", "factory_id": "factory-1", "line_id": "L1", "unit_id": "u-1", "floor_id": "f-1"}
            ],
            table_name("units"): [{"id": "u-1", "name": "Unit A"}],
            table_name("floors"): [{"id": "f-1", "name": "Floor 3"}],
            table_name("sewing_actuals"): [
                {
                    "factory_id": "factory-1",
                    "work_order_id": "wo-1",
                    "line_id": "line-1",
                    "production_date": "2025-03-08",
                    "cumulative_good_total": 300,
                },
                {
                    "factory_id": "factory-1",
                    "work_order_id": "wo-1",
                    "line_id": "line-1",
                    "production_date": "2025-03-09",
                    "cumulative_good_total": 520,
                },
            ],
            table_name("cutting_actuals"): [
                {
                    "factory_id": "factory-1",
                    "work_order_id": "wo-1",
                    "line_id": "line-1",
                    "production_date": "2025-03-08",
                    "day_cutting": 500,
                    "day_input": 400,
                },
                {
                    "factory_id": "factory-1",
                    "work_order_id": "wo-1",
                    "line_id": "line-1",
                    "production_date": "2025-03-09",
                    "day_cutting": 300,
                    "day_input": 250,
                },
            ],
        }
    )
    fake_supabase.unique[table_name("sewing_actuals")] = (
        "factory_id",
        "production_date",
        "line_id",
        "work_order_id",
    )
    fake_supabase.unique[table_name("finishing_daily_logs")] = (
        "factory_id",
        "production_date",
        "line_id",
        "work_order_id",
        "log_type",
    )
    monkeypatch.setattr(app_module, "create_client", lambda url, key: fake_supabase)
    monkeypatch.setattr(routes_module, "factory_today", lambda tz_name=None: TODAY)
    os.environ.setdefault("SECRET_KEY", "test")
    os.environ.setdefault("SUPABASE_URL", "http://localhost")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service")
    app = create_app()
    app.testing = True
    return app, fake_supabase


def _login(client, *roles):
    with client.session_transaction() as sess:
        sess["auth"] = {
            "user_id": "user-7",
            "email": "worker@example.com",
            "profile": {
                "id": "user-7",
                "full_name": "Floor Worker",
                "email": "worker@example.com",
                "factory_id": "factory-1",
            },
            "roles": [{"role": role, "factory_id": "factory-1"} for role in roles],
            "factory": None,
        }


SEWING_ACTUAL = {
    "line_id": "line-1",
    "work_order_id": "wo-1",
    "good_today": 80,
    "reject_today": 2,
    "rework_today": 1,
    "manpower_actual": 25,
    "hours_actual": 8,
    "actual_stage_id": "stage-sewing",
    "actual_stage_progress": 55,
}


def test_sewing_actual_is_saved_with_cumulative_total(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "worker")

    response = client.post("/sewing/actuals", json=SEWING_ACTUAL)

    assert response.status_code == 201
    saved = supabase.tables[table_name("sewing_actuals")][-1]
    assert saved["production_date"] == "2025-03-10"
    assert saved["cumulative_good_total"] == 600
    assert saved["actual_per_hour"] == 10.0
    assert saved["unit_name"] == "Unit A"
    assert saved["floor_name"] == "Floor 3"
    assert saved["buyer_name"] == "ROSS"
    assert saved["submitted_by"] == "user-7"
    assert response.get_json()["submission"]["id"] == saved["id"]


def test_duplicate_sewing_actual_conflicts(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "worker")

    assert client.post("/sewing/actuals", json=SEWING_ACTUAL).status_code == 201
    response = client.post("/sewing/actuals", json=SEWING_ACTUAL)

    assert response.status_code == 409


def test_sewing_actual_validation_errors(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "worker")

    response = client.post(
        "/sewing/actuals", data={**SEWING_ACTUAL, "manpower_actual": "0", "good_today": ""}
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == {
        "good_today": "This field is required",
        "manpower_actual": "Must be at least 1",
    }
    assert len(supabase.tables[table_name("sewing_actuals")]) == 2


def test_sewing_actual_unknown_po_and_line(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "worker")

    response = client.post(
        "/sewing/actuals", json={**SEWING_ACTUAL, "work_order_id": "wo-x", "line_id": "line-x"}
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == {
        "work_order_id": "PO not found",
        "line_id": "Line not found",
    }


def test_sewing_target_is_saved(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "admin")

    response = client.post(
        "/sewing/targets",
        json={
            "line_id": "line-1",
            "work_order_id": "wo-1",
            "per_hour_target": 110,
            "manpower_planned": 28,
            "hours_planned": 10,
            "planned_stage_id": "stage-sewing",
            "planned_stage_progress": 40,
        },
    )

    assert response.status_code == 201
    saved = supabase.tables[table_name("sewing_targets")][0]
    assert saved["target_total_planned"] == 1100


def test_cutting_actual_running_totals(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "cutting")

    response = client.post(
        "/cutting/actuals",
        json={"line_id": "line-1", "work_order_id": "wo-1", "day_cutting": 200, "day_input": 150},
    )

    assert response.status_code == 201
    saved = supabase.tables[table_name("cutting_actuals")][-1]
    assert saved["total_cutting"] == 1000
    assert saved["total_input"] == 800
    assert saved["balance"] == 1200
    assert saved["po_no"] == "PO-1"
    assert saved["is_late"] is False


def test_cutting_actual_requires_cutting_role(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "worker")

    response = client.post(
        "/cutting/actuals",
        json={"line_id": "line-1", "work_order_id": "wo-1", "day_cutting": 1, "day_input": 1},
    )

    assert response.status_code == 403


def test_sewing_target_rejects_non_finite_hours(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "admin")

    response = client.post(
        "/sewing/targets",
        data={
            "line_id": "line-1",
            "work_order_id": "wo-1",
            "per_hour_target": "110",
            "manpower_planned": "28",
            "hours_planned": "nan",
            "planned_stage_id": "stage-sewing",
            "planned_stage_progress": "40",
        },
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == {"hours_planned": "Must be a number"}
    assert table_name("sewing_targets") not in supabase.tables


CUTTING_TARGET = {
    "line_id": "line-1",
    "work_order_id": "wo-1",
    "man_power": 12,
    "marker_capacity": 900,
    "lay_capacity": 850,
    "cutting_capacity": 820,
    "hours_planned": 8,
    "day_cutting": 800,
    "day_input": 600,
}


def test_cutting_target_is_saved_and_marked_late(submission_app, monkeypatch):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "cutting")
    with client.session_transaction() as sess:
        auth = sess["auth"]
        auth["factory"] = {
            "id": "factory-1",
            "name": "Dhaka Knit",
            "slug": "dhaka-knit",
            "subscription_tier": "professional",
            "low_stock_threshold": 5,
            "morning_target_cutoff": "09:00",
            "evening_actual_cutoff": "18:00",
        }
        sess["auth"] = auth
    cutoffs = []

    def fake_is_late(cutoff, tz_name=None):
        cutoffs.append(cutoff)
        return True

    monkeypatch.setattr(routes_module, "is_late_for_cutoff", fake_is_late)

    response = client.post("/cutting/targets", json=CUTTING_TARGET)

    assert response.status_code == 201
    saved = supabase.tables[table_name("cutting_targets")][0]
    assert saved["production_date"] == "2025-03-10"
    assert saved["target_per_hour"] == 100.0
    assert saved["under_qty"] == 0
    assert saved["po_no"] == "PO-1"
    assert saved["order_qty"] == 2000
    assert saved["is_late"] is True
    assert cutoffs == ["09:00"]


def test_cutting_target_validation_errors(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "cutting")

    response = client.post(
        "/cutting/targets",
        json={**CUTTING_TARGET, "hours_planned": 0.2, "marker_capacity": -5, "day_input": None},
    )

    assert response.status_code == 400
    assert response.get_json()["errors"] == {
        "marker_capacity": "Cannot be negative",
        "hours_planned": "Must be between 0.5 and 24",
        "day_input": "This field is required",
    }
    assert table_name("cutting_targets") not in supabase.tables


def test_finishing_target_and_output_are_logged(submission_app):
    app, supabase = submission_app
    client = app.test_client()
    _login(client, "worker")

    target = client.post(
        "/finishing/targets",
        json={"work_order_id": "wo-1", "poly": 400, "carton": 350, "planned_hours": 9},
    )
    output = client.post(
        "/finishing/outputs",
        data={
            "work_order_id": "wo-1",
            "line_id": "line-1",
            "iron": "420",
            "poly": "380",
            "carton": "300",
            "actual_hours": "8.5",
            "m_power_actual": "14",
        },
    )

    assert target.status_code == 201
    assert output.status_code == 201
    target_row, output_row = supabase.tables[table_name("finishing_daily_logs")]
    assert target_row["log_type"] == "TARGET"
    assert target_row["line_id"] is None
    assert target_row["planned_hours"] == 9.0
    assert target_row["thread_cutting"] == 0
    assert target_row["ot_manpower_planned"] == 0
    assert output_row["log_type"] == "OUTPUT"
    assert output_row["line_id"] == "line-1"
    assert (output_row["poly"], output_row["carton"], output_row["iron"]) == (380, 300, 420)
    assert output_row["actual_hours"] == 8.5
    assert output_row["m_power_actual"] == 14
    assert output_row["production_date"] == "2025-03-10"


def test_duplicate_finishing_output_conflicts(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "worker")
    form = {"work_order_id": "wo-1", "carton": 120, "actual_hours": 8}

    assert client.post("/finishing/outputs", json=form).status_code == 201
    response = client.post("/finishing/outputs", json=form)

    assert response.status_code == 409


def test_finishing_output_requires_quantities_and_known_line(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "worker")

    empty = client.post("/finishing/outputs", json={"work_order_id": "wo-1", "actual_hours": 8})
    unknown = client.post(
        "/finishing/outputs",
        json={"work_order_id": "wo-x", "line_id": "line-x", "poly": 10, "actual_hours": 8},
    )

    assert empty.status_code == 400
    assert empty.get_json()["errors"] == {"processes": "Enter at least one output value"}
    assert unknown.status_code == 400
    assert unknown.get_json()["errors"] == {
        "work_order_id": "PO not found",
        "line_id": "Line not found",
    }


def test_cutting_role_cannot_log_finishing(submission_app):
    app, _ = submission_app
    client = app.test_client()
    _login(client, "cutting")

    response = client.post(
        "/finishing/targets", json={"work_order_id": "wo-1", "poly": 1, "planned_hours": 8}
    )

    assert response.status_code == 403
