import json
from datetime import date, datetime, timezone
from typing import Any, Callable, Tuple

from flask import current_app

from config.supabase_schema import column_name, table_name, to_supabase_payload

DUPLICATE_KEY_CODE = "23505"


def _ensure_supabase_client() -> Tuple[Any, str | None]:
    """Return the configured Supabase client or an explanatory error.

    Returns:
        tuple: (client, error). When Supabase is unavailable the client will be
        ``None`` and ``error`` will contain a message explaining the failure.
    """

    supabase = current_app.config.get("SUPABASE")
    if not supabase or not hasattr(supabase, "table"):
        return None, (
            "Supabase client is not configured. Set SUPABASE_URL and SUPABASE_"
            "SERVICE_KEY to enable production tracking."
        )
    return supabase, None


def _normalize_date_for_query(value: date | datetime | str | None) -> str | None:
    """Return an ISO formatted date string for Supabase filters."""

    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _error_code(exc: Exception) -> str | None:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    text = str(exc)
    if DUPLICATE_KEY_CODE in text or "duplicate key" in text.lower():
        return DUPLICATE_KEY_CODE
    return None


def _fetch_paginated(build_query: Callable[[], Any], page_size: int = 1000) -> list[dict]:
    """Run the query produced by ``build_query`` page by page.

    Supabase caps responses to 1,000 rows by default, so a factory with a
    long production history would otherwise silently lose submissions.
    """

    if page_size <= 0:
        raise ValueError("page_size must be greater than zero")

    rows: list[dict] = []
    offset = 0
    while True:
        response = build_query().range(offset, offset + page_size - 1).execute()
        batch = response.data or []
        rows.extend(batch)
        if len(batch) < page_size:
            break
        offset += page_size
    return rows


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def sign_in_with_password(email: str, password: str) -> tuple[dict | None, str | None]:
    """Authenticate against Supabase Auth and return the user and access token."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = supabase.auth.sign_in_with_password(
            {"email": email, "password": password}
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Sign-in failed: {exc}"

    user = getattr(response, "user", None)
    auth_session = getattr(response, "session", None)
    if not user:
        return None, "Invalid credentials."
    return {
        "user_id": str(getattr(user, "id", "")),
        "email": getattr(user, "email", None) or email,
        "access_token": getattr(auth_session, "access_token", None),
    }, None


def sign_out() -> str | None:
    supabase, error = _ensure_supabase_client()
    if error:
        return error
    try:
        supabase.auth.sign_out()
    except Exception as exc:  # pragma: no cover - session may already be gone
        return f"Sign-out failed: {exc}"
    return None


def fetch_profile(user_id: str) -> tuple[dict | None, str | None]:
    """Return the ``profiles`` row for ``user_id``."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("profiles"))
            .select("*")
            .eq(column_name("profiles", "id"), user_id)
            .limit(1)
            .execute()
        )
        records = response.data or []
        return (records[0] if records else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch profile: {exc}"


def fetch_user_roles(user_id: str) -> tuple[list[dict] | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("user_roles"))
            .select(
                ", ".join(
                    (column_name("user_roles", "role"), column_name("user_roles", "factory_id"))
                )
            )
            .eq(column_name("user_roles", "user_id"), user_id)
            .execute()
        )
        return response.data or [], None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch roles: {exc}"


def fetch_factory(factory_id: str) -> tuple[dict | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("factory_accounts"))
            .select("*")
            .eq(column_name("factory_accounts", "id"), factory_id)
            .limit(1)
            .execute()
        )
        records = response.data or []
        return (records[0] if records else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch factory: {exc}"


# ---------------------------------------------------------------------------
# Work orders and production submissions
# ---------------------------------------------------------------------------


def fetch_work_orders(factory_id: str) -> tuple[list[dict] | None, str | None]:
    """Return the active work orders of ``factory_id`` ordered by PO number."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        rows = _fetch_paginated(
            lambda: supabase.table(table_name("work_orders"))
            .select("*, lines(name, line_id)")
            .eq(column_name("work_orders", "factory_id"), factory_id)
            .eq(column_name("work_orders", "is_active"), True)
            .order(column_name("work_orders", "po_number"))
        )
        return rows, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch work orders: {exc}"


def fetch_work_order(factory_id: str, work_order_id: str) -> tuple[dict | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("work_orders"))
            .select("*")
            .eq(column_name("work_orders", "factory_id"), factory_id)
            .eq(column_name("work_orders", "id"), work_order_id)
            .limit(1)
            .execute()
        )
        records = response.data or []
        return (records[0] if records else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch work order: {exc}"


def _factory_rows(
    supabase,
    table: str,
    factory_id: str,
    *,
    columns: str = "*",
    work_order_ids: list[str] | None = None,
    active_only: bool = False,
    extra: Callable[[Any], Any] | None = None,
) -> list[dict]:
    def build():
        query = (
            supabase.table(table_name(table))
            .select(columns)
            .eq(column_name(table, "factory_id"), factory_id)
        )
        if work_order_ids is not None:
            query = query.in_(column_name(table, "work_order_id"), work_order_ids)
        if active_only:
            query = query.eq(column_name(table, "is_active"), True)
        if extra is not None:
            query = extra(query)
        return query

    return _fetch_paginated(build)


def fetch_control_room_sources(
    factory_id: str, work_order_ids: list[str]
) -> tuple[dict[str, list[dict]] | None, str | None]:
    """Fetch every row needed to aggregate the control-room list.

    Returns:
        tuple[dict | None, str | None]: keyword arguments for
        :func:`app.po_control_room.aggregate.build_control_room_orders` or an
        error message.
    """

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    empty = {
        "sewing_actuals": [],
        "finishing_logs": [],
        "extras_ledger": [],
        "line_assignments": [],
        "sewing_targets": [],
        "lines": [],
        "units": [],
        "floors": [],
    }
    if not work_order_ids:
        return empty, None

    try:
        sources = dict(empty)
        sources["sewing_actuals"] = _factory_rows(
            supabase,
            "sewing_actuals",
            factory_id,
            columns="work_order_id, production_date, good_today, reject_today, rework_today",
            work_order_ids=work_order_ids,
        )
        sources["finishing_logs"] = _factory_rows(
            supabase,
            "finishing_daily_logs",
            factory_id,
            columns="work_order_id, log_type, poly, carton",
            work_order_ids=work_order_ids,
            extra=lambda query: query.eq(column_name("finishing_daily_logs", "log_type"), "OUTPUT"),
        )
        sources["extras_ledger"] = _factory_rows(
            supabase,
            "extras_ledger",
            factory_id,
            columns="work_order_id, quantity",
            work_order_ids=work_order_ids,
        )
        sources["line_assignments"] = _factory_rows(
            supabase,
            "work_order_line_assignments",
            factory_id,
            columns="work_order_id, line_id, lines(name, line_id)",
            work_order_ids=work_order_ids,
        )
        sources["sewing_targets"] = _factory_rows(
            supabase,
            "sewing_targets",
            factory_id,
            columns="work_order_id",
            work_order_ids=work_order_ids,
        )
        sources["lines"] = _factory_rows(supabase, "lines", factory_id)
        sources["units"] = _factory_rows(supabase, "units", factory_id)
        sources["floors"] = _factory_rows(supabase, "floors", factory_id)
        return sources, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch production data: {exc}"


def fetch_work_order_detail(
    factory_id: str, work_order_id: str
) -> tuple[dict[str, list[dict]] | None, str | None]:
    """Fetch the submissions and storage cards shown in an expanded PO row."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    embed = "*, lines(name, line_id), work_orders(po_number, buyer, style, order_qty)"

    def rows(table: str, columns: str, limit: int | None = None) -> list[dict]:
        query = (
            supabase.table(table_name(table))
            .select(columns)
            .eq(column_name(table, "work_order_id"), work_order_id)
            .eq(column_name(table, "factory_id"), factory_id)
            .order(column_name(table, "production_date"), desc=True)
        )
        if limit:
            query = query.limit(limit)
        return query.execute().data or []

    try:
        storage = (
            supabase.table(table_name("storage_bin_cards"))
            .select("id, storage_bin_card_transactions(receive_qty, issue_qty, transaction_date)")
            .eq(column_name("storage_bin_cards", "work_order_id"), work_order_id)
            .eq(column_name("storage_bin_cards", "factory_id"), factory_id)
            .execute()
        )
        return {
            "sewing_targets": rows("sewing_targets", embed, limit=30),
            "sewing_actuals": rows("sewing_actuals", embed, limit=30),
            "cutting_actuals": rows("cutting_actuals", embed),
            "finishing_logs": rows("finishing_daily_logs", embed),
            "storage_cards": storage.data or [],
        }, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch work order detail: {exc}"


def fetch_line_context(factory_id: str, line_id: str) -> tuple[dict | None, str | None]:
    """Return the line row with ``unit_name`` and ``floor_name`` resolved."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("lines"))
            .select("*")
            .eq(column_name("lines", "factory_id"), factory_id)
            .eq(column_name("lines", "id"), line_id)
            .limit(1)
            .execute()
        )
        records = response.data or []
        if not records:
            return None, None
        line = dict(records[0])

        for key, table in (("unit", "units"), ("floor", "floors")):
            ref = line.get(f"{key}_id")
            line[f"{key}_name"] = ""
            if ref is None:
                continue
            lookup = (
                supabase.table(table_name(table))
                .select("name")
                .eq(column_name(table, "id"), ref)
                .limit(1)
                .execute()
            )
            found = lookup.data or []
            if found:
                line[f"{key}_name"] = found[0].get("name") or ""
        return line, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch line: {exc}"


def fetch_previous_cutting_totals(
    factory_id: str,
    line_id: str,
    work_order_id: str,
    before: date | str,
) -> tuple[dict[str, int] | None, str | None]:
    """Sum earlier ``day_cutting`` and ``day_input`` for a line and PO."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("cutting_actuals"))
            .select("day_cutting, day_input")
            .eq(column_name("cutting_actuals", "factory_id"), factory_id)
            .eq(column_name("cutting_actuals", "line_id"), line_id)
            .eq(column_name("cutting_actuals", "work_order_id"), work_order_id)
            .lt(column_name("cutting_actuals", "production_date"), _normalize_date_for_query(before))
            .execute()
        )
        totals = {"day_cutting": 0, "day_input": 0}
        for row in response.data or []:
            totals["day_cutting"] += int(row.get("day_cutting") or 0)
            totals["day_input"] += int(row.get("day_input") or 0)
        return totals, None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch previous cutting totals: {exc}"


def fetch_previous_cumulative_good(
    factory_id: str,
    line_id: str,
    work_order_id: str,
    before: date | str,
) -> tuple[int | None, str | None]:
    """Return the latest ``cumulative_good_total`` recorded before ``before``."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("sewing_actuals"))
            .select(column_name("sewing_actuals", "cumulative_good_total"))
            .eq(column_name("sewing_actuals", "factory_id"), factory_id)
            .eq(column_name("sewing_actuals", "line_id"), line_id)
            .eq(column_name("sewing_actuals", "work_order_id"), work_order_id)
            .lt(column_name("sewing_actuals", "production_date"), _normalize_date_for_query(before))
            .order(column_name("sewing_actuals", "production_date"), desc=True)
            .limit(1)
            .execute()
        )
        records = response.data or []
        if not records:
            return 0, None
        return int(records[0].get("cumulative_good_total") or 0), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch previous cumulative output: {exc}"


def insert_submission(
    table_identifier: str, record: dict
) -> tuple[list[dict] | None, str | None, str | None]:
    """Insert a daily submission row.

    Returns:
        tuple: (rows, error, error_code). ``error_code`` carries the Postgres
        code when available so duplicates (``23505``) can be told apart.
    """

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error, None

    payload = to_supabase_payload(table_identifier, record)
    try:
        response = supabase.table(table_name(table_identifier)).insert(payload).execute()
        return response.data or [], None, None
    except Exception as exc:
        return None, f"Failed to save submission: {exc}", _error_code(exc)


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------


def fetch_knowledge_document(document_id: str) -> tuple[dict | None, str | None]:
    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        response = (
            supabase.table(table_name("knowledge_documents"))
            .select("*")
            .eq(column_name("knowledge_documents", "id"), document_id)
            .limit(1)
            .execute()
        )
        records = response.data or []
        return (records[0] if records else None), None
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch document: {exc}"


def upsert_ingestion_status(document_id: str, values: dict) -> str | None:
    supabase, error = _ensure_supabase_client()
    if error:
        return error

    payload = to_supabase_payload(
        "document_ingestion_queue", {"document_id": document_id, **values}
    )
    try:
        supabase.table(table_name("document_ingestion_queue")).upsert(
            payload, on_conflict=column_name("document_ingestion_queue", "document_id")
        ).execute()
    except Exception as exc:
        return f"Failed to record ingestion status: {exc}"
    return None


def update_ingestion_status(document_id: str, values: dict) -> str | None:
    supabase, error = _ensure_supabase_client()
    if error:
        return error

    payload = to_supabase_payload("document_ingestion_queue", values)
    try:
        (
            supabase.table(table_name("document_ingestion_queue"))
            .update(payload)
            .eq(column_name("document_ingestion_queue", "document_id"), document_id)
            .execute()
        )
    except Exception as exc:
        return f"Failed to update ingestion status: {exc}"
    return None


def delete_document_chunks(document_id: str) -> str | None:
    supabase, error = _ensure_supabase_client()
    if error:
        return error

    try:
        (
            supabase.table(table_name("knowledge_chunks"))
            .delete()
            .eq(column_name("knowledge_chunks", "document_id"), document_id)
            .execute()
        )
    except Exception as exc:
        return f"Failed to clear previous chunks: {exc}"
    return None


def insert_knowledge_chunk(record: dict) -> str | None:
    supabase, error = _ensure_supabase_client()
    if error:
        return error

    payload = to_supabase_payload("knowledge_chunks", record)
    try:
        supabase.table(table_name("knowledge_chunks")).insert(payload).execute()
    except Exception as exc:
        return f"Insert error: {exc}"
    return None


def invoke_edge_function(name: str, body: dict) -> tuple[dict | None, str | None]:
    """Invoke a Supabase edge function and decode its JSON response."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        result = supabase.functions.invoke(
            name,
            invoke_options={"body": body, "responseType": "json"},
        )
    except Exception as exc:
        return None, f"{name} failed: {exc}"

    if isinstance(result, (bytes, bytearray)):
        result = result.decode("utf-8")
    if isinstance(result, str):
        try:
            result = json.loads(result)
        except json.JSONDecodeError:
            return None, f"{name} returned invalid JSON"
    if not isinstance(result, dict):
        return None, f"{name} returned an unexpected payload"
    return result, None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
