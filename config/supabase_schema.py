"""Centralised Supabase table and column configuration.

The tracker reads and writes a number of Supabase/PostgREST tables (work
orders, daily sewing/cutting/finishing submissions, line assignments, auth
profile records and the knowledge base).  Each table name and column
identifier used by the code base is defined here so that deployments can
adjust naming conventions without modifying application logic.  When a
mapping for a table or column is missing the helpers fall back to the
identifier supplied by the caller.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SupabaseTable:
    """Configuration for a Supabase table."""

    name: str
    columns: Mapping[str, str] = field(default_factory=dict)


def _identity(*columns: str) -> Dict[str, str]:
    return {column: column for column in columns}


# Default table and column mappings. These act as fallbacks if no environment
# overrides are supplied.
_DEFAULT_SUPABASE_SCHEMA: Dict[str, SupabaseTable] = {
    "work_orders": SupabaseTable(
        name="work_orders",
        columns=_identity(
            "id",
            "factory_id",
            "po_number",
            "buyer",
            "style",
            "item",
            "color",
            "order_qty",
            "status",
            "planned_ex_factory",
            "line_id",
            "is_active",
        ),
    ),
    "work_order_line_assignments": SupabaseTable(
        name="work_order_line_assignments",
        columns=_identity("id", "factory_id", "work_order_id", "line_id"),
    ),
    "lines": SupabaseTable(
        name="lines",
        columns=_identity(
            "id", "factory_id", "line_id", "name", "unit_id", "floor_id", "is_active"
        ),
    ),
    "units": SupabaseTable(
        name="units",
        columns=_identity("id", "factory_id", "name", "is_active"),
    ),
    "floors": SupabaseTable(
        name="floors",
        columns=_identity("id", "factory_id", "name", "is_active"),
    ),
    "sewing_targets": SupabaseTable(
        name="sewing_targets",
        columns=_identity(
            "id",
            "factory_id",
            "work_order_id",
            "line_id",
            "production_date",
            "per_hour_target",
            "hours_planned",
            "target_total_planned",
            "manpower_planned",
            "ot_hours_planned",
            "planned_stage_id",
            "planned_stage_progress",
            "submitted_by",
            "submitted_at",
            "remarks",
        ),
    ),
    "sewing_actuals": SupabaseTable(
        name="sewing_actuals",
        columns=_identity(
            "id",
            "factory_id",
            "work_order_id",
            "line_id",
            "production_date",
            "good_today",
            "reject_today",
            "rework_today",
            "unit_name",
            "floor_name",
            "buyer_name",
            "style_code",
            "item_name",
            "order_qty",
            "cumulative_good_total",
            "manpower_actual",
            "hours_actual",
            "actual_per_hour",
            "ot_hours_actual",
            "actual_stage_id",
            "actual_stage_progress",
            "submitted_by",
            "submitted_at",
            "remarks",
        ),
    ),
    "cutting_actuals": SupabaseTable(
        name="cutting_actuals",
        columns=_identity(
            "id",
            "factory_id",
            "work_order_id",
            "line_id",
            "cutting_section_id",
            "production_date",
            "buyer",
            "style",
            "po_no",
            "colour",
            "day_cutting",
            "total_cutting",
            "day_input",
            "total_input",
            "balance",
            "order_qty",
            "is_late",
            "submitted_by",
            "submitted_at",
        ),
    ),
    "cutting_targets": SupabaseTable(
        name="cutting_targets",
        columns=_identity(
            "id",
            "factory_id",
            "work_order_id",
            "line_id",
            "production_date",
            "buyer",
            "style",
            "po_no",
            "colour",
            "order_qty",
            "man_power",
            "marker_capacity",
            "lay_capacity",
            "cutting_capacity",
            "under_qty",
            "hours_planned",
            "target_per_hour",
            "ot_hours_planned",
            "ot_manpower_planned",
            "day_cutting",
            "day_input",
            "is_late",
            "submitted_by",
            "submitted_at",
        ),
    ),
    "finishing_daily_logs": SupabaseTable(
        name="finishing_daily_logs",
        columns=_identity(
            "id",
            "factory_id",
            "work_order_id",
            "line_id",
            "production_date",
            "log_type",
            "thread_cutting",
            "inside_check",
            "top_side_check",
            "buttoning",
            "iron",
            "get_up",
            "poly",
            "carton",
            "per_hour_target",
            "m_power_planned",
            "m_power_actual",
            "planned_hours",
            "actual_hours",
            "ot_hours_planned",
            "ot_hours_actual",
            "ot_manpower_planned",
            "ot_manpower_actual",
            "remarks",
            "submitted_by",
            "submitted_at",
        ),
    ),
    "extras_ledger": SupabaseTable(
        name="extras_ledger",
        columns=_identity("id", "factory_id", "work_order_id", "quantity"),
    ),
    "storage_bin_cards": SupabaseTable(
        name="storage_bin_cards",
        columns=_identity("id", "factory_id", "work_order_id"),
    ),
    "profiles": SupabaseTable(
        name="profiles",
        columns=_identity(
            "id",
            "factory_id",
            "full_name",
            "email",
            "phone",
            "avatar_url",
            "is_active",
            "department",
            "invitation_status",
        ),
    ),
    "user_roles": SupabaseTable(
        name="user_roles",
        columns=_identity("user_id", "role", "factory_id"),
    ),
    "factory_accounts": SupabaseTable(
        name="factory_accounts",
        columns=_identity(
            "id",
            "name",
            "slug",
            "subscription_tier",
            "subscription_status",
            "trial_end_date",
            "cutoff_time",
            "morning_target_cutoff",
            "evening_actual_cutoff",
            "timezone",
            "logo_url",
            "max_lines",
            "low_stock_threshold",
        ),
    ),
    "knowledge_documents": SupabaseTable(
        name="knowledge_documents",
        columns=_identity("id", "title", "content", "factory_id"),
    ),
    "knowledge_chunks": SupabaseTable(
        name="knowledge_chunks",
        columns=_identity(
            "id",
            "document_id",
            "chunk_index",
            "content",
            "tokens_count",
            "section_heading",
            "embedding",
        ),
    ),
    "document_ingestion_queue": SupabaseTable(
        name="document_ingestion_queue",
        columns=_identity(
            "document_id",
            "status",
            "started_at",
            "completed_at",
            "total_chunks",
            "chunks_processed",
            "error_message",
        ),
    ),
}


def _normalise_columns(columns: Any) -> Dict[str, str]:
    """Return a string-to-string column mapping from ``columns``."""

    if not isinstance(columns, Mapping):
        return {}
    return {
        str(logical): str(actual)
        for logical, actual in columns.items()
        if isinstance(logical, str) and isinstance(actual, str)
    }


def _load_schema_from_env() -> Dict[str, SupabaseTable]:
    """Build the Supabase schema from environment overrides."""

    schema = dict(_DEFAULT_SUPABASE_SCHEMA)

    raw_schema = os.getenv("SUPABASE_SCHEMA_JSON")
    if not raw_schema:
        return schema

    try:
        parsed = json.loads(raw_schema)
    except json.JSONDecodeError:
        return schema

    if not isinstance(parsed, Mapping):
        return schema

    for identifier, entry in parsed.items():
        if not isinstance(identifier, str) or not isinstance(entry, Mapping):
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue

        columns = _normalise_columns(entry.get("columns", {}))
        schema[identifier] = SupabaseTable(name=name, columns=columns)

    return schema


SUPABASE_SCHEMA: Dict[str, SupabaseTable] = _load_schema_from_env()


def table_name(identifier: str) -> str:
    """Return the configured Supabase table name for ``identifier``."""

    table = SUPABASE_SCHEMA.get(identifier)
    if table:
        return table.name
    return identifier


def column_name(table_identifier: str, column_identifier: str) -> str:
    """Return the configured column name for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table and column_identifier in table.columns:
        return table.columns[column_identifier]
    return column_identifier


def table_columns(table_identifier: str) -> Mapping[str, str]:
    """Return the configured column mapping for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table:
        return table.columns
    return {}


def to_supabase_payload(
    table_identifier: str, payload: Mapping[str, Any]
) -> Dict[str, Any]:
    """Return ``payload`` with keys mapped to Supabase column names."""

    columns = table_columns(table_identifier)
    if not columns:
        return dict(payload)
    return {columns.get(key, key): value for key, value in payload.items()}
