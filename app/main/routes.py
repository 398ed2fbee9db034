from flask import (
    Blueprint,
    render_template,
    abort,
    request,
    jsonify,
    current_app,
    send_file,
)
import csv
import io
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from openpyxl import Workbook
from openpyxl.styles import Font

from app.db import (
    DUPLICATE_KEY_CODE,
    fetch_control_room_sources,
    fetch_knowledge_document,
    fetch_line_context,
    fetch_previous_cumulative_good,
    fetch_previous_cutting_totals,
    fetch_work_order,
    fetch_work_order_detail,
    fetch_work_orders,
    insert_submission,
)
from app.auth.context import ADMIN_ROLES
from app.auth.routes import current_auth, login_required, roles_required
from app.date_utils import DEFAULT_FACTORY_TIMEZONE, factory_today, is_late_for_cutoff
from app.knowledge import IngestionError, ingest_document
from app.po_control_room import (
    apply_filters,
    build_control_room_orders,
    count_active_filters,
    derive_filter_options,
    filters_from_params,
    filters_to_params,
)
from app.po_control_room.detail import build_po_detail
from app.po_control_room.summary import (
    cluster_sections,
    compute_kpis,
    filter_by_view_tab,
    filter_by_workflow_tab,
    needs_action_cards,
    search_orders,
    tab_counts,
    workflow_tab_counts,
)
from app.submissions import (
    build_cutting_actual_record,
    build_cutting_target_record,
    build_finishing_output_record,
    build_finishing_target_record,
    build_sewing_actual_record,
    build_sewing_target_record,
    validate_cutting_actual,
    validate_cutting_target,
    validate_finishing_output,
    validate_finishing_target,
    validate_sewing_actual,
    validate_sewing_target,
)

main_bp = Blueprint('main', __name__)

SEWING_ROLES = ('worker', 'admin', 'owner', 'superadmin')
CUTTING_ROLES = ('cutting', 'admin', 'owner', 'superadmin')
FINISHING_ROLES = SEWING_ROLES
KNOWLEDGE_ROLES = tuple(sorted(ADMIN_ROLES)) + ('superadmin',)

EXPORT_COLUMNS = [
    ('PO Number', 'po_number'),
    ('Buyer', 'buyer'),
    ('Style', 'style'),
    ('Lines', 'lines'),
    ('Order Qty', 'order_qty'),
    ('Sewing Output', 'sewing_output'),
    ('Finished', 'finished_output'),
    ('Progress %', 'progress'),
    ('Ex-Factory', 'planned_ex_factory'),
    ('Health', 'health'),
    ('Reasons', 'reasons'),
    ('Workflow', 'workflow_state'),
]


def _factory_timezone_name(ctx) -> str:
    """Return the timezone name used for the factory's production date.

    Prefers the factory record, then ``FACTORY_TIMEZONE``; names that cannot
    be loaded fall back to UTC with a warning.
    """

    tz_name = (
        (ctx.factory.timezone if ctx and ctx.factory else None)
        or current_app.config.get('FACTORY_TIMEZONE')
        or DEFAULT_FACTORY_TIMEZONE
    )
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        current_app.logger.warning(
            "Timezone %s unavailable; falling back to UTC", tz_name
        )
        return 'UTC'
    return tz_name


def _today(ctx) -> date:
    return factory_today(_factory_timezone_name(ctx))


def _require_factory(ctx) -> str:
    if not ctx.factory_id:
        abort(403, description='This account is not linked to a factory.')
    return ctx.factory_id


def _load_orders(factory_id: str, today: date, work_orders: list[dict] | None = None):
    if work_orders is None:
        work_orders, error = fetch_work_orders(factory_id)
        if error:
            current_app.logger.error("Failed to load work orders: %s", error)
            abort(500, description=error)

    sources, error = fetch_control_room_sources(
        factory_id, [str(row.get('id')) for row in work_orders or []]
    )
    if error:
        current_app.logger.error("Failed to load production data: %s", error)
        abort(500, description=error)
    return build_control_room_orders(work_orders or [], today=today, **sources)


def _control_room_view(orders, today: date, args) -> dict:
    """Apply the request's tabs, search and filters to ``orders``."""

    view = args.get('view') or 'all'
    tab = args.get('tab') or None
    search = args.get('q') or ''
    filters = filters_from_params(args)

    visible = filter_by_view_tab(orders, view, today)
    visible = filter_by_workflow_tab(visible, tab)
    visible = search_orders(visible, search)
    visible = apply_filters(visible, filters, today)

    return {
        'view': view,
        'tab': tab,
        'search': search,
        'filters': filters,
        'orders': list(visible),
    }


@main_bp.route('/home')
@login_required
def home():
    ctx = current_auth()
    return render_template(
        'home.html',
        display_name=ctx.display_name,
        factory_name=ctx.factory.name if ctx.factory else None,
        is_admin=ctx.is_admin_or_higher(),
    )


@main_bp.route('/api/po-control-room', methods=['GET'])
@login_required
def po_control_room():
    ctx = current_auth()
    factory_id = _require_factory(ctx)
    today = _today(ctx)

    orders = _load_orders(factory_id, today)
    selection = _control_room_view(orders, today, request.args.to_dict())
    filters = selection['filters']
    visible = selection['orders']

    return jsonify(
        {
            'today': today.isoformat(),
            'view': selection['view'],
            'tab': selection['tab'],
            'search': selection['search'],
            'orders': [po.to_dict() for po in visible],
            'kpis': compute_kpis(orders),
            'tab_counts': tab_counts(orders, today),
            'workflow_tab_counts': workflow_tab_counts(orders),
            'needs_action': needs_action_cards(orders, today),
            'clusters': cluster_sections(visible),
            'filter_options': derive_filter_options(orders, today),
            'filters': filters.to_dict(),
            'active_filter_count': count_active_filters(filters),
            'params': filters_to_params(filters),
        }
    )


@main_bp.route('/api/po-control-room/<work_order_id>', methods=['GET'])
@login_required
def po_control_room_detail(work_order_id):
    ctx = current_auth()
    factory_id = _require_factory(ctx)
    today = _today(ctx)

    work_order, error = fetch_work_order(factory_id, work_order_id)
    if error:
        abort(500, description=error)
    if work_order is None:
        abort(404, description='Work order not found.')

    orders = _load_orders(factory_id, today, [work_order])
    po = orders[0] if orders else None

    sources, error = fetch_work_order_detail(factory_id, work_order_id)
    if error:
        current_app.logger.error("Failed to load detail for %s: %s", work_order_id, error)
        abort(500, description=error)

    return jsonify({'order': po.to_dict() if po else None, **build_po_detail(po, sources)})


def _export_row(po) -> dict:
    health = po.health.to_dict() if po.health else {'status': '', 'reasons': []}
    return {
        'po_number': po.po_number,
        'buyer': po.buyer,
        'style': po.style or '',
        'lines': ', '.join(po.line_names),
        'order_qty': po.order_qty,
        'sewing_output': po.sewing_output,
        'finished_output': po.finished_output,
        'progress': round(po.progress_pct, 1),
        'planned_ex_factory': (
            po.planned_ex_factory.isoformat() if po.planned_ex_factory else ''
        ),
        'health': health['status'],
        'reasons': '; '.join(health['reasons']),
        'workflow_state': po.workflow_state or '',
    }


@main_bp.route('/po-control-room/export', methods=['GET'])
@login_required
def export_po_control_room():
    ctx = current_auth()
    factory_id = _require_factory(ctx)
    today = _today(ctx)

    fmt = (request.args.get('format') or 'csv').lower()
    if fmt not in {'csv', 'xlsx'}:
        return jsonify({'message': 'Unsupported format. Choose csv or xlsx.'}), 400

    orders = _load_orders(factory_id, today)
    visible = _control_room_view(orders, today, request.args.to_dict())['orders']
    rows = [_export_row(po) for po in visible]
    filename_stem = f"po_control_room_{today.isoformat()}"

    if fmt == 'csv':
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([label for label, _ in EXPORT_COLUMNS])
        for row in rows:
            writer.writerow([row[key] for _, key in EXPORT_COLUMNS])
        return send_file(
            io.BytesIO(buffer.getvalue().encode('utf-8')),
            mimetype='text/csv',
            download_name=f"{filename_stem}.csv",
            as_attachment=True,
        )

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = 'PO Control Room'
    sheet.append([label for label, _ in EXPORT_COLUMNS])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append([row[key] for _, key in EXPORT_COLUMNS])
    output = io.BytesIO()
    workbook.save(output)
    output.seek(0)
    return send_file(
        output,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        download_name=f"{filename_stem}.xlsx",
        as_attachment=True,
    )


def _submitted_form() -> dict:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def _save_submission(table: str, record: dict):
    rows, error, code = insert_submission(table, record)
    if error:
        if code == DUPLICATE_KEY_CODE:
            return jsonify(
                {'message': 'A submission for this line and PO already exists today.'}
            ), 409
        current_app.logger.error("Failed to save %s: %s", table, error)
        abort(500, description=error)
    return jsonify({'submission': rows[0] if rows else record}), 201


def _lookup_work_order(factory_id: str, work_order_id: str) -> tuple[dict | None, dict]:
    work_order, error = fetch_work_order(factory_id, work_order_id)
    if error:
        abort(500, description=error)
    if work_order is None:
        return None, {'work_order_id': 'PO not found'}
    return work_order, {}


@main_bp.route('/sewing/targets', methods=['POST'])
@roles_required(*SEWING_ROLES)
def submit_sewing_target():
    ctx = current_auth()
    factory_id = _require_factory(ctx)

    values, errors = validate_sewing_target(_submitted_form())
    if errors:
        return jsonify({'errors': errors}), 400

    record = build_sewing_target_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=_today(ctx),
    )
    return _save_submission('sewing_targets', record)


@main_bp.route('/sewing/actuals', methods=['POST'])
@roles_required(*SEWING_ROLES)
def submit_sewing_actual():
    ctx = current_auth()
    factory_id = _require_factory(ctx)

    values, errors = validate_sewing_actual(_submitted_form())
    if errors:
        return jsonify({'errors': errors}), 400

    work_order, errors = _lookup_work_order(factory_id, values['work_order_id'])
    line, error = fetch_line_context(factory_id, values['line_id'])
    if error:
        abort(500, description=error)
    if line is None:
        errors['line_id'] = 'Line not found'
    if errors:
        return jsonify({'errors': errors}), 400

    today = _today(ctx)
    previous, error = fetch_previous_cumulative_good(
        factory_id, values['line_id'], values['work_order_id'], today
    )
    if error:
        current_app.logger.warning("Previous cumulative output unavailable: %s", error)
        previous = 0

    record = build_sewing_actual_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=today,
        work_order=work_order,
        line=line,
        previous_cumulative=previous,
    )
    return _save_submission('sewing_actuals', record)


@main_bp.route('/cutting/actuals', methods=['POST'])
@roles_required(*CUTTING_ROLES)
def submit_cutting_actual():
    ctx = current_auth()
    factory_id = _require_factory(ctx)

    values, errors = validate_cutting_actual(_submitted_form())
    if errors:
        return jsonify({'errors': errors}), 400

    work_order, errors = _lookup_work_order(factory_id, values['work_order_id'])
    if errors:
        return jsonify({'errors': errors}), 400

    tz_name = _factory_timezone_name(ctx)
    today = factory_today(tz_name)
    previous, error = fetch_previous_cutting_totals(
        factory_id, values['line_id'], values['work_order_id'], today
    )
    if error:
        current_app.logger.error("Previous cutting totals unavailable: %s", error)
        abort(500, description=error)

    record = build_cutting_actual_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=today,
        work_order=work_order,
        previous_totals=previous,
        is_late=is_late_for_cutoff(
            ctx.factory.evening_actual_cutoff if ctx.factory else None, tz_name
        ),
    )
    return _save_submission('cutting_actuals', record)


@main_bp.route('/cutting/targets', methods=['POST'])
@roles_required(*CUTTING_ROLES)
def submit_cutting_target():
    ctx = current_auth()
    factory_id = _require_factory(ctx)

    values, errors = validate_cutting_target(_submitted_form())
    if errors:
        return jsonify({'errors': errors}), 400

    work_order, errors = _lookup_work_order(factory_id, values['work_order_id'])
    if errors:
        return jsonify({'errors': errors}), 400

    tz_name = _factory_timezone_name(ctx)
    record = build_cutting_target_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=factory_today(tz_name),
        work_order=work_order,
        is_late=is_late_for_cutoff(
            ctx.factory.morning_target_cutoff if ctx.factory else None, tz_name
        ),
    )
    return _save_submission('cutting_targets', record)


def _validated_finishing_log(validator):
    ctx = current_auth()
    factory_id = _require_factory(ctx)

    values, errors = validator(_submitted_form())
    if errors:
        return ctx, factory_id, values, errors

    _, errors = _lookup_work_order(factory_id, values['work_order_id'])
    if values['line_id']:
        line, error = fetch_line_context(factory_id, values['line_id'])
        if error:
            abort(500, description=error)
        if line is None:
            errors['line_id'] = 'Line not found'
    return ctx, factory_id, values, errors


@main_bp.route('/finishing/targets', methods=['POST'])
@roles_required(*FINISHING_ROLES)
def submit_finishing_target():
    ctx, factory_id, values, errors = _validated_finishing_log(validate_finishing_target)
    if errors:
        return jsonify({'errors': errors}), 400

    record = build_finishing_target_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=_today(ctx),
    )
    return _save_submission('finishing_daily_logs', record)


@main_bp.route('/finishing/outputs', methods=['POST'])
@roles_required(*FINISHING_ROLES)
def submit_finishing_output():
    ctx, factory_id, values, errors = _validated_finishing_log(validate_finishing_output)
    if errors:
        return jsonify({'errors': errors}), 400

    record = build_finishing_output_record(
        values,
        factory_id=factory_id,
        user_id=ctx.user_id,
        production_date=_today(ctx),
    )
    return _save_submission('finishing_daily_logs', record)


@main_bp.route('/knowledge/documents/<document_id>/ingest', methods=['POST'])
@roles_required(*KNOWLEDGE_ROLES)
def ingest_knowledge_document(document_id):
    document, error = fetch_knowledge_document(document_id)
    if error:
        abort(500, description=error)
    if document is None:
        abort(404, description='Document not found.')

    try:
        progress = ingest_document(
            document_id,
            document.get('content') or '',
            chunk_size=current_app.config.get('KB_CHUNK_SIZE'),
            overlap=current_app.config.get('KB_CHUNK_OVERLAP'),
        )
    except IngestionError as exc:
        return jsonify({'document_id': document_id, 'status': 'failed', 'message': str(exc)}), 502

    return jsonify(
        {
            'document_id': document_id,
            'status': progress.status,
            'total_chunks': progress.total,
            'chunks_processed': progress.processed,
        }
    )
