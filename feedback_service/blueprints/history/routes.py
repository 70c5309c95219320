from flask import jsonify, request

from feedback_service.services.lifecycle import get_lifecycle
from feedback_service.services.policy import require_principal, current_principal
from . import bp


@bp.get("/<entry_id>")
@require_principal
def get_entry(entry_id):
    entry, record = get_lifecycle().get_audit_entry(current_principal(), entry_id)
    return jsonify(ok=True, entry=entry.to_dict(), feedback=record.to_dict())


@bp.get("/by-editor")
@bp.get("/by-editor/<manager_id>")
@require_principal
def by_editor(manager_id=None):
    entries = get_lifecycle().list_audit_by_editor(current_principal(), manager_id)
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])


@bp.get("/by-date")
@require_principal
def by_date():
    args = request.args
    entries = get_lifecycle().list_audit_by_date_range(
        current_principal(),
        args.get("start_date", args.get("startDate")),
        args.get("end_date", args.get("endDate")),
        args.get("employee_id", args.get("employeeId")),
    )
    return jsonify(ok=True, entries=[e.to_dict() for e in entries])


@bp.delete("/<entry_id>")
@require_principal
def delete_entry(entry_id):
    result = get_lifecycle().delete_audit_entries(current_principal(), [entry_id])
    return jsonify(ok=True, **result)


@bp.post("/bulk-delete")
@require_principal
def bulk_delete():
    data = request.get_json(silent=True) or {}
    ids = data.get("ids", data.get("historyIds")) if isinstance(data, dict) else None
    result = get_lifecycle().delete_audit_entries(current_principal(), ids)
    return jsonify(ok=True, **result)
