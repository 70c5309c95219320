from flask import jsonify, request

from feedback_service.extensions import limiter
from feedback_service.services.lifecycle import get_lifecycle
from feedback_service.services.policy import require_principal, current_principal
from . import bp


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.post("/")
@require_principal
def create():
    data = _body()
    record = get_lifecycle().create_feedback(
        current_principal(),
        data.get("employee_id", data.get("employeeId")),
        strengths=data.get("strengths"),
        areas_to_improve=data.get("areas_to_improve", data.get("areasToImprove")),
        sentiment=data.get("sentiment"),
    )
    return jsonify(ok=True, feedback=record.to_dict()), 201


@bp.post("/bulk")
@limiter.limit("30 per hour")
@require_principal
def bulk_create():
    data = request.get_json(silent=True)
    # Accept a bare array or {"entries": [...]}
    entries = data.get("entries") if isinstance(data, dict) else data
    result = get_lifecycle().bulk_create_feedback(current_principal(), entries)
    return jsonify(ok=True, **result.to_dict()), 201


@bp.get("/")
@require_principal
def list_feedback():
    args = request.args
    page = get_lifecycle().list_feedback(
        current_principal(),
        filters=args.to_dict(),
        page=args.get("page", 1),
        limit=args.get("limit"),
        sort_by=args.get("sortBy", args.get("sort_by")),
        sort_order=args.get("sortOrder", args.get("sort_order")),
    )
    return jsonify(
        ok=True,
        feedback=[r.to_dict() for r in page.items],
        pagination=page.meta(),
        filters={**page.filters, "sort_by": page.sort_by, "sort_order": page.sort_order},
    )


@bp.get("/<feedback_id>")
@require_principal
def get_feedback(feedback_id):
    record = get_lifecycle().get_feedback(current_principal(), feedback_id)
    return jsonify(ok=True, feedback=record.to_dict())


@bp.patch("/<feedback_id>")
@require_principal
def edit(feedback_id):
    record = get_lifecycle().edit_feedback(current_principal(), feedback_id, _body())
    return jsonify(ok=True, feedback=record.to_dict())


@bp.post("/<feedback_id>/acknowledge")
@require_principal
def acknowledge(feedback_id):
    record = get_lifecycle().acknowledge_feedback(current_principal(), feedback_id)
    return jsonify(ok=True, feedback=record.to_dict())


@bp.delete("/<feedback_id>")
@require_principal
def soft_delete(feedback_id):
    record = get_lifecycle().soft_delete_feedback(current_principal(), feedback_id)
    return jsonify(ok=True, feedback=record.deletion_dict())


@bp.post("/<feedback_id>/restore")
@require_principal
def restore(feedback_id):
    record = get_lifecycle().restore_feedback(current_principal(), feedback_id)
    return jsonify(ok=True, feedback=record.to_dict())


@bp.get("/<feedback_id>/history")
@require_principal
def history(feedback_id):
    view = get_lifecycle().get_feedback_history(current_principal(), feedback_id)
    return jsonify(ok=True, **view.to_dict())


@bp.post("/export")
@require_principal
def export():
    data = _body()
    payload = get_lifecycle().export_feedback(
        current_principal(), data.get("employee_id", data.get("employeeId"))
    )
    return jsonify(ok=True, export=payload)
