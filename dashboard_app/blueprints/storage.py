# dashboard_app/blueprints/storage.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, jsonify, session

from dashboard_app.decorators import login_required
from dashboard_app.services import storage_quota as sq
from dashboard_app.services.storage_activity import recent_activity, activity_summary

bp = Blueprint("storage", __name__, url_prefix="/storage")


def _uid() -> int:
    return session["user"]["id"]


@bp.get("/quota")
@login_required
def quota():
    q = sq.get_user_storage_quota(_uid())
    return jsonify({
        **q,
        "display": {
            "tier": sq.get_storage_tier_display_name(q["tier"]),
            "allocated": sq.format_bytes(q["allocated_bytes"]),
            "used": sq.format_bytes(q["used_bytes"]),
            "available": sq.format_bytes(q["available_bytes"]),
        },
    })


@bp.post("/check")
@login_required
def check():
    data = request.get_json(silent=True) or {}
    try:
        size = int(data.get("bytes"))
    except (TypeError, ValueError):
        return jsonify({"error": "bytes must be an integer"}), 400
    if size < 0:
        return jsonify({"error": "bytes must be non-negative"}), 400
    return jsonify(sq.check_storage_quota(_uid(), size))


@bp.post("/tier")
@login_required
def change_tier():
    data = request.get_json(silent=True) or {}
    tier = data.get("tier")
    if not sq.is_valid_tier(tier or ""):
        return jsonify({"error": f"Invalid storage tier: {tier!r}"}), 400

    target = data.get("user_id")
    if target is not None and target != _uid() and not session["user"].get("is_admin"):
        return jsonify({"error": "Administrator access required"}), 403

    sq.update_user_storage_tier(target or _uid(), tier, updated_by=_uid())
    return jsonify(sq.get_user_storage_quota(target or _uid()))


@bp.get("/stats")
@login_required
def stats():
    return jsonify(sq.get_user_storage_stats(_uid()))


@bp.get("/tiers")
def tiers():
    return jsonify(sq.list_storage_tiers())


@bp.get("/activity")
@login_required
def activity():
    limit = min(request.args.get("limit", 50, type=int) or 50, 500)
    rows = recent_activity(_uid(), limit=limit)
    return jsonify({
        "summary": activity_summary(_uid()),
        "items": [{
            "id": r.id,
            "action": r.action,
            "file_name": r.file_name,
            "file_size": r.file_size,
            "ipfs_hash": r.ipfs_hash,
            "response_time_ms": r.response_time_ms,
            "success": r.success,
            "error_message": r.error_message,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        } for r in rows],
    })
