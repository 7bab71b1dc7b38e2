# dashboard_app/blueprints/teams.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, jsonify, session

from dashboard_app.decorators import login_required
from dashboard_app.models import TeamStorageResource
from dashboard_app.services import team_storage as ts
from dashboard_app.services.storage_quota import format_bytes, is_valid_tier

bp = Blueprint("teams", __name__, url_prefix="/teams/<int:team_id>/storage")


def _storage_json(s: TeamStorageResource) -> dict:
    total, used = int(s.total_bytes or 0), int(s.used_bytes or 0)
    return {
        "id": s.id,
        "team_id": s.team_id,
        "name": s.name,
        "description": s.description,
        "tier": s.tier,
        "total_bytes": total,
        "used_bytes": used,
        "available_bytes": total - used,
        "total_display": format_bytes(total),
        "used_display": format_bytes(used),
        "is_active": s.is_active,
        "purchased_by": s.purchased_by,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


def _member(team_id: int) -> bool:
    return ts.is_team_member(team_id, session["user"]["id"])


def _tier_or_400(data: dict, required: bool):
    tier = data.get("tier")
    if tier is None and not required:
        return None, None
    if not is_valid_tier(tier or ""):
        return None, (jsonify({"error": f"Invalid storage tier: {tier!r}"}), 400)
    return tier, None


@bp.get("")
@login_required
def get_storage(team_id: int):
    s = ts.get_team_storage(team_id) if _member(team_id) else None
    if s is None:
        return jsonify({"error": "Team storage not found"}), 404
    return jsonify(_storage_json(s))


@bp.post("")
@login_required
def create_storage(team_id: int):
    data = request.get_json(silent=True) or {}
    tier, err = _tier_or_400(data, required=True)
    if err:
        return err
    s = ts.create_team_storage(team_id, session["user"]["id"], tier,
                               name=data.get("name"), description=data.get("description"))
    return jsonify(_storage_json(s)), 201


@bp.patch("")
@login_required
def update_storage(team_id: int):
    data = request.get_json(silent=True) or {}
    tier, err = _tier_or_400(data, required=False)
    if err:
        return err
    s = ts.update_team_storage(team_id, session["user"]["id"], name=data.get("name"),
                               description=data.get("description"), tier=tier)
    return jsonify(_storage_json(s))


@bp.delete("")
@login_required
def delete_storage(team_id: int):
    ts.delete_team_storage(team_id, session["user"]["id"])
    return jsonify({"ok": True})


@bp.post("/check")
@login_required
def check_storage(team_id: int):
    if not _member(team_id):
        return jsonify({"error": "Team storage not found"}), 404
    data = request.get_json(silent=True) or {}
    try:
        size = int(data.get("bytes"))
    except (TypeError, ValueError):
        return jsonify({"error": "bytes must be an integer"}), 400
    return jsonify(ts.check_team_storage_quota(team_id, size))
