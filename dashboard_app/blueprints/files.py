# dashboard_app/blueprints/files.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import os, time, datetime
from pathlib import Path
from flask import Blueprint, current_app, request, jsonify
from werkzeug.utils import secure_filename

from dashboard_app.decorators import login_required, current_user
from dashboard_app.extensions import db
from dashboard_app.models import UserFile
from dashboard_app.services.storage_quota import check_storage_quota
from dashboard_app.services.storage_activity import classify_file_type, log_activity
from dashboard_app.services.team_storage import (
    check_team_storage_quota,
    is_team_member,
    update_team_storage_usage,
)
from dashboard_app.services.ipfs_cluster import ClusterClient, ClusterSettings, sync_user_files


bp = Blueprint("files", __name__, url_prefix="/files")


def user_upload_root(user_id: int) -> Path:
    root = Path(current_app.config.get("UPLOAD_FOLDER", "./uploads"))
    user_root = root / f"user_{user_id}" / datetime.datetime.utcnow().strftime("%Y/%m")
    user_root.mkdir(parents=True, exist_ok=True)
    return user_root


def _unique_target(root: Path, name: str) -> Path:
    target = root / name
    if not target.exists():
        return target
    stem, ext = os.path.splitext(name)
    i = 2
    while (root / f"{stem} ({i}){ext}").exists():
        i += 1
    return root / f"{stem} ({i}){ext}"


def _file_json(f: UserFile) -> dict:
    return {
        "id": f.id,
        "file_name": f.file_name,
        "file_size": f.file_size,
        "file_type": f.file_type,
        "team_id": f.team_id,
        "ipfs_hash": f.ipfs_hash,
        "is_pinned": f.is_pinned,
        "replication_count": f.replication_count,
        "node_locations": f.node_locations or [],
        "uploaded_at": f.uploaded_at.isoformat() if f.uploaded_at else None,
        "last_sync_at": f.last_sync_at.isoformat() if f.last_sync_at else None,
    }


@bp.route("/", methods=["GET"])
@login_required
def list_files():
    q = UserFile.query.filter_by(user_id=current_user().id).order_by(UserFile.uploaded_at.desc())
    return jsonify([_file_json(f) for f in q.limit(200).all()])


@bp.route("/upload", methods=["POST"])
@login_required
def upload():
    started = time.monotonic()
    file = request.files.get("file")
    if not file or not file.filename:
        return jsonify({"error": "No file provided"}), 400

    data = file.read()
    size = len(data)
    user = current_user()
    team_id = request.form.get("team_id", type=int)

    # quota first; nothing touches the disk when it fails
    if team_id:
        if not is_team_member(team_id, user.id):
            return jsonify({"error": "Not a member of this team"}), 403
        check = check_team_storage_quota(team_id, size)
    else:
        check = check_storage_quota(user.id, size)
    if not check["allowed"]:
        log_activity(user.id, "upload", file_name=file.filename, file_size=size,
                     success=False, error_message=check.get("reason"))
        return jsonify({"error": check.get("reason"), "quota": check}), 413

    safe_name = secure_filename(file.filename) or "upload.bin"
    target = _unique_target(user_upload_root(user.id), safe_name)
    with open(target, "wb") as fh:
        fh.write(data)

    rec = UserFile(
        user_id=user.id,
        team_id=team_id,
        file_name=target.name,
        file_size=size,
        file_type=classify_file_type(target.name),
        ipfs_hash=(request.form.get("ipfs_hash") or "").strip() or None,
        storage_path=str(target),
    )
    db.session.add(rec)
    db.session.commit()
    if team_id:
        update_team_storage_usage(team_id)

    log_activity(user.id, "upload", file_name=rec.file_name, file_size=size, ipfs_hash=rec.ipfs_hash,
                 response_time_ms=int((time.monotonic() - started) * 1000))
    return jsonify(_file_json(rec)), 201


@bp.route("/<int:file_id>/delete", methods=["POST"])
@login_required
def delete_file(file_id: int):
    user = current_user()
    f = UserFile.query.filter_by(id=file_id, user_id=user.id).first()
    if f is None:
        return jsonify({"error": "File not found"}), 404

    if f.storage_path:
        p = Path(f.storage_path)
        if p.is_file():
            p.unlink()
        else:
            current_app.logger.warning("File %s missing on disk: %s", f.id, f.storage_path)

    team_id, name, size, cid = f.team_id, f.file_name, f.file_size, f.ipfs_hash
    db.session.delete(f)
    db.session.commit()
    if team_id:
        update_team_storage_usage(team_id)

    log_activity(user.id, "delete", file_name=name, file_size=size, ipfs_hash=cid)
    return jsonify({"ok": True})


@bp.route("/sync", methods=["POST"])
@login_required
def sync():
    client = ClusterClient(ClusterSettings.from_config(current_app.config))
    return jsonify(sync_user_files(current_user().id, client))
