# dashboard_app/services/storage_activity.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import StorageActivity

ACTIONS = ("upload", "download", "delete", "sync")

_EXTENSIONS = {
    "document": {"pdf", "doc", "docx", "txt", "rtf", "odt"},
    "image": {"jpg", "jpeg", "png", "gif", "svg", "webp", "bmp"},
    "video": {"mp4", "avi", "mov", "mkv", "wmv", "flv", "webm"},
    "archive": {"zip", "rar", "7z", "tar", "gz", "bz2"},
}
FILE_TYPES = (*_EXTENSIONS.keys(), "other")


def classify_file_type(file_name: str | None) -> str:
    ext = os.path.splitext(file_name or "")[1].lstrip(".").lower()
    for kind, exts in _EXTENSIONS.items():
        if ext in exts:
            return kind
    return "other"


def log_activity(user_id: int, action: str, *, file_name=None, file_size=None, ipfs_hash=None,
                 response_time_ms=None, success=True, error_message=None) -> StorageActivity | None:
    """Record one storage action. Failures are logged, never raised to the caller."""
    row = StorageActivity(
        user_id=user_id,
        action=action,
        file_name=file_name,
        file_size=int(file_size) if file_size is not None else None,
        ipfs_hash=ipfs_hash,
        response_time_ms=response_time_ms,
        success=bool(success),
        error_message=error_message,
    )
    try:
        db.session.add(row)
        db.session.commit()
        return row
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to log storage activity (%s) for user %s", action, user_id)
        return None


def recent_activity(user_id: int, limit: int = 50) -> list[StorageActivity]:
    return (StorageActivity.query
            .filter_by(user_id=user_id)
            .order_by(StorageActivity.created_at.desc(), StorageActivity.id.desc())
            .limit(limit)
            .all())


def activity_summary(user_id: int) -> dict:
    rows = StorageActivity.query.filter_by(user_id=user_id).all()

    counts = {a: 0 for a in ACTIONS}
    by_type = {t: 0 for t in FILE_TYPES}
    for r in rows:
        if r.action in counts:
            counts[r.action] += 1
        if r.action == "upload" and r.file_name:
            by_type[classify_file_type(r.file_name)] += 1

    timed = [r.response_time_ms for r in rows if r.success and r.response_time_ms]
    avg_ms = round(sum(timed) / len(timed)) if timed else 0
    ok = sum(1 for r in rows if r.success)
    availability = (ok / len(rows)) * 100 if rows else 100.0

    return {
        "upload_count": counts["upload"],
        "download_count": counts["download"],
        "delete_count": counts["delete"],
        "sync_count": counts["sync"],
        "uploads_by_type": by_type,
        "avg_response_time_ms": avg_ms,
        "availability_rate": availability,
        "total_activities": len(rows),
    }
