# tests/test_storage_activity.py
import pytest
from sqlalchemy.exc import SQLAlchemyError

from dashboard_app.services import storage_activity as sa


@pytest.mark.parametrize("name, kind", [
    ("report.PDF", "document"),
    ("notes.txt", "document"),
    ("photo.jpeg", "image"),
    ("clip.webm", "video"),
    ("backup.tar", "archive"),
    ("dump.bin", "other"),
    ("README", "other"),
    (None, "other"),
])
def test_classify_file_type(name, kind):
    assert sa.classify_file_type(name) == kind


def test_log_and_summarise(db_session, user_normal):
    sa.log_activity(user_normal.id, "upload", file_name="a.pdf", file_size=10, response_time_ms=100)
    sa.log_activity(user_normal.id, "upload", file_name="b.png", file_size=20, response_time_ms=300)
    sa.log_activity(user_normal.id, "download", file_name="a.pdf")
    sa.log_activity(user_normal.id, "delete", file_name="b.png", success=False, error_message="locked")

    summary = sa.activity_summary(user_normal.id)

    assert summary["upload_count"] == 2
    assert summary["download_count"] == 1
    assert summary["delete_count"] == 1
    assert summary["uploads_by_type"]["document"] == 1
    assert summary["uploads_by_type"]["image"] == 1
    assert summary["avg_response_time_ms"] == 200
    assert summary["availability_rate"] == 75.0

    rows = sa.recent_activity(user_normal.id, limit=2)
    assert len(rows) == 2
    assert rows[0].action == "delete"


def test_summary_without_activity(db_session, user_normal):
    s = sa.activity_summary(user_normal.id)
    assert s["availability_rate"] == 100.0
    assert s["avg_response_time_ms"] == 0


def test_log_activity_never_raises(db_session, user_normal, monkeypatch):
    def _fail():
        raise SQLAlchemyError("db down")
    monkeypatch.setattr(db_session, "commit", _fail)

    assert sa.log_activity(user_normal.id, "upload", file_name="x") is None
