# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import uuid
import tempfile

import pytest
from sqlalchemy import event


# =====================================================================================
# Unit-test environment (no external services, no background scheduler)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["FLASK_ENV"] = "testing"
    os.environ["DISABLE_SCHEDULER"] = "1"
    os.environ.setdefault("SECRET_KEY", "testing-secret")
    yield


def _set_sqlite_pragmas(dbapi_conn, _conn_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# =====================================================================================
# Flask app on a temporary SQLite file, schema created once per session
# =====================================================================================
@pytest.fixture(scope="session")
def app(_testing_env):
    fd, db_path = tempfile.mkstemp(prefix="dashboard_test_", suffix=".sqlite")
    os.close(fd)
    upload_dir = tempfile.mkdtemp(prefix="dashboard_uploads_")

    from dashboard_app import create_app
    from dashboard_app.extensions import db

    app = create_app({
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}?check_same_thread=0&timeout=30",
        "UPLOAD_FOLDER": upload_dir,
        "RESOURCE_API_URL": "",
        "DEPLOY_STAGE_DELAY_SCALE": 0.0,
    })

    with app.app_context():
        event.listen(db.engine, "connect", _set_sqlite_pragmas)
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from dashboard_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# External services
#   - requests (no network)
#   - background jobs run inline, right away
# =====================================================================================
class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


@pytest.fixture(autouse=True)
def _mock_externals(monkeypatch):
    import requests

    monkeypatch.setattr(requests, "get", lambda *a, **k: FakeResponse(), raising=False)
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse(), raising=False)
    monkeypatch.setattr(requests, "request", lambda *a, **k: FakeResponse(json_data={}), raising=False)
    yield


@pytest.fixture(autouse=True)
def inline_spawn(monkeypatch):
    """Replace the scheduler dispatch with a synchronous call; records what ran."""
    from dashboard_app.services import deployment

    calls = []

    def _run(fn, *args):
        calls.append((fn.__name__, args))
        fn(*args)

    monkeypatch.setattr(deployment, "spawn", _run)
    return calls


# =====================================================================================
# Users and logged-in clients
# =====================================================================================
def make_user(db_session, *, is_admin=False, tier=None, name="User"):
    from dashboard_app.models import User
    u = User(name=name, email=f"{name.lower()}+{uuid.uuid4().hex[:8]}@test.com", is_admin=is_admin)
    if tier:
        u.storage_tier = tier
    u.set_password("secret123")
    db_session.add(u); db_session.commit()
    return u


@pytest.fixture
def user_admin(db_session):
    return make_user(db_session, is_admin=True, name="Admin")


@pytest.fixture
def user_normal(db_session):
    return make_user(db_session)


@pytest.fixture
def logged_client_admin(client, user_admin):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_admin.id, "email": user_admin.email, "is_admin": True}
    return client


@pytest.fixture
def logged_client_user(client, user_normal):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_normal.id, "email": user_normal.email, "is_admin": False}
    return client


@pytest.fixture
def add_file(db_session):
    """Insert a UserFile row directly (no disk)."""
    from dashboard_app.models import UserFile

    def _add(user, size, *, file_type="document", name=None, pinned=False, ipfs_hash=None, team_id=None):
        f = UserFile(
            user_id=user.id,
            team_id=team_id,
            file_name=name or f"f-{uuid.uuid4().hex[:6]}.pdf",
            file_size=size,
            file_type=file_type,
            is_pinned=pinned,
            ipfs_hash=ipfs_hash,
        )
        db_session.add(f); db_session.commit()
        return f

    return _add


@pytest.fixture
def user_factory(db_session):
    return lambda **kw: make_user(db_session, **kw)
