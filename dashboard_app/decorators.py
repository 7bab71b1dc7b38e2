# dashboard_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session, jsonify

from .extensions import db
from .models import User


def current_user() -> User | None:
    u = session.get("user")
    if not u:
        return None
    return db.session.get(User, u.get("id"))


def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not session.get("user"):
            return jsonify({"error": "Authentication required"}), 401
        return view_func(*args, **kwargs)
    return wrapper


def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = session.get("user")
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        if not user.get("is_admin"):
            return jsonify({"error": "Administrator access required"}), 403
        return view_func(*args, **kwargs)
    return wrapper
