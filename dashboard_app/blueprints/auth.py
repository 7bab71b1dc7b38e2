# dashboard_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, session, jsonify, current_app

from dashboard_app.extensions import db
from dashboard_app.models import User

bp = Blueprint("auth", __name__)


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _login(u: User) -> None:
    session["user"] = {"id": u.id, "email": u.email, "is_admin": bool(u.is_admin)}


@bp.route("/login", methods=["POST"])
def login():
    data = _payload()
    email = (data.get("email") or "").strip().lower()
    u = User.query.filter_by(email=email).first()
    if not u or not u.active or not u.check_password(data.get("password") or ""):
        return jsonify({"error": "Invalid credentials"}), 401

    _login(u)
    return jsonify({"id": u.id, "email": u.email, "is_admin": bool(u.is_admin)})


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"ok": True})


@bp.route("/register", methods=["POST"])
def register():
    data = _payload()
    name = data.get("name") or "User"
    email = (data.get("email") or "").strip().lower()
    pwd = data.get("password")

    if not email or not pwd:
        return jsonify({"error": "Email and password are required"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"error": "Email already registered"}), 409

    u = User(name=name, email=email)
    u.set_password(pwd)
    db.session.add(u)
    db.session.commit()
    current_app.logger.info("User %s registered", u.id)

    _login(u)
    return jsonify({"id": u.id, "email": u.email, "storage_tier": u.storage_tier}), 201
