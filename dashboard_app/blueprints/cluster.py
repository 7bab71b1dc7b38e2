# dashboard_app/blueprints/cluster.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, jsonify, current_app

from dashboard_app.decorators import admin_required
from dashboard_app.services.ipfs_cluster import ClusterClient, ClusterSettings, pin_state

bp = Blueprint("cluster", __name__, url_prefix="/cluster")


def _client() -> ClusterClient:
    return ClusterClient(ClusterSettings.from_config(current_app.config))


@bp.get("/status")
@admin_required
def status():
    return jsonify(_client().status())


@bp.get("/peers")
@admin_required
def peers():
    return jsonify(_client().peers())


@bp.get("/pins")
@admin_required
def pins():
    return jsonify([{**p, "state": pin_state(p)} for p in _client().pins()])
