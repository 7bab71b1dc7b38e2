# dashboard_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask, jsonify
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .errors import DashboardError
from .extensions import scheduler, init_extensions, register_cli
from .blueprints.auth import bp as auth_bp
from .blueprints.storage import bp as storage_bp
from .blueprints.files import bp as files_bp
from .blueprints.teams import bp as teams_bp
from .blueprints.resources import bp as resources_bp
from .blueprints.cluster import bp as cluster_bp
from datetime import datetime


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()

    if app_env == "testing":
        app.config.from_object(TestingConfig)
    elif app_env == "staging":
        app.config.from_object(StagingConfig)
    elif app_env == "production":
        app.config.from_object(ProductionConfig)
    else:
        app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # DB / Bcrypt / Migrate
    init_extensions(app)
    app.config["STARTED_AT"] = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(storage_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(teams_bp)
    app.register_blueprint(resources_bp)
    app.register_blueprint(cluster_bp)

    @app.errorhandler(DashboardError)
    def _dashboard_error(e: DashboardError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", type(e).__name__, e)
        return jsonify({"error": str(e)}), e.status_code

    # CLI (flask init-db)
    register_cli(app)

    # Background jobs (resource provisioning)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        if not scheduler.running:
            scheduler.start()

    return app
