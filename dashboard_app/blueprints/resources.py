# dashboard_app/blueprints/resources.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, jsonify, session, current_app

from dashboard_app.decorators import login_required
from dashboard_app.extensions import db
from dashboard_app.models import Resource, ResourceType, Project
from dashboard_app.services import deployment
from dashboard_app.services.resource_templates import RESOURCE_TEMPLATES, get_template_by_id

bp = Blueprint("resources", __name__, url_prefix="/resources")


def _resource_json(r: Resource) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "type": r.type,
        "status": r.status,
        "organisation_id": r.organisation_id,
        "project_id": r.project_id,
        "owner_id": r.owner_id,
        "endpoint": r.endpoint,
        "credentials": r.credentials or {},
        "configuration": r.configuration or {},
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


def _owned(resource_id: str) -> Resource | None:
    r = db.session.get(Resource, resource_id)
    if r is None:
        return None
    u = session["user"]
    if r.owner_id != u["id"] and not u.get("is_admin"):
        return None
    return r


@bp.get("/templates")
def templates():
    return jsonify([t.to_dict() for t in RESOURCE_TEMPLATES])


@bp.post("/")
@login_required
def create_resource():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "name is required"}), 400

    template_id = data.get("template_id")
    template = get_template_by_id(template_id) if template_id else None
    if template_id and template is None:
        return jsonify({"error": f"Template {template_id} not found"}), 400

    rtype = (data.get("type") or (template.type if template else ResourceType.STORAGE.value)).upper()
    if rtype not in {t.value for t in ResourceType}:
        return jsonify({"error": f"Invalid resource type: {rtype}"}), 400

    project = db.session.get(Project, data["project_id"]) if data.get("project_id") else None
    r = Resource(
        name=name,
        description=data.get("description"),
        type=rtype,
        owner_id=session["user"]["id"],
        project_id=project.id if project else None,
        organisation_id=project.organisation_id if project else data.get("organisation_id"),
    )
    db.session.add(r)
    db.session.commit()
    current_app.logger.info("Resource %s created by user %s", r.id, r.owner_id)

    if template:
        deployment.deploy_resource(r.id, template.id)
    return jsonify(_resource_json(r)), 201


@bp.get("/<resource_id>")
@login_required
def get_resource(resource_id: str):
    r = _owned(resource_id)
    if r is None:
        return jsonify({"error": "Resource not found"}), 404
    return jsonify(_resource_json(r))


@bp.post("/<resource_id>/deploy")
@login_required
def deploy(resource_id: str):
    if _owned(resource_id) is None:
        return jsonify({"error": "Resource not found"}), 404
    data = request.get_json(silent=True) or {}
    result = deployment.deploy_resource(resource_id, data.get("template_id") or "")
    return jsonify(result), (202 if result["success"] else 400)


@bp.get("/<resource_id>/deployment-status")
@login_required
def deployment_status(resource_id: str):
    if _owned(resource_id) is None:
        return jsonify({"error": "Resource not found"}), 404
    status = deployment.get_deployment_status(resource_id)
    if status is None:
        return "", 204
    return jsonify(status)


@bp.post("/<resource_id>/redeploy")
@login_required
def redeploy(resource_id: str):
    if _owned(resource_id) is None:
        return jsonify({"error": "Resource not found"}), 404
    result = deployment.redeploy_resource(resource_id)
    return jsonify(result), (202 if result["success"] else 400)


@bp.post("/<resource_id>/refresh")
@login_required
def refresh(resource_id: str):
    if _owned(resource_id) is None:
        return jsonify({"error": "Resource not found"}), 404
    return jsonify(deployment.refresh_from_provider(resource_id))


@bp.post("/<resource_id>/deprovision")
@login_required
def deprovision(resource_id: str):
    if _owned(resource_id) is None:
        return jsonify({"error": "Resource not found"}), 404
    deployment.deprovision_resource(resource_id)
    return jsonify({"ok": True})
