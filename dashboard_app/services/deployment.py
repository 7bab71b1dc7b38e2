# dashboard_app/services/deployment.py
# -*- coding: utf-8 -*-
"""Resource deployment state machine.

    PROVISIONING -> ACTIVE | INACTIVE      (INACTIVE may be redeployed)

``deploy_resource`` flips the resource to PROVISIONING and hands the actual
work to a background job (``spawn``), which is one of two drivers:

* ``simulate_deployment``: walks DEPLOYMENT_STAGES with sleeps, then writes
  template-derived endpoint/credentials/configuration;
* ``provision_via_api``: one call to the external resource API.

Both persist progress into ``Resource.configuration`` so the status endpoint
can be polled. Neither re-raises: failures end as INACTIVE with the error text
kept in the configuration.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConflictError, NotFound
from ..extensions import db, scheduler
from ..models import Resource, ResourceStatus
from .resource_api import ResourceApiClient, ResourceApiSettings
from .resource_templates import (
    ResourceTemplate,
    generate_deployment_config,
    generate_mock_credentials,
    generate_mock_endpoint,
    get_template_by_id,
)

DEPLOYMENT_STAGES: list[tuple[str, int, str]] = [
    ("init", 0, "Initialising deployment..."),
    ("allocate", 20, "Allocating resources..."),
    ("configure", 40, "Configuring services..."),
    ("provision", 60, "Provisioning infrastructure..."),
    ("verify", 80, "Verifying deployment..."),
    ("complete", 100, "Deployment complete!"),
]

# provider status -> resource status; anything else leaves the resource as is
_PROVIDER_STATUS = {
    "running": ResourceStatus.ACTIVE.value,
    "active": ResourceStatus.ACTIVE.value,
    "failed": ResourceStatus.INACTIVE.value,
    "error": ResourceStatus.INACTIVE.value,
}


@dataclass
class DeploymentResult:
    success: bool
    endpoint: Optional[str] = None
    credentials: dict = field(default_factory=dict)
    configuration: dict = field(default_factory=dict)
    error: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _progress(stage: str, progress: int, message: str) -> dict:
    return {"deployment_stage": stage, "deployment_progress": progress, "deployment_message": message}


def _api_client() -> ResourceApiClient:
    return ResourceApiClient(ResourceApiSettings.from_config(current_app.config))


def _get_resource(resource_id: str) -> Resource:
    resource = db.session.get(Resource, resource_id)
    if resource is None:
        raise NotFound(f"Resource {resource_id} not found")
    return resource


def _template_id_of(resource: Resource) -> Optional[str]:
    return (resource.configuration or {}).get("template_id")


def _write_configuration(resource_id: str, configuration: dict, **fields) -> None:
    resource = _get_resource(resource_id)
    # JSON column: assign a fresh dict so the change is tracked
    resource.configuration = dict(configuration)
    for k, v in fields.items():
        setattr(resource, k, v)
    db.session.commit()


def _mark_failed(resource_id: str, template_id: Optional[str], message: str, error: str) -> None:
    db.session.rollback()
    cfg = {**_progress("failed", 0, message), "error": error}
    if template_id:
        cfg["template_id"] = template_id
    try:
        _write_configuration(resource_id, cfg, status=ResourceStatus.INACTIVE.value)
    except NotFound:
        current_app.logger.warning("Resource %s disappeared during deployment", resource_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not record failed deployment of %s", resource_id)


def spawn(fn: Callable, *args) -> None:
    """Run ``fn(*args)`` once, in the background, inside the app context."""
    app = current_app._get_current_object()

    def _job():
        with app.app_context():
            fn(*args)

    if not scheduler.running:
        scheduler.start()
    scheduler.add_job(_job, name=f"{getattr(fn, '__name__', 'job')}:{args[0] if args else ''}")


def simulate_deployment(resource_id: str, template: ResourceTemplate,
                        on_progress: Optional[Callable[[dict], None]] = None,
                        sleep: Optional[Callable[[float], None]] = None) -> DeploymentResult:
    sleep = sleep or time.sleep
    scale = float(current_app.config.get("DEPLOY_STAGE_DELAY_SCALE", 1) or 0)
    stage_seconds = template.provisioning_time_ms / len(DEPLOYMENT_STAGES) / 1000.0 * scale
    template_id = template.id

    try:
        for stage, progress, message in DEPLOYMENT_STAGES:
            if on_progress:
                on_progress({"stage": stage, "progress": progress, "message": message})
            _write_configuration(resource_id, {"template_id": template_id, **_progress(stage, progress, message)})
            if stage_seconds > 0:
                sleep(stage_seconds)

        endpoint = generate_mock_endpoint(template, resource_id)
        credentials = generate_mock_credentials(template, resource_id)
        configuration = generate_deployment_config(template, resource_id)

        _write_configuration(
            resource_id,
            {
                **configuration,
                "template_id": template_id,
                **_progress("complete", 100, "Deployment complete!"),
                "deployed_at": _now_iso(),
            },
            status=ResourceStatus.ACTIVE.value,
            endpoint=endpoint,
            credentials=credentials,
        )
        current_app.logger.info("Resource %s deployed from template %s", resource_id, template_id)
        return DeploymentResult(success=True, endpoint=endpoint, credentials=credentials,
                                configuration=configuration)
    except Exception as e:
        current_app.logger.exception("Deployment simulation failed for %s", resource_id)
        _mark_failed(resource_id, template_id, "Deployment failed", str(e) or "Unknown error")
        return DeploymentResult(success=False, error=str(e) or "Deployment failed")


def provision_via_api(resource_id: str, template: ResourceTemplate,
                      client: Optional[ResourceApiClient] = None) -> DeploymentResult:
    client = client or _api_client()
    provider = template.provider
    template_id = template.id

    try:
        _write_configuration(resource_id, {
            "template_id": template_id,
            **_progress("provision", 50, "Provisioning resource via API..."),
        })

        resource = _get_resource(resource_id)
        body = {
            "name": resource.name,
            "organisationName": resource.organisation.name if resource.organisation else "",
            "projectName": resource.project.name if resource.project else "Default Project",
            "userId": str(resource.owner_id),
            "sshKeys": [],
        }
        result = client.provision(provider, body)
        if not result.get("success"):
            raise RuntimeError(result.get("error") or "Provisioning failed")

        api_id = result.get("id")
        _write_configuration(
            resource_id,
            {
                "template_id": template_id,
                "resource_api_id": api_id,
                "provider": provider,
                **_progress("complete", 100, "Deployment complete!"),
                "deployed_at": _now_iso(),
            },
            status=ResourceStatus.ACTIVE.value,
            endpoint=result.get("access"),
            credentials={"resource_api_id": api_id, "resource_api_status": result.get("status")},
        )
        current_app.logger.info("Resource %s provisioned by %s as %s", resource_id, provider, api_id)
        return DeploymentResult(success=True, endpoint=result.get("access"))
    except Exception as e:
        current_app.logger.exception("Resource API provisioning failed for %s", resource_id)
        _mark_failed(resource_id, template_id, "Provisioning failed", str(e) or "Unknown error")
        return DeploymentResult(success=False, error=str(e) or "Provisioning failed")


def _start(resource: Resource, template: ResourceTemplate) -> None:
    use_api = bool(template.provider) and _api_client().is_configured()
    message = "Contacting Resource API..." if use_api else "Initialising deployment..."

    resource.status = ResourceStatus.PROVISIONING.value
    resource.configuration = {"template_id": template.id, **_progress("init", 0, message)}
    db.session.commit()

    if use_api:
        spawn(provision_via_api, resource.id, template)
    else:
        spawn(simulate_deployment, resource.id, template)


def deploy_resource(resource_id: str, template_id: str) -> dict:
    template = get_template_by_id(template_id)
    if template is None:
        return {"success": False, "error": f"Template {template_id} not found"}

    resource = db.session.get(Resource, resource_id)
    if resource is None:
        return {"success": False, "error": f"Resource {resource_id} not found"}

    _start(resource, template)
    return {"success": True}


def redeploy_resource(resource_id: str) -> dict:
    resource = _get_resource(resource_id)
    if resource.status == ResourceStatus.PROVISIONING.value:
        raise ConflictError("Resource is already being deployed")

    template_id = _template_id_of(resource)
    template = get_template_by_id(template_id) if template_id else None
    if template is None:
        return {"success": False, "error": "Resource has no deployable template"}

    _start(resource, template)
    return {"success": True}


def get_deployment_status(resource_id: str) -> Optional[dict]:
    resource = db.session.get(Resource, resource_id)
    if resource is None:
        return None

    cfg = resource.configuration
    if resource.status == ResourceStatus.PROVISIONING.value and cfg:
        return {
            "stage": cfg.get("deployment_stage") or "init",
            "progress": cfg.get("deployment_progress") or 0,
            "message": cfg.get("deployment_message") or "Deploying...",
        }
    if resource.status == ResourceStatus.ACTIVE.value and (cfg or {}).get("deployment_stage") == "complete":
        return {"stage": "complete", "progress": 100, "message": "Deployment complete!"}
    return None


def _api_handle(resource: Resource) -> tuple[str, str]:
    cfg = resource.configuration or {}
    provider, api_id = cfg.get("provider"), cfg.get("resource_api_id")
    if not provider or not api_id:
        raise ConflictError("Resource is not managed by the resource API")
    return provider, api_id


def refresh_from_provider(resource_id: str, client: Optional[ResourceApiClient] = None) -> dict:
    resource = _get_resource(resource_id)
    provider, api_id = _api_handle(resource)
    client = client or _api_client()

    remote = client.get_status(provider, api_id)
    remote_status = str(remote.get("status") or "").lower()

    new_status = _PROVIDER_STATUS.get(remote_status)
    if new_status:
        resource.status = new_status
    if remote.get("access"):
        resource.endpoint = remote["access"]
    resource.credentials = {**(resource.credentials or {}), "resource_api_status": remote.get("status")}
    db.session.commit()
    return {"status": resource.status, "provider_status": remote.get("status")}


def deprovision_resource(resource_id: str, client: Optional[ResourceApiClient] = None) -> None:
    resource = _get_resource(resource_id)
    cfg = resource.configuration or {}
    if cfg.get("provider") and cfg.get("resource_api_id"):
        client = client or _api_client()
        client.deprovision(cfg["provider"], cfg["resource_api_id"])

    resource.status = ResourceStatus.DELETED.value
    resource.configuration = {**cfg, **_progress("deleted", 0, "Resource deprovisioned")}
    db.session.commit()
    current_app.logger.info("Resource %s deprovisioned", resource_id)
