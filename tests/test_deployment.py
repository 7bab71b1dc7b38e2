# tests/test_deployment.py
import pytest

from dashboard_app.errors import ConflictError, NotFound, ResourceApiError
from dashboard_app.models import Resource, ResourceStatus, Organisation, Project
from dashboard_app.services import deployment
from dashboard_app.services.resource_templates import get_template_by_id, short_id


@pytest.fixture
def resource(db_session, user_normal):
    r = Resource(name="my-cluster", owner_id=user_normal.id)
    db_session.add(r); db_session.commit()
    return r


class FakeApiClient:
    def __init__(self, provision_result=None, status_result=None, raise_on_provision=None):
        self.provision_result = provision_result or {}
        self.status_result = status_result or {}
        self.raise_on_provision = raise_on_provision
        self.calls = []

    def is_configured(self):
        return True

    def provision(self, provider, body):
        self.calls.append(("provision", provider, body))
        if self.raise_on_provision:
            raise self.raise_on_provision
        return self.provision_result

    def get_status(self, provider, resource_id):
        self.calls.append(("get_status", provider, resource_id))
        return self.status_result

    def deprovision(self, provider, resource_id):
        self.calls.append(("deprovision", provider, resource_id))
        return {"success": True}


@pytest.fixture
def api_configured(app, monkeypatch):
    def _install(client):
        monkeypatch.setitem(app.config, "RESOURCE_API_URL", "http://resource-api.test")
        monkeypatch.setattr(deployment, "_api_client", lambda: client)
        return client
    return _install


# --------------------------------------------------------------------
# Simulated driver
# --------------------------------------------------------------------
def test_simulate_walks_stages_and_activates(db_session, resource):
    template = get_template_by_id("ipfs-cluster-small")
    seen = []

    result = deployment.simulate_deployment(resource.id, template, on_progress=seen.append)

    assert result.success is True
    assert [s["stage"] for s in seen] == ["init", "allocate", "configure", "provision", "verify", "complete"]
    assert [s["progress"] for s in seen] == [0, 20, 40, 60, 80, 100]

    sid = short_id(resource.id)
    db_session.refresh(resource)
    assert resource.status == ResourceStatus.ACTIVE.value
    assert resource.endpoint == f"http://ipfs-cluster-{sid}.local:9094"
    assert resource.credentials["clusterSecret"] == f"mock-cluster-secret-{sid}"
    cfg = resource.configuration
    assert cfg["deployment_stage"] == "complete"
    assert cfg["deployment_progress"] == 100
    assert cfg["deployment_message"] == "Deployment complete!"
    assert cfg["deployed_at"]
    assert cfg["nodes"] == 3
    assert cfg["clusterPeers"][0] == f"/ip4/10.0.1.1/tcp/9096/p2p/Qm{sid}Peer1"


def test_simulate_stage_delay_follows_template_time(app, db_session, resource, monkeypatch):
    monkeypatch.setitem(app.config, "DEPLOY_STAGE_DELAY_SCALE", 1.0)
    slept = []
    template = get_template_by_id("small-storage")  # 2000 ms

    deployment.simulate_deployment(resource.id, template, sleep=slept.append)

    assert len(slept) == len(deployment.DEPLOYMENT_STAGES)
    assert slept[0] == pytest.approx(2.0 / 6)


def test_simulate_failure_marks_inactive(db_session, resource, monkeypatch):
    def boom(*a, **k):
        raise RuntimeError("disk on fire")
    monkeypatch.setattr(deployment, "generate_mock_endpoint", boom)

    result = deployment.simulate_deployment(resource.id, get_template_by_id("small-storage"))

    assert result.success is False
    assert result.error == "disk on fire"
    db_session.refresh(resource)
    assert resource.status == ResourceStatus.INACTIVE.value
    assert resource.configuration["deployment_stage"] == "failed"
    assert resource.configuration["deployment_progress"] == 0
    assert resource.configuration["deployment_message"] == "Deployment failed"
    assert resource.configuration["error"] == "disk on fire"
    assert deployment.get_deployment_status(resource.id) is None


def test_simulate_missing_resource_does_not_raise(db_session):
    result = deployment.simulate_deployment("does-not-exist", get_template_by_id("small-storage"))
    assert result.success is False


# --------------------------------------------------------------------
# Status polling
# --------------------------------------------------------------------
def test_status_unknown_resource_is_none(db_session):
    assert deployment.get_deployment_status("nope") is None


def test_status_inactive_without_config_is_none(db_session, resource):
    assert deployment.get_deployment_status(resource.id) is None


def test_status_provisioning_uses_defaults(db_session, resource):
    resource.status = ResourceStatus.PROVISIONING.value
    resource.configuration = {"template_id": "small-storage"}
    db_session.commit()

    assert deployment.get_deployment_status(resource.id) == {
        "stage": "init", "progress": 0, "message": "Deploying...",
    }


def test_status_provisioning_without_config_is_none(db_session, resource):
    resource.status = ResourceStatus.PROVISIONING.value
    resource.configuration = None
    db_session.commit()
    assert deployment.get_deployment_status(resource.id) is None


def test_status_active_complete(db_session, resource):
    deployment.simulate_deployment(resource.id, get_template_by_id("medium-storage"))
    assert deployment.get_deployment_status(resource.id) == {
        "stage": "complete", "progress": 100, "message": "Deployment complete!",
    }


def test_status_active_without_complete_stage_is_none(db_session, resource):
    resource.status = ResourceStatus.ACTIVE.value
    resource.configuration = {"deployment_stage": "verify"}
    db_session.commit()
    assert deployment.get_deployment_status(resource.id) is None


# --------------------------------------------------------------------
# deploy_resource
# --------------------------------------------------------------------
def test_deploy_unknown_template(db_session, resource):
    assert deployment.deploy_resource(resource.id, "nope") == {
        "success": False, "error": "Template nope not found",
    }


def test_deploy_unknown_resource(db_session):
    result = deployment.deploy_resource("missing-id", "small-storage")
    assert result["success"] is False
    assert result["error"] == "Resource missing-id not found"


def test_deploy_returns_before_background_work(db_session, resource, monkeypatch):
    queued = []
    monkeypatch.setattr(deployment, "spawn", lambda fn, *a: queued.append((fn, a)))

    assert deployment.deploy_resource(resource.id, "small-storage") == {"success": True}

    db_session.refresh(resource)
    assert resource.status == ResourceStatus.PROVISIONING.value
    assert resource.configuration["template_id"] == "small-storage"
    assert deployment.get_deployment_status(resource.id) == {
        "stage": "init", "progress": 0, "message": "Initialising deployment...",
    }
    assert queued[0][0] is deployment.simulate_deployment


def test_deploy_simulated_end_to_end(db_session, resource, inline_spawn):
    assert deployment.deploy_resource(resource.id, "postgres-small")["success"] is True

    assert inline_spawn[0][0] == "simulate_deployment"
    db_session.refresh(resource)
    assert resource.status == ResourceStatus.ACTIVE.value
    assert resource.endpoint.startswith("postgresql://postgres-")
    assert resource.configuration["template_id"] == "postgres-small"


# --------------------------------------------------------------------
# API driver
# --------------------------------------------------------------------
def test_deploy_via_api_success(db_session, resource, api_configured, inline_spawn):
    client = api_configured(FakeApiClient(provision_result={
        "success": True, "id": "api-42", "status": "running", "access": "postgres://db.example:5432",
    }))

    assert deployment.deploy_resource(resource.id, "postgres-small")["success"] is True

    assert inline_spawn[0][0] == "provision_via_api"
    _, provider, body = client.calls[0]
    assert provider == "postgres"
    assert body["name"] == "my-cluster"
    assert body["projectName"] == "Default Project"
    assert body["sshKeys"] == []

    db_session.refresh(resource)
    assert resource.status == ResourceStatus.ACTIVE.value
    assert resource.endpoint == "postgres://db.example:5432"
    assert resource.credentials == {"resource_api_id": "api-42", "resource_api_status": "running"}
    cfg = resource.configuration
    assert cfg["provider"] == "postgres"
    assert cfg["resource_api_id"] == "api-42"
    assert cfg["deployment_stage"] == "complete"
    assert cfg["deployed_at"]


def test_api_body_uses_org_and_project(db_session, user_normal, api_configured):
    org = Organisation(name="acme-org")
    db_session.add(org); db_session.commit()
    proj = Project(organisation_id=org.id, name="web")
    db_session.add(proj); db_session.commit()
    r = Resource(name="db", owner_id=user_normal.id, organisation_id=org.id, project_id=proj.id)
    db_session.add(r); db_session.commit()
    client = api_configured(FakeApiClient(provision_result={"success": True, "id": "x"}))

    deployment.deploy_resource(r.id, "postgres-medium")

    body = client.calls[0][2]
    assert body["organisationName"] == "acme-org"
    assert body["projectName"] == "web"
    assert body["userId"] == str(user_normal.id)


def test_deploy_via_api_reported_failure(db_session, resource, api_configured):
    api_configured(FakeApiClient(provision_result={"success": False, "error": "no capacity"}))

    assert deployment.deploy_resource(resource.id, "ipfs-cluster-small")["success"] is True

    db_session.refresh(resource)
    assert resource.status == ResourceStatus.INACTIVE.value
    assert resource.configuration["deployment_stage"] == "failed"
    assert resource.configuration["deployment_message"] == "Provisioning failed"
    assert resource.configuration["error"] == "no capacity"


def test_deploy_via_api_transport_error(db_session, resource, api_configured):
    api_configured(FakeApiClient(raise_on_provision=ResourceApiError("Resource API error (500): boom", status=500)))

    deployment.deploy_resource(resource.id, "postgres-small")

    db_session.refresh(resource)
    assert resource.status == ResourceStatus.INACTIVE.value
    assert resource.configuration["error"] == "Resource API error (500): boom"


def test_template_without_provider_is_simulated_even_with_api(db_session, resource, api_configured, inline_spawn):
    client = api_configured(FakeApiClient())

    deployment.deploy_resource(resource.id, "large-storage")

    assert inline_spawn[0][0] == "simulate_deployment"
    assert client.calls == []


# --------------------------------------------------------------------
# Redeploy / refresh / deprovision
# --------------------------------------------------------------------
def test_redeploy_after_failure(db_session, resource):
    resource.status = ResourceStatus.INACTIVE.value
    resource.configuration = {
        "template_id": "small-storage", "deployment_stage": "failed",
        "deployment_progress": 0, "deployment_message": "Deployment failed", "error": "x",
    }
    db_session.commit()

    assert deployment.redeploy_resource(resource.id) == {"success": True}

    db_session.refresh(resource)
    assert resource.status == ResourceStatus.ACTIVE.value
    assert "error" not in resource.configuration


def test_redeploy_while_provisioning_conflicts(db_session, resource):
    resource.status = ResourceStatus.PROVISIONING.value
    resource.configuration = {"template_id": "small-storage"}
    db_session.commit()
    with pytest.raises(ConflictError):
        deployment.redeploy_resource(resource.id)


def test_redeploy_without_template(db_session, resource):
    assert deployment.redeploy_resource(resource.id)["success"] is False


def test_refresh_mirrors_provider_status(db_session, resource):
    resource.status = ResourceStatus.ACTIVE.value
    resource.configuration = {"provider": "postgres", "resource_api_id": "api-1", "deployment_stage": "complete"}
    resource.credentials = {"resource_api_id": "api-1", "resource_api_status": "running"}
    db_session.commit()
    client = FakeApiClient(status_result={"status": "failed"})

    out = deployment.refresh_from_provider(resource.id, client=client)

    assert out == {"status": "INACTIVE", "provider_status": "failed"}
    assert client.calls == [("get_status", "postgres", "api-1")]
    db_session.refresh(resource)
    assert resource.credentials["resource_api_status"] == "failed"


def test_refresh_leaves_status_for_unknown_provider_state(db_session, resource):
    resource.status = ResourceStatus.ACTIVE.value
    resource.configuration = {"provider": "postgres", "resource_api_id": "api-1"}
    db_session.commit()

    out = deployment.refresh_from_provider(resource.id, client=FakeApiClient(status_result={"status": "pending"}))
    assert out["status"] == "ACTIVE"


def test_refresh_requires_api_managed_resource(db_session, resource):
    with pytest.raises(ConflictError):
        deployment.refresh_from_provider(resource.id, client=FakeApiClient())
    with pytest.raises(NotFound):
        deployment.refresh_from_provider("nope", client=FakeApiClient())


def test_deprovision(db_session, resource):
    resource.status = ResourceStatus.ACTIVE.value
    resource.configuration = {"provider": "postgres", "resource_api_id": "api-9"}
    db_session.commit()
    client = FakeApiClient()

    deployment.deprovision_resource(resource.id, client=client)

    assert ("deprovision", "postgres", "api-9") in client.calls
    db_session.refresh(resource)
    assert resource.status == ResourceStatus.DELETED.value


def test_deprovision_simulated_resource_skips_api(db_session, resource):
    client = FakeApiClient()
    deployment.deprovision_resource(resource.id, client=client)
    assert client.calls == []
    db_session.refresh(resource)
    assert resource.status == ResourceStatus.DELETED.value


# --------------------------------------------------------------------
# Background dispatch through the scheduler
# --------------------------------------------------------------------
_scheduler_spawn = deployment.spawn


def test_deploy_runs_on_scheduler_thread(db_session, resource, monkeypatch):
    import time
    from dashboard_app.extensions import scheduler

    monkeypatch.setattr(deployment, "spawn", _scheduler_spawn)
    assert deployment.deploy_resource(resource.id, "small-storage") == {"success": True}
    assert scheduler.running

    rid, deadline = resource.id, time.monotonic() + 10
    try:
        while True:
            db_session.rollback()  # drop the read snapshot so the job's commits show up
            current = db_session.get(Resource, rid)
            if current.status != ResourceStatus.PROVISIONING.value or time.monotonic() > deadline:
                break
            time.sleep(0.05)
    finally:
        scheduler.shutdown(wait=True)

    assert current.status == ResourceStatus.ACTIVE.value
    assert current.configuration["deployment_stage"] == "complete"
    assert current.endpoint
