# dashboard_app/services/resource_api.py
# -*- coding: utf-8 -*-
"""HTTP client for the external resource provisioning API.

Routes (all JSON):
  GET    /providers/info
  POST   /v1/<provider>
  GET    /v1/<provider>?org=..&project=..
  GET    /v1/<provider>/<id>
  PUT    /v1/<provider>/<id>
  DELETE /v1/<provider>/<id>
  GET    /v1/<provider>/<id>/metrics
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import requests

from ..errors import ResourceApiError


@dataclass(frozen=True)
class ResourceApiSettings:
    base_url: str
    api_key: str = ""
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config) -> "ResourceApiSettings":
        return cls(
            base_url=(config.get("RESOURCE_API_URL") or "").rstrip("/"),
            api_key=config.get("RESOURCE_API_KEY") or "",
            timeout=float(config.get("RESOURCE_API_TIMEOUT") or 30),
        )


class ResourceApiClient:
    def __init__(self, settings: ResourceApiSettings):
        self.settings = settings

    def is_configured(self) -> bool:
        return bool(self.settings.base_url)

    def _headers(self, with_key: bool = True) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if with_key and self.settings.api_key:
            headers["X-API-Key"] = self.settings.api_key
        return headers

    def _request(self, method: str, path: str, *, json: Any = None,
                 params: Optional[dict] = None, with_key: bool = True) -> Any:
        url = f"{self.settings.base_url}{path}"
        try:
            resp = requests.request(
                method, url,
                headers=self._headers(with_key),
                json=json,
                params=params,
                timeout=self.settings.timeout,
            )
        except requests.RequestException as e:
            raise ResourceApiError(f"Resource API request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise ResourceApiError(
                f"Resource API error ({resp.status_code}): {resp.text}",
                status=resp.status_code, body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ResourceApiError(f"Resource API returned invalid JSON: {e}",
                                   status=resp.status_code, body=resp.text) from e

    # ---------- providers ----------
    def discover_providers(self) -> dict:
        # provider discovery is public; no key sent
        return self._request("GET", "/providers/info", with_key=False)

    # ---------- resources ----------
    def provision(self, provider: str, body: dict) -> dict:
        """``body``: name, organisationName, projectName, userId, sshKeys (+ provider extras)."""
        return self._request("POST", f"/v1/{provider}", json=body)

    def get_status(self, provider: str, resource_id: str) -> dict:
        return self._request("GET", f"/v1/{provider}/{resource_id}")

    def list_resources(self, provider: str, org: str, project: str) -> dict:
        return self._request("GET", f"/v1/{provider}", params={"org": org, "project": project})

    def update(self, provider: str, resource_id: str, body: dict) -> dict:
        return self._request("PUT", f"/v1/{provider}/{resource_id}", json=body)

    def deprovision(self, provider: str, resource_id: str) -> dict:
        return self._request("DELETE", f"/v1/{provider}/{resource_id}")

    def get_metrics(self, provider: str, resource_id: str) -> Any:
        return self._request("GET", f"/v1/{provider}/{resource_id}/metrics")
