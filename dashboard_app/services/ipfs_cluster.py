# dashboard_app/services/ipfs_cluster.py
# -*- coding: utf-8 -*-
"""IPFS Cluster REST API client (read side) and file pin reconciliation.

The cluster streams ``/peers`` and ``/pins`` as NDJSON: one JSON object per line.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ClusterError
from ..extensions import db
from ..models import UserFile
from .storage_activity import log_activity


@dataclass(frozen=True)
class ClusterSettings:
    base_url: str = "http://localhost:9094"
    timeout: float = 5.0

    @classmethod
    def from_config(cls, config) -> "ClusterSettings":
        return cls(
            base_url=(config.get("IPFS_CLUSTER_API_URL") or "http://localhost:9094").rstrip("/"),
            timeout=float(config.get("IPFS_CLUSTER_TIMEOUT") or 5),
        )


def parse_ndjson(text: str) -> list[dict]:
    out = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except ValueError:
            continue
        if isinstance(obj, dict):
            out.append(obj)
    return out


def _peer(raw: dict) -> dict:
    return {
        "id": raw.get("id"),
        "peername": raw.get("peername"),
        "ipfs_peer_id": (raw.get("ipfs") or {}).get("id", ""),
        "addresses": raw.get("addresses") or [],
    }


def _pin(raw: dict) -> dict:
    peer_map = {}
    for peer_id, data in (raw.get("peer_map") or {}).items():
        data = data or {}
        peer_map[peer_id] = {
            "peername": data.get("peername"),
            "status": data.get("status"),
            "timestamp": data.get("timestamp"),
            "error": data.get("error"),
        }
    return {
        "cid": raw.get("cid"),
        "name": raw.get("name") or "",
        "allocations": raw.get("allocations") or [],
        "created": raw.get("created"),
        "peer_map": peer_map,
    }


def pin_state(pin: dict) -> str:
    """pinned | pinning | pin_error | unknown, from the per-peer statuses."""
    statuses = {(p or {}).get("status") for p in (pin.get("peer_map") or {}).values()}
    if "pinned" in statuses:
        return "pinned"
    if statuses & {"pinning", "pin_queued"}:
        return "pinning"
    if "pin_error" in statuses:
        return "pin_error"
    return "unknown"


class ClusterClient:
    def __init__(self, settings: ClusterSettings):
        self.settings = settings

    @property
    def api(self) -> str:
        return urlparse(self.settings.base_url).netloc or self.settings.base_url

    def _get(self, path: str) -> requests.Response:
        try:
            return requests.get(f"{self.settings.base_url}{path}", timeout=self.settings.timeout)
        except requests.RequestException as e:
            raise ClusterError(f"Cluster API request failed: {e}") from e

    def _get_ok(self, path: str) -> requests.Response:
        resp = self._get(path)
        if not 200 <= resp.status_code < 300:
            raise ClusterError(f"Cluster API error: {resp.status_code} {resp.text}")
        return resp

    def health(self) -> bool:
        try:
            resp = self._get("/health")
        except ClusterError:
            return False
        return 200 <= resp.status_code < 300

    def peers(self) -> list[dict]:
        return [_peer(p) for p in parse_ndjson(self._get_ok("/peers").text)]

    def pins(self) -> list[dict]:
        return [_pin(p) for p in parse_ndjson(self._get_ok("/pins").text)]

    def pin_status(self, cid: str) -> Optional[dict]:
        resp = self._get(f"/pins/{cid}")
        if resp.status_code == 404:
            return None
        if not 200 <= resp.status_code < 300:
            raise ClusterError(f"Cluster API error: {resp.status_code} {resp.text}")
        try:
            return _pin(resp.json())
        except ValueError as e:
            raise ClusterError(f"Cluster API returned invalid JSON for {cid}: {e}") from e

    def status(self) -> dict:
        base = {
            "api": self.api,
            "last_checked": datetime.now(timezone.utc).isoformat(),
        }
        if not self.health():
            return {"status": "offline", **base}

        # peers and pins degrade independently
        try:
            peers = self.peers()
        except ClusterError as e:
            current_app.logger.warning("Cluster peers unavailable: %s", e)
            peers = []
        try:
            pins = self.pins()
        except ClusterError as e:
            current_app.logger.warning("Cluster pins unavailable: %s", e)
            pins = []

        recent = sorted(pins, key=lambda p: p.get("created") or "", reverse=True)[:5]
        return {
            "status": "healthy",
            **base,
            "peers": peers,
            "total_pins": len(pins),
            "recent_pins": recent,
        }


def _is_pinned(pin: dict) -> bool:
    # /allocations-style entries carry no peer_map; presence is all we know
    return not pin.get("peer_map") or pin_state(pin) == "pinned"


def sync_user_files(user_id: int, client: ClusterClient) -> dict:
    """Mirror cluster pin state onto the user's files. Returns counts."""
    started = time.monotonic()
    try:
        pins = {p["cid"]: p for p in client.pins() if p.get("cid")}
        files = UserFile.query.filter_by(user_id=user_id).all()
        now = datetime.utcnow()
        pinned = 0
        for f in files:
            pin = pins.get(f.ipfs_hash) if f.ipfs_hash else None
            if pin is not None:
                allocations = list(pin.get("allocations") or [])
                f.is_pinned = _is_pinned(pin)
                f.replication_count = len(allocations) or 1
                f.node_locations = allocations
            else:
                f.is_pinned = False
                f.replication_count = 0
                f.node_locations = []
            f.last_sync_at = now
            pinned += 1 if f.is_pinned else 0
        db.session.commit()
    except (ClusterError, SQLAlchemyError) as e:
        db.session.rollback()
        current_app.logger.exception("Cluster sync failed for user %s", user_id)
        log_activity(user_id, "sync", file_name="cluster-sync", success=False, error_message=str(e))
        if isinstance(e, ClusterError):
            raise
        raise ClusterError(f"Cluster sync failed: {e}") from e

    elapsed_ms = int((time.monotonic() - started) * 1000)
    log_activity(user_id, "sync", file_name="cluster-sync", response_time_ms=elapsed_ms, success=True)
    return {"files": len(files), "pinned": pinned}
