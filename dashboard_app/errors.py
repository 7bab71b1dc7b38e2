# dashboard_app/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors raised by the service layer."""
    status_code = 500


class NotFound(DashboardError):
    status_code = 404


class StorageError(DashboardError):
    """Quota record could not be read or written."""
    status_code = 500


class PermissionDenied(DashboardError):
    status_code = 403


class ConflictError(DashboardError):
    status_code = 409


class ResourceApiError(DashboardError):
    """Non-2xx answer or transport failure from the resource provisioning API."""
    status_code = 502

    def __init__(self, message: str, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ClusterError(DashboardError):
    status_code = 502


class InvalidTier(DashboardError, ValueError):
    """Storage tier name outside the tier table."""
    status_code = 400
