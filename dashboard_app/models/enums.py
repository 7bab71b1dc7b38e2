# dashboard_app/models/enums.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from enum import Enum


class StorageTier(str, Enum):
    FREE_500MB = "FREE_500MB"
    BASIC_5GB = "BASIC_5GB"
    PRO_50GB = "PRO_50GB"
    ENTERPRISE_500GB = "ENTERPRISE_500GB"
    UNLIMITED = "UNLIMITED"


class ResourceStatus(str, Enum):
    PROVISIONING = "PROVISIONING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"
    DELETED = "DELETED"


class ResourceType(str, Enum):
    STORAGE = "STORAGE"
    COMPUTE = "COMPUTE"
    DATABASE = "DATABASE"
    API = "API"


class TeamRole(str, Enum):
    MEMBER = "MEMBER"
    LEAD = "LEAD"
