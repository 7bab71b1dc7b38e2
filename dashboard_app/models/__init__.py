# dashboard_app/models/__init__.py
# -*- coding: utf-8 -*-
from .enums import StorageTier, ResourceStatus, ResourceType, TeamRole
from .user import User
from .user_quota import UserStorageQuota
from .file import UserFile, StorageActivity
from .organisation import Organisation, Project, Team, TeamMember, TeamStorageResource
from .resource import Resource


__all__ = [
    "StorageTier",
    "ResourceStatus",
    "ResourceType",
    "TeamRole",
    "User",
    "UserStorageQuota",
    "UserFile",
    "StorageActivity",
    "Organisation",
    "Project",
    "Team",
    "TeamMember",
    "TeamStorageResource",
    "Resource",
]
