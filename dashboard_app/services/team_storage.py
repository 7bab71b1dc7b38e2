# dashboard_app/services/team_storage.py
# -*- coding: utf-8 -*-
"""Team-level storage pool, bought by the team owner or a team lead."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFound, PermissionDenied
from ..extensions import db
from ..models import Team, TeamMember, TeamRole, TeamStorageResource, UserFile
from .storage_quota import format_bytes, get_storage_tier_limit


def _get_team(team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFound(f"Team {team_id} not found")
    return team


def _is_lead(team_id: int, user_id: int) -> bool:
    return TeamMember.query.filter_by(
        team_id=team_id, user_id=user_id, role=TeamRole.LEAD.value
    ).first() is not None


def _can_manage(team: Team, user_id: int) -> bool:
    return team.owner_id == user_id or _is_lead(team.id, user_id)


def is_team_member(team_id: int, user_id: int) -> bool:
    """Owner or any TeamMember row; false for an unknown team."""
    team = db.session.get(Team, team_id)
    if team is None:
        return False
    if team.owner_id == user_id:
        return True
    return TeamMember.query.filter_by(team_id=team_id, user_id=user_id).first() is not None


def get_team_storage(team_id: int) -> Optional[TeamStorageResource]:
    return TeamStorageResource.query.filter_by(team_id=team_id).first()


def _require_storage(team_id: int) -> TeamStorageResource:
    storage = get_team_storage(team_id)
    if storage is None:
        raise NotFound("Team storage not found")
    return storage


def create_team_storage(team_id: int, purchased_by: int, tier, name: str | None = None,
                        description: str | None = None) -> TeamStorageResource:
    total = get_storage_tier_limit(tier)  # InvalidTier on unknown tier

    if get_team_storage(team_id) is not None:
        raise ConflictError("Team already has a storage resource")

    team = _get_team(team_id)
    if not _can_manage(team, purchased_by):
        raise PermissionDenied("Only team owners or leads can purchase storage")

    storage = TeamStorageResource(
        team_id=team.id,
        name=name or f"{team.name} Storage",
        description=description,
        tier=getattr(tier, "value", tier),
        total_bytes=total,
        used_bytes=0,
        purchased_by=purchased_by,
    )
    db.session.add(storage)
    try:
        db.session.commit()
    except IntegrityError as e:
        # unique team_id: lost a race with a concurrent purchase
        db.session.rollback()
        raise ConflictError("Team already has a storage resource") from e
    return storage


def update_team_storage(team_id: int, user_id: int, *, name: str | None = None,
                        description: str | None = None, tier=None) -> TeamStorageResource:
    storage = _require_storage(team_id)
    team = _get_team(team_id)
    if not _can_manage(team, user_id):
        raise PermissionDenied("Only team owners or leads can update storage")

    if name:
        storage.name = name
    if description is not None:
        storage.description = description
    if tier:
        storage.total_bytes = get_storage_tier_limit(tier)
        storage.tier = getattr(tier, "value", tier)

    db.session.commit()
    return storage


def delete_team_storage(team_id: int, user_id: int) -> None:
    storage = _require_storage(team_id)
    team = _get_team(team_id)
    if team.owner_id != user_id:
        raise PermissionDenied("Only team owner can delete storage")

    if UserFile.query.filter_by(team_id=team_id).count() > 0:
        raise ConflictError("Cannot delete storage with existing files. Please delete all files first.")

    db.session.delete(storage)
    db.session.commit()


def check_team_storage_quota(team_id: int, file_size: int) -> dict:
    storage = get_team_storage(team_id)
    if storage is None:
        return {"allowed": False, "reason": "Team has no storage resource"}
    if not storage.is_active:
        return {"allowed": False, "reason": "Team storage is inactive"}

    total = int(storage.total_bytes or 0)
    used = int(storage.used_bytes or 0)
    available = total - used
    size = int(file_size)

    if size > available:
        return {
            "allowed": False,
            "reason": (f"File size ({format_bytes(size)}) exceeds available "
                       f"team storage ({format_bytes(available)})"),
        }
    return {
        "allowed": True,
        "quota_info": {"allocated": total, "used": used, "available": available},
    }


def update_team_storage_usage(team_id: int) -> TeamStorageResource:
    storage = _require_storage(team_id)
    total = (db.session.query(func.coalesce(func.sum(UserFile.file_size), 0))
             .filter(UserFile.team_id == team_id)
             .scalar())
    storage.used_bytes = int(total or 0)
    storage.updated_at = datetime.utcnow()
    db.session.commit()
    return storage
