# dashboard_app/services/storage_quota.py
# -*- coding: utf-8 -*-
"""Per-user storage quota accounting.

Allocation comes from a fixed tier table; usage is always recomputed from the
user's files, never trusted from the stored snapshot. All sizes are plain
Python ints (no floats until the final percentage / humanized text).
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import InvalidTier, NotFound, StorageError
from ..extensions import db
from ..models import StorageTier, User, UserFile, UserStorageQuota

MIB = 1024 * 1024
GIB = 1024 * MIB

# largest value a signed 64-bit BigInteger column holds; not real infinity
UNLIMITED_BYTES = 2 ** 63 - 1

DEFAULT_PRO_TIER_GB = 50

# defaults; PRO_50GB is overridden by STORAGE_PRO_TIER_GB in tier_bytes()
STORAGE_TIER_BYTES: dict[str, int] = {
    StorageTier.FREE_500MB.value: 500 * MIB,
    StorageTier.BASIC_5GB.value: 5 * GIB,
    StorageTier.PRO_50GB.value: DEFAULT_PRO_TIER_GB * GIB,
    StorageTier.ENTERPRISE_500GB.value: 500 * GIB,
    StorageTier.UNLIMITED.value: UNLIMITED_BYTES,
}

_UNITS = ("B", "KB", "MB", "GB", "TB")


def _tier_value(tier) -> str:
    return tier.value if isinstance(tier, StorageTier) else str(tier)


def pro_tier_gb() -> int:
    if has_app_context():
        return int(current_app.config.get("STORAGE_PRO_TIER_GB", DEFAULT_PRO_TIER_GB))
    return DEFAULT_PRO_TIER_GB


def tier_bytes() -> dict[str, int]:
    """Tier -> allocated bytes, with the PRO size read from the app config."""
    table = dict(STORAGE_TIER_BYTES)
    table[StorageTier.PRO_50GB.value] = pro_tier_gb() * GIB
    return table


def is_valid_tier(value) -> bool:
    return _tier_value(value) in STORAGE_TIER_BYTES


def get_storage_tier_limit(tier) -> int:
    try:
        return tier_bytes()[_tier_value(tier)]
    except KeyError:
        raise InvalidTier(f"Unknown storage tier: {tier!r}") from None


def get_storage_tier_display_name(tier) -> str:
    names = {
        StorageTier.FREE_500MB.value: "Free (500MB)",
        StorageTier.BASIC_5GB.value: "Basic (5GB)",
        StorageTier.PRO_50GB.value: f"Pro ({pro_tier_gb()}GB)",
        StorageTier.ENTERPRISE_500GB.value: "Enterprise (500GB)",
        StorageTier.UNLIMITED.value: "Unlimited",
    }
    return names.get(_tier_value(tier), "Unknown")


def list_storage_tiers() -> list[dict]:
    """Tier catalog shown on the plans page (prices in USD/month)."""
    pro_gb = pro_tier_gb()
    limits = tier_bytes()
    return [
        {
            "tier": StorageTier.FREE_500MB.value, "name": "Free", "storage": "500 MB", "price": 0,
            "bytes": limits[StorageTier.FREE_500MB.value],
            "features": ["Basic IPFS storage", "Community support"],
        },
        {
            "tier": StorageTier.BASIC_5GB.value, "name": "Basic", "storage": "5 GB", "price": 9.99,
            "bytes": limits[StorageTier.BASIC_5GB.value],
            "features": ["5GB IPFS storage", "Priority support", "Basic analytics"],
        },
        {
            "tier": StorageTier.PRO_50GB.value, "name": "Pro", "storage": f"{pro_gb} GB", "price": 29.99,
            "bytes": limits[StorageTier.PRO_50GB.value],
            "features": [f"{pro_gb}GB IPFS storage", "Advanced analytics", "API access", "Priority support"],
        },
        {
            "tier": StorageTier.ENTERPRISE_500GB.value, "name": "Enterprise", "storage": "500 GB", "price": 99.99,
            "bytes": limits[StorageTier.ENTERPRISE_500GB.value],
            "features": ["500GB IPFS storage", "Advanced analytics", "API access",
                         "Dedicated support", "Custom integrations"],
        },
        {
            "tier": StorageTier.UNLIMITED.value, "name": "Unlimited", "storage": "Unlimited", "price": 199.99,
            "bytes": limits[StorageTier.UNLIMITED.value],
            "features": ["Unlimited IPFS storage", "All features", "Dedicated support",
                         "Custom integrations", "SLA guarantee"],
        },
    ]


def format_bytes(num) -> str:
    """1024-based, at most two decimals, trailing zeros dropped: 1536 MiB -> '1.5 GB'."""
    num = int(num)
    if num == 0:
        return "0 B"
    if num < 0:
        return "-" + format_bytes(-num)
    i = 0
    while i < len(_UNITS) - 1 and num >= 1024 ** (i + 1):
        i += 1
    text = f"{num / 1024 ** i:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_UNITS[i]}"


def usage_percentage(used_bytes: int, allocated_bytes: int) -> int:
    if not allocated_bytes or allocated_bytes <= 0:
        return 0
    return int(used_bytes) * 100 // int(allocated_bytes)


def aggregate_file_types(rows: Iterable[tuple[str, int]]) -> dict[str, dict]:
    """(file_type, size) pairs -> {file_type: {"count": n, "size": bytes}}."""
    out: dict[str, dict] = {}
    for file_type, size in rows:
        bucket = out.setdefault(file_type, {"count": 0, "size": 0})
        bucket["count"] += 1
        bucket["size"] += int(size or 0)
    return out


def calculate_user_storage_usage(user_id: int) -> int:
    total = (db.session.query(func.coalesce(func.sum(UserFile.file_size), 0))
             .filter(UserFile.user_id == user_id)
             .scalar())
    return int(total or 0)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _get_or_create_quota(user: User) -> UserStorageQuota:
    q = UserStorageQuota.query.filter_by(user_id=user.id).first()
    if q:
        return q
    tier = user.storage_tier or StorageTier.FREE_500MB.value
    q = UserStorageQuota(
        user_id=user.id,
        tier=tier,
        allocated_bytes=tier_bytes().get(tier, 0),
        used_bytes=0,
    )
    db.session.add(q)
    try:
        db.session.commit()
    except IntegrityError:
        # another request created it first (unique user_id)
        db.session.rollback()
        q = UserStorageQuota.query.filter_by(user_id=user.id).first()
        if q is None:
            raise
    return q


def _repair_allocation(q: UserStorageQuota) -> None:
    expected = tier_bytes().get(q.tier)
    if expected is None:
        return
    if not q.allocated_bytes or int(q.allocated_bytes) != expected:
        current_app.logger.warning(
            "Repairing allocated_bytes for user %s: %s -> %s (tier %s)",
            q.user_id, q.allocated_bytes, expected, q.tier,
        )
        q.allocated_bytes = expected


def get_user_storage_quota(user_id: int) -> dict:
    user = _get_user(user_id)
    try:
        q = _get_or_create_quota(user)
        _repair_allocation(q)

        used = calculate_user_storage_usage(user.id)
        q.used_bytes = used
        q.last_updated = datetime.utcnow()
        db.session.add(q)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to get storage quota for user %s", user_id)
        raise StorageError(f"Failed to get storage quota: {e}") from e

    allocated = int(q.allocated_bytes or 0)
    return {
        "id": q.id,
        "tier": q.tier,
        "allocated_bytes": allocated,
        "used_bytes": used,
        # not clamped: negative means over quota after a downgrade
        "available_bytes": allocated - used,
        "usage_percentage": usage_percentage(used, allocated),
        "user_tier": user.storage_tier,
    }


def check_storage_quota(user_id: int, additional_bytes: int) -> dict:
    quota = get_user_storage_quota(user_id)
    additional = int(additional_bytes)
    available = quota["available_bytes"]
    allowed = available >= additional

    result = {
        "allowed": allowed,
        "current_usage": quota["used_bytes"],
        "total_quota": quota["allocated_bytes"],
        "available_bytes": available,
    }
    if not allowed:
        result["reason"] = (
            f"Upload would exceed storage quota. "
            f"Available: {format_bytes(available)}, Required: {format_bytes(additional)}"
        )
    return result


def update_user_storage_tier(user_id: int, new_tier, updated_by=None) -> None:
    """Set the user's tier and upsert the quota allocation in one commit.

    ``used_bytes`` is left alone. The caller validates ``new_tier`` against
    the allowed list beforehand.
    """
    tier = _tier_value(new_tier)
    allocation = get_storage_tier_limit(tier)
    user = _get_user(user_id)
    try:
        now = datetime.utcnow()
        user.storage_tier = tier

        q = UserStorageQuota.query.filter_by(user_id=user.id).first()
        if q is None:
            q = UserStorageQuota(user_id=user.id, used_bytes=0)
            db.session.add(q)
        q.tier = tier
        q.allocated_bytes = allocation
        q.tier_updated_at = now
        q.tier_updated_by = str(updated_by) if updated_by is not None else None
        q.last_updated = now

        db.session.add(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to update storage tier for user %s", user_id)
        raise StorageError(f"Failed to update storage tier: {e}") from e


def get_user_storage_stats(user_id: int) -> dict:
    quota = get_user_storage_quota(user_id)
    files = UserFile.query.filter_by(user_id=user_id).all()

    pinned = [f for f in files if f.is_pinned]
    return {
        "total_files": len(files),
        "total_size": sum(int(f.file_size or 0) for f in files),
        "pinned_files": len(pinned),
        "pinned_size": sum(int(f.file_size or 0) for f in pinned),
        "file_types": aggregate_file_types((f.file_type, f.file_size) for f in files),
        "quota": {
            "tier": quota["tier"],
            "allocated": quota["allocated_bytes"],
            "used": quota["used_bytes"],
            "available": quota["available_bytes"],
            "usage_percentage": quota["usage_percentage"],
        },
    }
