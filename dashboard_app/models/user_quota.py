# dashboard_app/models/user_quota.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db
from .enums import StorageTier


class UserStorageQuota(db.Model):
    __tablename__ = "user_storage_quotas"

    id = db.Column(db.Integer, primary_key=True)
    # unique: the only guard against two concurrent first reads creating two rows
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    tier = db.Column(db.String(20), nullable=False, default=StorageTier.FREE_500MB.value)
    allocated_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    used_bytes = db.Column(db.BigInteger, nullable=False, default=0)   # snapshot, recomputed on read

    tier_updated_at = db.Column(db.DateTime, nullable=True)
    tier_updated_by = db.Column(db.String(120), nullable=True)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
