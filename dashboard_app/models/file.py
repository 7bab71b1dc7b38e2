# dashboard_app/models/file.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class UserFile(db.Model):
    __tablename__ = "user_files"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), index=True, nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False, default=0)
    file_type = db.Column(db.String(40), nullable=False, default="other", index=True)  # document|image|video|archive|other
    ipfs_hash = db.Column(db.String(120), index=True)
    storage_path = db.Column(db.String(512))
    is_pinned = db.Column(db.Boolean, nullable=False, default=False)
    replication_count = db.Column(db.Integer, nullable=False, default=0)
    node_locations = db.Column(db.JSON, default=list)  # cluster peer ids holding the pin
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    last_sync_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", backref=db.backref("files", lazy="dynamic"))


class StorageActivity(db.Model):
    __tablename__ = "storage_activities"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    action = db.Column(db.String(20), nullable=False, index=True)   # upload, download, delete, sync
    file_name = db.Column(db.String(255))
    file_size = db.Column(db.BigInteger, nullable=True)
    ipfs_hash = db.Column(db.String(120))
    response_time_ms = db.Column(db.Integer, nullable=True)
    success = db.Column(db.Boolean, nullable=False, default=True)
    error_message = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("storage_activities", lazy="dynamic"))
