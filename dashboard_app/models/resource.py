# dashboard_app/models/resource.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import uuid
from datetime import datetime
from ..extensions import db
from .enums import ResourceStatus, ResourceType


class Resource(db.Model):
    __tablename__ = "resources"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(20), nullable=False, default=ResourceType.STORAGE.value)
    # PROVISIONING -> ACTIVE | INACTIVE; INACTIVE may go back to PROVISIONING on redeploy
    status = db.Column(db.String(20), nullable=False, default=ResourceStatus.INACTIVE.value, index=True)

    organisation_id = db.Column(db.Integer, db.ForeignKey("organisations.id"), index=True, nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), index=True, nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)

    endpoint = db.Column(db.String(512))     # set once ACTIVE
    credentials = db.Column(db.JSON)         # set once ACTIVE
    # deployment_stage / deployment_progress / deployment_message + provider metadata
    configuration = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship("User", backref=db.backref("resources", lazy="dynamic"))
    organisation = db.relationship("Organisation")
    project = db.relationship("Project")
