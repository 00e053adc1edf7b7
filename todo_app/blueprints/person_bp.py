"""Person blueprint — candidate collaborators for the share dialog.

    GET /api/v1/persons       — everyone except the caller
    GET /api/v1/persons/me    — the caller's own Person (created on first use)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

import todo_app.services.person_service as person_service
from todo_app.identity import current_identity

logger = logging.getLogger(__name__)

person_bp = Blueprint("person", __name__, url_prefix="/api/v1")


@person_bp.route("/persons", methods=["GET"])
def list_persons():
    identity = current_identity()
    persons = person_service.list_persons(exclude_name=identity.name)
    return jsonify({"items": [p.to_dict() for p in persons], "total": len(persons)}), 200


@person_bp.route("/persons/me", methods=["GET"])
def me():
    person = person_service.get_or_create_person(current_identity())
    return jsonify(person.to_dict()), 200
