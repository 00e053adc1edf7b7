"""Todo blueprint — todo CRUD plus the collaboration workflow.

Endpoint groups:
  Todo CRUD        GET/POST        /api/v1/todos
                   GET/PUT/DELETE  /api/v1/todos/<todo_id>
  Share            POST /api/v1/todos/<todo_id>/collaborations/<collaborator_id>
  Confirm          GET  /api/v1/todos/<todo_id>/collaborations/<collaborator_id>/confirm?token=

The caller identity is resolved by the JWT middleware and passed explicitly
into the service layer. Service layer owns all business logic and commits.

A wrong confirmation token is a normal outcome: 200 with the
"Collaboration request invalid." message, not an error.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import todo_app.services.todo_service as todo_service
from todo_app.blueprints import paginate_query
from todo_app.core.exceptions import NotFoundError, ValidationError
from todo_app.identity import current_identity
from todo_app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

todo_bp = Blueprint("todo", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@todo_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@todo_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)


@todo_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in todo_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Todo CRUD  (/api/v1/todos)
# ═════════════════════════════════════════════════════════════════════════


@todo_bp.route("/todos", methods=["GET"])
def list_todos():
    """List the caller's todos, newest first.

    Query params: limit, offset
    """
    items, total = paginate_query(todo_service.list_todos(current_identity()))
    return jsonify({"items": [t.to_dict() for t in items], "total": total}), 200


@todo_bp.route("/todos", methods=["POST"])
def create_todo():
    """Create a todo owned by the caller.

    Body: {title, description?, priority?, due_date?, status?}
    Returns: created todo dict (201).
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    todo = todo_service.create_todo(data, current_identity())
    return jsonify(todo.to_dict()), 201


@todo_bp.route("/todos/<int:todo_id>", methods=["GET"])
def get_todo(todo_id):
    todo = todo_service.get_todo(todo_id, current_identity())
    return jsonify(todo.to_dict(include_requests=True)), 200


@todo_bp.route("/todos/<int:todo_id>", methods=["PUT"])
def update_todo(todo_id):
    """Update task fields; only supplied fields change."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "Request body is required")

    todo = todo_service.update_todo(todo_id, data, current_identity())
    return jsonify(todo.to_dict()), 200


@todo_bp.route("/todos/<int:todo_id>", methods=["DELETE"])
def delete_todo(todo_id):
    todo_service.delete_todo(todo_id, current_identity())
    return jsonify({"deleted": True, "id": todo_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Collaboration  (/api/v1/todos/<todo_id>/collaborations/<collaborator_id>)
# ═════════════════════════════════════════════════════════════════════════


@todo_bp.route("/todos/<int:todo_id>/collaborations/<int:collaborator_id>", methods=["POST"])
def share_todo(todo_id, collaborator_id):
    """Invite a collaborator; the token travels via the sharing queue.

    Returns: {"collaborator": name, "message": ...} (201).
    """
    collaborator_name = todo_service.share_with_collaborator(todo_id, collaborator_id)
    return jsonify({
        "collaborator": collaborator_name,
        "message": f"You successfully shared your todo with {collaborator_name}.",
    }), 201


@todo_bp.route("/todos/<int:todo_id>/collaborations/<int:collaborator_id>/confirm", methods=["GET"])
def confirm_collaboration(todo_id, collaborator_id):
    """Confirm an invitation.

    Query params: token (required; an empty value is a wrong token)
    Returns: {"message": "Collaboration confirmed." | "Collaboration request invalid."}
    """
    if "token" not in request.args:
        return api_error(E.VALIDATION_REQUIRED, "token is required")
    token = request.args["token"]

    message = todo_service.confirm_collaboration(todo_id, collaborator_id, token)
    return jsonify({
        "message": message,
        "confirmed": message == todo_service.COLLABORATION_CONFIRMED,
    }), 200
