"""Todo service layer — ownership, CRUD and the collaboration workflow.

Collaboration lifecycle:
  share    → CollaborationRequest persisted with a fresh token, then the
             request is sent to the sharing queue
  confirm  → token checked; on match the request is deleted, then
             "Collaboration confirmed." is published to the updates topic

Rules:
  - The caller identity is always an explicit parameter (never from g).
  - db.session.commit() happens only in this file and person_service.
  - Messages are sent only after the owning transaction commits. A failed
    delivery is logged and never undoes persisted state.
  - Tokens never appear in log output.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from datetime import date
from flask import current_app
from sqlalchemy import delete, select

from todo_app.core.exceptions import NotFoundError, ValidationError
from todo_app.identity import IdentityContext
from todo_app.integrations.messaging_gateway import GatewayResult, MessagingGateway
from todo_app.models import db
from todo_app.models.collaboration import CollaborationRequest
from todo_app.models.person import Person
from todo_app.models.todo import (
    DESCRIPTION_MAX_LENGTH,
    PRIORITY_MAX,
    PRIORITY_MIN,
    TITLE_MAX_LENGTH,
    TODO_STATUSES,
    Todo,
)
from todo_app.services import person_service

logger = logging.getLogger(__name__)

COLLABORATION_CONFIRMED = "Collaboration confirmed."
COLLABORATION_INVALID = "Collaboration request invalid."

INVALID_TODO_ID = "Invalid todo ID: "
INVALID_PERSON_ID = "Invalid person ID: "
INVALID_TODO_OR_COLLABORATOR = "Invalid todo or collaborator."


def _messaging(gateway: MessagingGateway | None) -> MessagingGateway:
    return gateway if gateway is not None else current_app.extensions["messaging"]


# ── Ownership ─────────────────────────────────────────────────────────────────


def save(todo: Todo, identity: IdentityContext) -> Todo:
    """Persist ``todo``, assigning the caller as owner when none is set.

    Returns:
        The persisted Todo with id and owner populated.
    """
    if todo.owner is None:
        todo.owner = person_service.get_or_create_person(identity)

    db.session.add(todo)
    db.session.commit()
    return todo


# ── CRUD ──────────────────────────────────────────────────────────────────────


def _apply_fields(todo: Todo, data: dict, *, partial: bool) -> None:
    """Copy validated task fields from ``data`` onto ``todo``.

    Raises:
        ValidationError: with per-field details when any value is invalid.
    """
    errors: dict[str, str] = {}

    if "title" in data or not partial:
        title = (data.get("title") or "").strip()
        if not title:
            errors["title"] = "title is required"
        elif len(title) > TITLE_MAX_LENGTH:
            errors["title"] = f"title must be ≤ {TITLE_MAX_LENGTH} characters"
        else:
            todo.title = title

    if "description" in data:
        description = (data.get("description") or "").strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = f"description must be ≤ {DESCRIPTION_MAX_LENGTH} characters"
        else:
            todo.description = description

    if "priority" in data:
        try:
            priority = int(data["priority"])
        except (TypeError, ValueError):
            errors["priority"] = "priority must be an integer"
        else:
            if not PRIORITY_MIN <= priority <= PRIORITY_MAX:
                errors["priority"] = f"priority must be between {PRIORITY_MIN} and {PRIORITY_MAX}"
            else:
                todo.priority = priority

    if "due_date" in data:
        raw = data.get("due_date")
        if raw in (None, ""):
            todo.due_date = None
        else:
            try:
                todo.due_date = date.fromisoformat(str(raw))
            except ValueError:
                errors["due_date"] = "due_date must be an ISO date (YYYY-MM-DD)"

    if "status" in data:
        status = str(data.get("status") or "").upper()
        if status not in TODO_STATUSES:
            errors["status"] = f"status must be one of: {', '.join(sorted(TODO_STATUSES))}"
        else:
            todo.status = status

    if errors:
        raise ValidationError("Invalid todo", details=errors)


def get_todo(todo_id: int, identity: IdentityContext | None = None) -> Todo:
    """Return the Todo or raise NotFoundError.

    With ``identity`` set, a todo owned by someone else is reported as not
    found so its existence is not disclosed.
    """
    todo = db.session.get(Todo, todo_id)
    if todo is None:
        raise NotFoundError("Todo", todo_id)
    if identity is not None and todo.owner.name != identity.name:
        raise NotFoundError("Todo", todo_id)
    return todo


def list_todos(identity: IdentityContext):
    """Return a query over the caller's todos, newest first."""
    return (
        Todo.query.join(Todo.owner)
        .filter(Person.name == identity.name)
        .order_by(Todo.created_at.desc(), Todo.id.desc())
    )


def create_todo(data: dict, identity: IdentityContext) -> Todo:
    todo = Todo(priority=PRIORITY_MIN, status="OPEN", description="")
    _apply_fields(todo, data, partial=False)
    todo = save(todo, identity)
    logger.info("Created todo id=%s", todo.id, extra={"user": identity.name, "todo_id": todo.id})
    return todo


def update_todo(todo_id: int, data: dict, identity: IdentityContext) -> Todo:
    todo = get_todo(todo_id, identity)
    try:
        _apply_fields(todo, data, partial=True)
    except ValidationError:
        db.session.rollback()
        raise
    return save(todo, identity)


def delete_todo(todo_id: int, identity: IdentityContext) -> None:
    """Delete the todo; its pending collaboration requests go with it."""
    todo = get_todo(todo_id, identity)
    db.session.delete(todo)
    db.session.commit()
    logger.info("Deleted todo id=%s", todo_id, extra={"todo_id": todo_id})


# ── Collaboration workflow ────────────────────────────────────────────────────


def issue_token(todo_id: int, collaborator_id: int) -> str:
    """Return a fresh, unpredictable confirmation token.

    SHA3-256 over the ids, the issuance time in nanoseconds and a random
    nonce. Only the digest is stored; it cannot be recomputed.
    """
    material = f"{todo_id}:{collaborator_id}:{time.time_ns()}:{secrets.token_hex(16)}"
    return hashlib.sha3_256(material.encode("utf-8")).hexdigest()


def tokens_match(expected: str, supplied: str | None) -> bool:
    """Constant-time token comparison."""
    return hmac.compare_digest(expected.encode("utf-8"), (supplied or "").encode("utf-8"))


def find_collaboration_requests(todo: Todo, collaborator: Person) -> list[CollaborationRequest]:
    """Return the pending requests for the (todo, collaborator) pair, oldest first."""
    return list(
        db.session.execute(
            select(CollaborationRequest)
            .where(
                CollaborationRequest.todo_id == todo.id,
                CollaborationRequest.collaborator_id == collaborator.id,
            )
            .order_by(CollaborationRequest.id)
        ).scalars()
    )


def share_with_collaborator(
    todo_id: int,
    collaborator_id: int,
    *,
    gateway: MessagingGateway | None = None,
    queue_name: str | None = None,
) -> str:
    """Invite ``collaborator_id`` to ``todo_id``.

    Persists a new CollaborationRequest, then sends it to the sharing queue.

    Returns:
        The collaborator's name. This confirms who was invited; it says
        nothing about queue delivery.

    Raises:
        NotFoundError: unknown todo id or collaborator id.
    """
    todo = db.session.get(Todo, todo_id)
    if todo is None:
        raise NotFoundError("Todo", todo_id, message=f"Invalid todo id: {todo_id}")
    collaborator = db.session.get(Person, collaborator_id)
    if collaborator is None:
        raise NotFoundError("Person", collaborator_id, message=f"Invalid collaborator id: {collaborator_id}")

    logger.info("About to share todo with id %s with collaborator %s", todo_id, collaborator_id,
                extra={"todo_id": todo_id, "collaborator_id": collaborator_id})

    collaboration_request = CollaborationRequest(
        collaborator=collaborator,
        token=issue_token(todo.id, collaborator.id),
    )
    todo.collaboration_requests.append(collaboration_request)
    db.session.commit()

    queue = queue_name or current_app.config["SHARING_QUEUE"]
    result = _messaging(gateway).send_to_queue(queue, collaboration_request.to_message())
    _log_delivery(result, f"collaboration request {collaboration_request.id}")

    return collaborator.name


def confirm_collaboration(
    todo_id: int,
    collaborator_id: int,
    token: str | None,
    *,
    gateway: MessagingGateway | None = None,
    topic_name: str | None = None,
) -> str:
    """Confirm a pending invitation with its token.

    Three outcomes:
      - unknown todo / person / no request for the pair → NotFoundError
      - request exists, token wrong → COLLABORATION_INVALID (nothing changes)
      - token matches → request deleted, notification published,
        COLLABORATION_CONFIRMED returned

    The request row is removed with a conditional DELETE before anything is
    published, so of two concurrent confirmations only the one whose DELETE
    hit the row publishes; the other gets NotFoundError.
    """
    todo = db.session.get(Todo, todo_id)
    if todo is None:
        raise NotFoundError("Todo", todo_id, message=f"{INVALID_TODO_ID}{todo_id}")
    collaborator = db.session.get(Person, collaborator_id)
    if collaborator is None:
        raise NotFoundError("Person", collaborator_id, message=f"{INVALID_PERSON_ID}{collaborator_id}")

    pending = find_collaboration_requests(todo, collaborator)
    if not pending:
        raise NotFoundError("CollaborationRequest", message=INVALID_TODO_OR_COLLABORATOR)

    matched = next((r for r in pending if tokens_match(r.token, token)), None)
    if matched is None:
        logger.info("Rejected confirmation for todo %s collaborator %s: token mismatch",
                    todo_id, collaborator_id,
                    extra={"todo_id": todo_id, "collaborator_id": collaborator_id})
        return COLLABORATION_INVALID

    request_id = matched.id
    deleted = db.session.execute(
        delete(CollaborationRequest).where(CollaborationRequest.id == request_id)
    ).rowcount
    if deleted != 1:
        db.session.rollback()
        raise NotFoundError("CollaborationRequest", request_id, message=INVALID_TODO_OR_COLLABORATOR)
    db.session.commit()

    logger.info("Collaboration request %s confirmed", request_id,
                extra={"todo_id": todo_id, "collaborator_id": collaborator_id})

    topic = topic_name or current_app.config["UPDATES_TOPIC"]
    result = _messaging(gateway).publish_notification(topic, request_id, COLLABORATION_CONFIRMED)
    _log_delivery(result, f"confirmation of collaboration request {request_id}")

    return COLLABORATION_CONFIRMED


def _log_delivery(result: GatewayResult, what: str) -> None:
    if result.ok:
        return
    logger.error("Delivery of %s to %s failed after %d attempt(s): %s",
                 what, result.destination, result.attempts, result.error,
                 extra={"destination": result.destination})

