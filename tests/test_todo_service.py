"""Tests for the todo service layer — ownership and the collaboration workflow.

Coverage:
  1. save() provisions the owner from the caller identity exactly once
  2. share_with_collaborator persists one request + sends one queue message
  3. share_with_collaborator NotFound paths name the offending id
  4. confirm_collaboration: match → delete + publish; mismatch → sentinel
  5. confirm_collaboration NotFound paths (todo, person, pair)
  6. Second confirmation of the same request fails with NotFound
  7. Messaging failures never undo persisted state
  8. Deleting a todo removes its pending requests

Run: APP_ENV=testing python -m pytest tests/test_todo_service.py -v
"""

from __future__ import annotations

import re
from unittest.mock import patch

import pytest
from sqlalchemy import delete, func, select

from todo_app.core.exceptions import NotFoundError
from todo_app.identity import IdentityContext
from todo_app.models import db
from todo_app.models.collaboration import CollaborationRequest
from todo_app.models.person import Person
from todo_app.models.todo import Todo
import todo_app.services.todo_service as ts


# ── Helpers ─────────────────────────────────────────────────────────────────


def _person_count(name: str | None = None) -> int:
    stmt = select(func.count(Person.id))
    if name is not None:
        stmt = stmt.where(Person.name == name)
    return db.session.execute(stmt).scalar_one()


def _requests_for(todo_id: int) -> list[CollaborationRequest]:
    return list(db.session.execute(
        select(CollaborationRequest)
        .where(CollaborationRequest.todo_id == todo_id)
        .order_by(CollaborationRequest.id)
    ).scalars())


def _make_todo(identity: IdentityContext, title: str = "Write report") -> Todo:
    return ts.save(Todo(title=title), identity)


def _person_id(name: str) -> int:
    return db.session.execute(select(Person.id).where(Person.name == name)).scalar_one()


# ── save() ───────────────────────────────────────────────────────────────────


class TestSaveAssignsOwner:

    def test_creates_person_from_identity(self, alice):
        todo = _make_todo(alice)

        assert todo.id is not None
        assert todo.owner is not None
        assert todo.owner.name == "alice"
        assert todo.owner.email == "alice@example.com"

    def test_repeated_saves_reuse_person(self, alice):
        _make_todo(alice, "First")
        _make_todo(alice, "Second")
        _make_todo(alice, "Third")

        assert _person_count("alice") == 1

    def test_existing_person_is_looked_up_by_name(self, alice):
        existing = Person(name="alice", email="old@example.com")
        db.session.add(existing)
        db.session.commit()

        todo = _make_todo(alice)

        assert todo.owner.id == existing.id
        assert todo.owner.email == "old@example.com"
        assert _person_count() == 1

    def test_preset_owner_is_kept(self, alice, bob):
        bob_person = db.session.get(Person, _person_id("bob"))
        todo = ts.save(Todo(title="Bob's task", owner=bob_person), alice)

        assert todo.owner.name == "bob"
        assert _person_count("alice") == 0

    def test_update_keeps_owner(self, alice, bob):
        todo = _make_todo(alice)
        todo.title = "Renamed"

        saved = ts.save(todo, bob)

        assert saved.owner.name == "alice"
        assert saved.title == "Renamed"


# ── share_with_collaborator() ────────────────────────────────────────────────


class TestShareWithCollaborator:

    def test_returns_collaborator_name(self, alice, bob):
        todo = _make_todo(alice)

        assert ts.share_with_collaborator(todo.id, _person_id("bob")) == "bob"

    def test_creates_exactly_one_request(self, alice, bob):
        todo = _make_todo(alice)
        bob_id = _person_id("bob")

        ts.share_with_collaborator(todo.id, bob_id)

        requests = _requests_for(todo.id)
        assert len(requests) == 1
        assert requests[0].collaborator_id == bob_id
        assert requests[0].todo_id == todo.id

    def test_token_is_sha3_hex_digest(self, alice, bob):
        todo = _make_todo(alice)
        ts.share_with_collaborator(todo.id, _person_id("bob"))

        token = _requests_for(todo.id)[0].token
        assert re.fullmatch(r"[0-9a-f]{64}", token)

    def test_sends_exactly_one_queue_message(self, app, gateway, alice, bob):
        todo = _make_todo(alice)
        bob_id = _person_id("bob")

        ts.share_with_collaborator(todo.id, bob_id)

        assert len(gateway.sent) == 1
        assert gateway.published == []
        message = gateway.sent[0]
        assert message["queue"] == app.config["SHARING_QUEUE"]

        stored = _requests_for(todo.id)[0]
        payload = message["payload"]
        assert payload["id"] == stored.id
        assert payload["token"] == stored.token
        assert payload["todo"]["id"] == todo.id
        assert payload["collaborator"]["id"] == bob_id
        assert payload["collaborator"]["name"] == "bob"

    def test_tokens_differ_between_invitations(self, alice, bob):
        todo = _make_todo(alice)
        bob_id = _person_id("bob")

        ts.share_with_collaborator(todo.id, bob_id)
        ts.share_with_collaborator(todo.id, bob_id)

        tokens = {r.token for r in _requests_for(todo.id)}
        assert len(tokens) == 2

    def test_unknown_todo_raises_not_found_with_id(self, bob):
        with pytest.raises(NotFoundError, match="Invalid todo id: 999"):
            ts.share_with_collaborator(999, _person_id("bob"))

    def test_unknown_collaborator_raises_not_found_with_id(self, alice, gateway):
        todo = _make_todo(alice)

        with pytest.raises(NotFoundError, match="Invalid collaborator id: 4242"):
            ts.share_with_collaborator(todo.id, 4242)

        assert _requests_for(todo.id) == []
        assert gateway.sent == []

    def test_delivery_failure_keeps_request(self, gateway, alice, bob):
        todo = _make_todo(alice)
        gateway.fail = True

        name = ts.share_with_collaborator(todo.id, _person_id("bob"))

        assert name == "bob"
        assert len(_requests_for(todo.id)) == 1
        assert gateway.sent == []

    def test_explicit_gateway_and_queue_override(self, alice, bob):
        from todo_app.integrations.messaging_gateway import InMemoryMessagingGateway

        todo = _make_todo(alice)
        other = InMemoryMessagingGateway()

        ts.share_with_collaborator(todo.id, _person_id("bob"), gateway=other, queue_name="custom-queue")

        assert [m["queue"] for m in other.sent] == ["custom-queue"]


# ── confirm_collaboration() ──────────────────────────────────────────────────


@pytest.fixture()
def shared(alice, bob):
    """A todo of alice's shared with bob; returns (todo_id, bob_id, token)."""
    todo = _make_todo(alice)
    bob_id = _person_id("bob")
    ts.share_with_collaborator(todo.id, bob_id)
    token = _requests_for(todo.id)[0].token
    return todo.id, bob_id, token


class TestConfirmCollaboration:

    def test_correct_token_confirms(self, shared):
        todo_id, bob_id, token = shared

        assert ts.confirm_collaboration(todo_id, bob_id, token) == "Collaboration confirmed."

    def test_correct_token_deletes_request(self, shared):
        todo_id, bob_id, token = shared

        ts.confirm_collaboration(todo_id, bob_id, token)

        assert _requests_for(todo_id) == []

    def test_correct_token_publishes_once(self, app, gateway, shared):
        todo_id, bob_id, token = shared
        request_id = _requests_for(todo_id)[0].id

        ts.confirm_collaboration(todo_id, bob_id, token)

        assert len(gateway.published) == 1
        notification = gateway.published[0]
        assert notification["topic"] == app.config["UPDATES_TOPIC"]
        assert notification["subject"] == "Collaboration confirmed."
        assert notification["payload"] == request_id

    def test_wrong_token_returns_invalid_without_side_effects(self, gateway, shared):
        todo_id, bob_id, _token = shared

        result = ts.confirm_collaboration(todo_id, bob_id, "not-the-token")

        assert result == "Collaboration request invalid."
        assert len(_requests_for(todo_id)) == 1
        assert gateway.published == []

    def test_empty_token_is_invalid(self, shared):
        todo_id, bob_id, _token = shared

        assert ts.confirm_collaboration(todo_id, bob_id, "") == "Collaboration request invalid."
        assert ts.confirm_collaboration(todo_id, bob_id, None) == "Collaboration request invalid."

    def test_non_ascii_token_is_invalid(self, shared):
        todo_id, bob_id, _token = shared

        assert ts.confirm_collaboration(todo_id, bob_id, "tökén") == "Collaboration request invalid."

    def test_unknown_todo(self, shared):
        _todo_id, bob_id, token = shared

        with pytest.raises(NotFoundError, match="Invalid todo ID: 999"):
            ts.confirm_collaboration(999, bob_id, token)

    def test_unknown_person(self, shared):
        todo_id, _bob_id, token = shared

        with pytest.raises(NotFoundError, match="Invalid person ID: 999"):
            ts.confirm_collaboration(todo_id, 999, token)

    def test_no_request_for_pair(self, alice, shared):
        todo_id, _bob_id, token = shared
        alice_id = _person_id("alice")

        with pytest.raises(NotFoundError, match=r"^Invalid todo or collaborator\.$"):
            ts.confirm_collaboration(todo_id, alice_id, token)

    def test_second_confirmation_fails_not_found(self, gateway, shared):
        todo_id, bob_id, token = shared

        assert ts.confirm_collaboration(todo_id, bob_id, token) == "Collaboration confirmed."
        with pytest.raises(NotFoundError, match="Invalid todo or collaborator."):
            ts.confirm_collaboration(todo_id, bob_id, token)

        assert len(gateway.published) == 1

    def test_losing_concurrent_confirmation_is_not_found(self, gateway, shared):
        todo_id, bob_id, token = shared
        lookup = ts.find_collaboration_requests

        def lookup_then_lose_race(todo, collaborator):
            pending = lookup(todo, collaborator)
            # A concurrent confirmation removes the row after this caller read it
            db.session.execute(
                delete(CollaborationRequest).where(CollaborationRequest.todo_id == todo_id),
                execution_options={"synchronize_session": False},
            )
            return pending

        with patch.object(ts, "find_collaboration_requests", side_effect=lookup_then_lose_race):
            with pytest.raises(NotFoundError, match=r"^Invalid todo or collaborator\.$"):
                ts.confirm_collaboration(todo_id, bob_id, token)

        assert gateway.published == []

    def test_publish_failure_still_confirms(self, gateway, shared):
        todo_id, bob_id, token = shared
        gateway.fail = True

        assert ts.confirm_collaboration(todo_id, bob_id, token) == "Collaboration confirmed."
        assert _requests_for(todo_id) == []

    def test_any_pending_invitation_token_confirms(self, alice, bob):
        todo = _make_todo(alice)
        bob_id = _person_id("bob")
        ts.share_with_collaborator(todo.id, bob_id)
        ts.share_with_collaborator(todo.id, bob_id)
        first, second = _requests_for(todo.id)

        assert ts.confirm_collaboration(todo.id, bob_id, first.token) == "Collaboration confirmed."

        remaining = _requests_for(todo.id)
        assert [r.id for r in remaining] == [second.id]


class TestExampleWorkflow:
    """Todo 1 owned by A, collaborator 2 (B): share → confirm → confirm again."""

    def test_share_confirm_confirm_again(self):
        a = IdentityContext(name="A", email="a@example.com")
        b = IdentityContext(name="B", email="b@example.com")
        todo = _make_todo(a)
        b_person = ts.person_service.get_or_create_person(b)
        assert (todo.id, b_person.id) == (1, 2)

        assert ts.share_with_collaborator(1, 2) == "B"
        token = _requests_for(1)[0].token

        assert ts.confirm_collaboration(1, 2, token) == "Collaboration confirmed."
        with pytest.raises(NotFoundError):
            ts.confirm_collaboration(1, 2, token)


# ── Tokens ──────────────────────────────────────────────────────────────────


class TestTokens:

    def test_issue_token_is_unique_for_same_inputs(self):
        assert ts.issue_token(1, 2) != ts.issue_token(1, 2)

    def test_tokens_match(self):
        token = ts.issue_token(1, 2)

        assert ts.tokens_match(token, token)
        assert not ts.tokens_match(token, token[:-1])
        assert not ts.tokens_match(token, None)


# ── CRUD ────────────────────────────────────────────────────────────────────


class TestTodoCrud:

    def test_delete_todo_removes_pending_requests(self, alice, bob):
        todo = _make_todo(alice)
        ts.share_with_collaborator(todo.id, _person_id("bob"))
        todo_id = todo.id

        ts.delete_todo(todo_id, alice)

        assert db.session.get(Todo, todo_id) is None
        assert _requests_for(todo_id) == []

    def test_get_todo_hides_foreign_todo(self, alice, bob):
        todo = _make_todo(alice)

        with pytest.raises(NotFoundError):
            ts.get_todo(todo.id, bob)

    def test_list_todos_only_returns_own(self, alice, bob):
        _make_todo(alice, "Alice 1")
        _make_todo(alice, "Alice 2")
        _make_todo(bob, "Bob 1")

        titles = {t.title for t in ts.list_todos(alice).all()}
        assert titles == {"Alice 1", "Alice 2"}
