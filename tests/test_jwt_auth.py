"""Tests for identity resolution from JWT bearer tokens."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from todo_app.identity import IdentityContext
from todo_app.services import jwt_service


def _encode(app, **claims):
    secret = app.config["JWT_SECRET_KEY"]
    now = datetime.now(timezone.utc)
    payload = {"type": "access", "iat": now, "exp": now + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm=jwt_service.ALGORITHM)


class TestIdentityFromToken:

    def test_round_trip(self):
        token = jwt_service.generate_access_token("alice", "alice@example.com")

        assert jwt_service.identity_from_token(token) == IdentityContext("alice", "alice@example.com")

    def test_falls_back_to_sub_claim(self, app):
        token = _encode(app, sub="cognito-user")

        identity = jwt_service.identity_from_token(token)

        assert identity.name == "cognito-user"
        assert identity.email is None

    def test_rejects_wrong_token_type(self, app):
        token = _encode(app, sub="alice", type="refresh")

        with pytest.raises(jwt.InvalidTokenError):
            jwt_service.identity_from_token(token)

    def test_rejects_expired_token(self, app):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _encode(app, sub="alice", iat=past - timedelta(minutes=5), exp=past)

        with pytest.raises(jwt.ExpiredSignatureError):
            jwt_service.identity_from_token(token)

    def test_rejects_foreign_signature(self):
        token = jwt.encode({"sub": "alice", "type": "access"}, "some-other-secret-of-32-bytes!!!", algorithm="HS256")

        with pytest.raises(jwt.InvalidSignatureError):
            jwt_service.identity_from_token(token)


class TestMiddleware:

    def test_expired_token_is_401(self, app, client):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = _encode(app, sub="alice", iat=past - timedelta(minutes=5), exp=past)

        res = client.get("/api/v1/todos", headers={"Authorization": f"Bearer {token}"})

        assert res.status_code == 401

    def test_valid_token_resolves_identity(self, client, auth_headers):
        res = client.get("/api/v1/persons/me", headers=auth_headers("erin", "erin@example.com"))

        assert res.status_code == 200
        assert res.get_json()["name"] == "erin"
        assert res.get_json()["email"] == "erin@example.com"
