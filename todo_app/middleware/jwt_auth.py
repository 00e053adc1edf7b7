"""
JWT Auth Middleware — resolves the caller identity, sets g.identity.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  g.identity from name/email claims
  2. SECURITY_ENABLED=false               →  g.identity = DEV_USER_NAME / DEV_USER_EMAIL
  3. otherwise                            →  401 for every /api/v1/* route not skipped
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from todo_app.identity import IdentityContext
from todo_app.services.jwt_service import identity_from_token
from todo_app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.identity = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        token = _bearer_token()
        if token:
            try:
                g.identity = identity_from_token(token)
                return None
            except pyjwt.ExpiredSignatureError:
                logger.info("Rejected expired token path=%s", path)
            except pyjwt.InvalidTokenError as exc:
                logger.info("Rejected invalid token path=%s reason=%s", path, exc)

        if not current_app.config.get("SECURITY_ENABLED", True):
            g.identity = IdentityContext(
                name=current_app.config["DEV_USER_NAME"],
                email=current_app.config.get("DEV_USER_EMAIL"),
            )
            return None

        return api_error(E.UNAUTHORIZED, "Authentication required")
