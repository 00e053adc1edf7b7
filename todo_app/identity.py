"""
Caller identity.

The authentication middleware resolves one ``IdentityContext`` per request
and stores it on ``flask.g``. Blueprints read it with ``current_identity()``
and pass it explicitly into the service layer; services never touch ``g``.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import g


@dataclass(frozen=True)
class IdentityContext:
    """Authenticated principal: login name and email claim."""

    name: str
    email: str | None = None


def current_identity() -> IdentityContext | None:
    """Return the identity resolved for the current request, if any."""
    return getattr(g, "identity", None)
