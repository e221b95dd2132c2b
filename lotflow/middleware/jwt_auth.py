"""
JWT Auth Middleware - resolves ``Authorization: Bearer`` into g.identity.

The hook never blocks a request.  It only records who the caller is (or
why the bearer token was rejected); routes that need an actor are wrapped
in ``require_identity`` which turns a missing identity into a 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from lotflow.services.identity import get_identity_resolver

logger = logging.getLogger(__name__)

# Paths that skip identity resolution entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register the identity resolver as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.identity = None
        g.identity_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            g.identity = get_identity_resolver().resolve(token)
        except pyjwt.ExpiredSignatureError:
            g.identity_error = "Bearer token has expired"
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            g.identity_error = "Invalid bearer token"
