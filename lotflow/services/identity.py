"""
Identity Service - bearer token encoding / decoding for resolved actors.

The workflow engine never authenticates anyone itself: the gateway (or the
tests) hand it a signed bearer token, and this resolver turns that token
into an ``Identity(actor_id, display_name, role)``.  The signing secret is
passed in at construction by the app factory; nothing here reads global
state.

Token payload:
{
    "sub": "<actor id>",
    "name": "<display name>",
    "role": "vendor | depot-staff | track-worker | inspector | admin",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app, g

from lotflow.models.user import ROLES

# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
ALGORITHM = "HS256"

EXTENSION_KEY = "lotflow.identity_resolver"


@dataclass(frozen=True)
class Identity:
    """An authenticated, role-resolved actor."""

    actor_id: str
    display_name: str
    role: str


class IdentityResolver:
    """Encode and decode HS256 bearer tokens with an explicit secret."""

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM,
                 access_expires: int = DEFAULT_ACCESS_EXPIRES):
        if not secret_key:
            raise ValueError("IdentityResolver requires a non-empty secret_key")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.access_expires = access_expires

    @classmethod
    def from_config(cls, config) -> "IdentityResolver":
        return cls(
            secret_key=config.get("JWT_SECRET_KEY") or config["SECRET_KEY"],
            algorithm=config.get("JWT_ALGORITHM", ALGORITHM),
            access_expires=int(config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)),
        )

    def issue(self, actor_id: str, display_name: str, role: str) -> str:
        """Mint an access token for an already-authenticated actor."""
        if role not in ROLES:
            raise ValueError(f"Unknown role {role!r}")
        now = datetime.now(timezone.utc)
        payload = {
            "sub": actor_id,
            "name": display_name,
            "role": role,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(seconds=self.access_expires),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def resolve(self, token: str) -> Identity:
        """
        Decode and verify a bearer token.

        Raises jwt.exceptions on failure (ExpiredSignatureError,
        InvalidTokenError, ...).
        """
        payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        if payload.get("type") != "access":
            raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
        role = payload.get("role")
        if role not in ROLES:
            raise jwt.InvalidTokenError(f"Unknown role {role!r}")
        actor_id = payload.get("sub")
        if not actor_id:
            raise jwt.InvalidTokenError("Token has no subject")
        return Identity(
            actor_id=str(actor_id).upper(),
            display_name=payload.get("name") or str(actor_id),
            role=role,
        )


def get_identity_resolver() -> IdentityResolver:
    return current_app.extensions[EXTENSION_KEY]


def current_identity() -> Identity | None:
    """Identity resolved for the current request, or None."""
    return getattr(g, "identity", None)
